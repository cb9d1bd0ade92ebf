import unittest

from utils import (
    Announcement,
    TRANSIENT_ERRORS,
    RetriesExhausted,
    build_completion_text,
    format_duration,
    format_elapsed,
    parse_playing_announcement,
    retry,
)


class FormatDurationTests(unittest.TestCase):
    def test_components(self) -> None:
        self.assertEqual(format_duration(0, 0, 5, 250), "5.250 seconds")
        self.assertEqual(format_duration(1, 0, 0, 0), "1 hour and 0.000 seconds")
        self.assertEqual(
            format_duration(2, 3, 4, 5), "2 hours, 3 minutes and 4.005 seconds"
        )
        self.assertEqual(format_duration(0, 1, 1, 0), "1 minute and 1.000 second")

    def test_elapsed_seconds(self) -> None:
        self.assertEqual(format_elapsed(12.5), "12.500 seconds")
        self.assertEqual(format_elapsed(3723.004), "1 hour, 2 minutes and 3.004 seconds")
        self.assertEqual(format_elapsed(0), "0.000 seconds")

    def test_completion_text(self) -> None:
        text = build_completion_text("alice", 65.0, is_update=False)
        self.assertIn("alice finished their puzzle in *1 minute and 5.000 seconds*!", text)
        self.assertNotIn("(Updated)", text)
        self.assertIn("(Updated)", build_completion_text("alice", 65.0, is_update=True))


class ParseAnnouncementTests(unittest.TestCase):
    def test_single_player(self) -> None:
        self.assertEqual(
            parse_playing_announcement("alice is playing"),
            Announcement(["alice"], True),
        )

    def test_multiple_players(self) -> None:
        self.assertEqual(
            parse_playing_announcement("alice, bob and carol are playing Wordle"),
            Announcement(["alice", "bob", "carol"], True),
        )

    def test_finished_players(self) -> None:
        self.assertEqual(
            parse_playing_announcement("alice and bob were playing"),
            Announcement(["alice", "bob"], False),
        )
        self.assertEqual(
            parse_playing_announcement("Sandra was playing"),
            Announcement(["Sandra"], False),
        )

    def test_overflow_discards_all_names(self) -> None:
        self.assertEqual(
            parse_playing_announcement("alice, bob and 3 others are playing"),
            Announcement([], True),
        )

    def test_no_trigger(self) -> None:
        self.assertIsNone(parse_playing_announcement("good morning"))
        self.assertIsNone(parse_playing_announcement(""))


class RetryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.sleeps = []

    async def fake_sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    async def test_exhaustion_after_max_attempts(self) -> None:
        calls = []
        error = RuntimeError("boom")

        async def always_fails():
            calls.append(1)
            raise error

        with self.assertRaises(RetriesExhausted) as ctx:
            await retry(always_fails, 4, sleep=self.fake_sleep)

        self.assertEqual(len(calls), 4)
        self.assertEqual(self.sleeps, [1, 2, 4])
        self.assertIs(ctx.exception.last_error, error)
        self.assertEqual(ctx.exception.attempts, 4)

    async def test_returns_first_success(self) -> None:
        outcomes = [ValueError("flaky"), "ok"]

        async def flaky():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        self.assertEqual(await retry(flaky, 3, sleep=self.fake_sleep), "ok")
        self.assertEqual(self.sleeps, [1])

    async def test_errors_outside_retry_on_propagate_at_once(self) -> None:
        calls = []

        async def malformed():
            calls.append(1)
            raise ValueError("Unreadable image")

        with self.assertRaises(ValueError):
            await retry(malformed, 5, sleep=self.fake_sleep, retry_on=TRANSIENT_ERRORS)
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.sleeps, [])

    async def test_transient_errors_are_retried(self) -> None:
        async def offline():
            raise ConnectionError("offline")

        with self.assertRaises(RetriesExhausted):
            await retry(offline, 3, sleep=self.fake_sleep, retry_on=TRANSIENT_ERRORS)
        self.assertEqual(self.sleeps, [1, 2])

    async def test_single_attempt_never_sleeps(self) -> None:
        async def fails():
            raise OSError("down")

        with self.assertRaises(RetriesExhausted):
            await retry(fails, 1, sleep=self.fake_sleep)
        self.assertEqual(self.sleeps, [])


if __name__ == "__main__":
    unittest.main()

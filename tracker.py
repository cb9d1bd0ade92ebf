"""Per-player puzzle lifecycle: NotStarted -> Active <-> Paused -> Completed.

Records are keyed by Telegram user id. One asyncio.Lock guards the whole map;
every event holds it for its read-modify-write, and a screenshot event holds
it across the full verification loop.
"""

import asyncio
import datetime
import logging
import time
from functools import partial
from typing import Awaitable, Callable, Dict, NamedTuple, Optional, Protocol

from api import fetch_image
from classes import GameState, ObservedMessage, Player
from config import MEMBER_LOOKUP_ATTEMPTS, TZ, VERIFY_ATTEMPTS
from db import find_linked_user
from detection import load_image
from utils import (
    Announcement,
    TRANSIENT_ERRORS,
    RetriesExhausted,
    build_completion_text,
    parse_playing_announcement,
    retry,
)
from verifier import CompletionVerifier

LOGGER = logging.getLogger(__name__)


class Member(NamedTuple):
    display_name: str
    avatar_url: Optional[str]


class Messenger(Protocol):
    async def send(self, channel_id: int, text: str) -> int: ...

    async def edit(self, channel_id: int, message_id: int, text: str) -> None: ...


class GameStateTracker:
    def __init__(
        self,
        verifier: CompletionVerifier,
        messenger: Messenger,
        lookup_member: Callable[[int, int], Awaitable[Member]],
        resolve_name: Callable[[int, str], Optional[int]] = find_linked_user,
        fetch: Callable[[str], object] = fetch_image,
        tz: datetime.tzinfo = TZ,
        member_attempts: int = MEMBER_LOOKUP_ATTEMPTS,
        verify_attempts: int = VERIFY_ATTEMPTS,
        monotonic: Callable[[], float] = time.monotonic,
        now: Optional[Callable[[], datetime.datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.verifier = verifier
        self.messenger = messenger
        self.lookup_member = lookup_member
        self.resolve_name = resolve_name
        self.fetch = fetch
        self.tz = tz
        self.member_attempts = member_attempts
        self.verify_attempts = verify_attempts
        self._monotonic = monotonic
        self._now = now or (lambda: datetime.datetime.now(tz))
        self._sleep = sleep
        self._games: Dict[int, GameState] = {}
        self._lock = asyncio.Lock()

    def get(self, user_id: int) -> Optional[GameState]:
        """Today's record for `user_id`, or None."""
        game = self._games.get(user_id)
        if game is None or not game.is_current(self._now(), self.tz):
            return None
        return game

    def _new_game(self, user_id: int) -> GameState:
        return GameState(
            user_id=user_id,
            last_start=self._monotonic(),
            created_at=self._now(),
        )

    # lifecycle transitions, caller holds the lock

    def _start(self, user_id: int) -> None:
        game = self._games.get(user_id)
        if game is None:
            self._games[user_id] = self._new_game(user_id)
            LOGGER.info("Started tracking new puzzle for user: %s", user_id)
        elif not game.is_current(self._now(), self.tz):
            self._games[user_id] = self._new_game(user_id)
            LOGGER.info(
                "Reset game state for new day - User: %s (previous time: %.3fs)",
                user_id,
                game.total_active,
            )
        elif game.completed:
            LOGGER.debug("Puzzle already completed today - User: %s", user_id)
        else:
            LOGGER.debug(
                "Continuing existing game for user %s (current time: %.3fs)",
                user_id,
                game.total_active,
            )

    def _stop(self, user_id: int) -> None:
        game = self._games.get(user_id)
        if game is None or not game.is_current(self._now(), self.tz):
            LOGGER.debug("No active game found for user: %s", user_id)
        elif game.completed:
            LOGGER.debug("Ignoring stop for completed game - User: %s", user_id)
        else:
            game.update_active_time(self._monotonic())
            LOGGER.info(
                "User %s stopped playing - Total active time: %.3fs",
                user_id,
                game.total_active,
            )

    async def presence_changed(self, user_id: int, is_playing: bool) -> None:
        async with self._lock:
            if is_playing:
                self._start(user_id)
            else:
                self._stop(user_id)

    async def message_observed(self, message: ObservedMessage) -> None:
        """A new chat message: a text trigger, a screenshot, or both."""
        announcement = parse_playing_announcement(message.text)
        if announcement is not None:
            await self._apply_announcement(message, announcement)

        if message.attachment_url:
            await self._check_screenshot(message)

    async def message_edited(self, message: ObservedMessage) -> None:
        """Edited messages only carry text triggers ("is playing" -> "was playing")."""
        announcement = parse_playing_announcement(message.text)
        if announcement is not None:
            await self._apply_announcement(message, announcement)

    async def _apply_announcement(
        self, message: ObservedMessage, announcement: Announcement
    ) -> None:
        user_ids = []
        for name in announcement.names:
            user_id = self.resolve_name(message.channel_id, name)
            if user_id is None:
                LOGGER.debug("No linked user named %r in chat %s", name, message.channel_id)
                continue
            user_ids.append(user_id)

        async with self._lock:
            for user_id in user_ids:
                if announcement.playing:
                    self._start(user_id)
                else:
                    self._stop(user_id)

    async def _check_screenshot(self, message: ObservedMessage) -> None:
        try:
            path = await asyncio.to_thread(self.fetch, message.attachment_url)
            screenshot = await asyncio.to_thread(load_image, path)
        except Exception as exc:
            LOGGER.error("Failed to download image: %s", exc)
            return

        async with self._lock:
            now = self._now()
            for user_id, game in list(self._games.items()):
                if not game.is_current(now, self.tz):
                    LOGGER.debug("Dropping stale game for user %s", user_id)
                    del self._games[user_id]
                    continue
                if game.completed:
                    LOGGER.debug("Skipping user %s - already completed", user_id)
                    continue
                await self._verify_one(message, game, screenshot)

    async def _verify_one(self, message: ObservedMessage, game: GameState, screenshot) -> None:
        user_id = game.user_id
        try:
            member = await retry(
                partial(self.lookup_member, message.channel_id, user_id),
                self.member_attempts,
                f"Member lookup for {user_id}",
                self._sleep,
                TRANSIENT_ERRORS,
            )
        except RetriesExhausted as exc:
            LOGGER.warning("Could not find member info for user %s: %s", user_id, exc)
            return
        except Exception as exc:
            LOGGER.warning("Member lookup rejected for user %s: %s", user_id, exc)
            return

        if not member.avatar_url:
            LOGGER.debug("User %s has no avatar to look for", user_id)
            return

        player = Player(user_id, member.display_name, member.avatar_url)
        try:
            completed = await retry(
                partial(asyncio.to_thread, self.verifier.verify, player, screenshot),
                self.verify_attempts,
                f"Verification for {member.display_name}",
                self._sleep,
                TRANSIENT_ERRORS,
            )
        except RetriesExhausted as exc:
            LOGGER.error("Failed to verify completion for user %s: %s", user_id, exc)
            return
        except Exception as exc:
            LOGGER.error("Cannot verify completion for user %s: %s", user_id, exc)
            return

        if not completed:
            LOGGER.debug("User %s has not completed yet", user_id)
            return

        LOGGER.info("Detected completion for user %s", user_id)
        game.update_active_time(self._monotonic())
        game.completed = True
        game.channel_id = message.channel_id
        game.username = player.get_username()
        await self._notify(game)

    async def _notify(self, game: GameState) -> None:
        """Send the completion notification, or edit the one already sent."""
        is_update = game.completion_msg_id is not None
        text = build_completion_text(game.username, game.total_active, is_update)
        try:
            if is_update:
                await self.messenger.edit(game.channel_id, game.completion_msg_id, text)
                LOGGER.info(
                    "Updated completion message for user %s - Time: %.3fs",
                    game.username,
                    game.total_active,
                )
            else:
                game.completion_msg_id = await self.messenger.send(game.channel_id, text)
                LOGGER.info(
                    "Sent completion message for user %s - Time: %.3fs",
                    game.username,
                    game.total_active,
                )
        except Exception as exc:
            LOGGER.error("Failed to send completion message: %s", exc)

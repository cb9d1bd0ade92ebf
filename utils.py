import asyncio
import logging
import re
from typing import Awaitable, Callable, List, NamedTuple, Optional, Tuple, Type, TypeVar

import requests
from telegram.error import TelegramError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# network and API failures worth another attempt; bad input is not
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    requests.RequestException,
    TelegramError,
    OSError,
)

EMBED_TITLE = "🧩 Puzzle Solved!"
EMBED_FOOTER = "_Time tracked by the puzzle timer._"


class RetriesExhausted(Exception):
    """Raised once every attempt of a retried operation has failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"Failed after {attempts} attempts: {last_error!r}")
        self.attempts = attempts
        self.last_error = last_error


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """Await `operation()` up to `max_attempts` times.

    Waits 2**attempt seconds between failures (1, 2, 4, ...) and never after
    the last attempt. Only the calling task sleeps. Errors outside `retry_on`
    propagate at once.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(max_attempts):
        try:
            return await operation()
        except retry_on as exc:
            LOGGER.warning(
                "%s failed (attempt %d/%d): %s",
                description,
                attempt + 1,
                max_attempts,
                exc,
            )
            last_error = exc
            if attempt < max_attempts - 1:
                await sleep(2**attempt)

    raise RetriesExhausted(max_attempts, last_error)


class Announcement(NamedTuple):
    names: List[str]
    playing: bool  # True for "is/are playing", False for "was/were playing"


TRIGGER_RE = re.compile(r"\b(is|are|was|were)\s+playing\b", re.IGNORECASE)
SPLIT_RE = re.compile(r",|\band\b", re.IGNORECASE)
OVERFLOW_RE = re.compile(r"\b\d+\s+others?$", re.IGNORECASE)


def parse_playing_announcement(text: str) -> Optional[Announcement]:
    """Parse "alice and bob are playing" style announcements.

    Returns None when no trigger phrase is present. When the name list ends in
    "N others" the overflow cannot be attributed, so no names are returned.
    """
    found = TRIGGER_RE.search(text or "")
    if found is None:
        return None

    playing = found.group(1).lower() in ("is", "are")
    prefix = text[: found.start()]
    names = [part.strip() for part in SPLIT_RE.split(prefix)]
    names = [name for name in names if name]

    if names and OVERFLOW_RE.search(names[-1]):
        return Announcement([], playing)

    return Announcement(names, playing)


def _plural(value: int) -> str:
    return "s" if value != 1 else ""


def format_duration(hours: int, minutes: int, seconds: int, milliseconds: int) -> str:
    """Human readable duration, e.g. "1 hour, 2 minutes and 3.004 seconds".

    Hours and minutes only appear when non-zero; seconds always do.
    """
    parts = []
    if hours > 0:
        parts.append(f"{hours} hour{_plural(hours)}")
    if minutes > 0:
        parts.append(f"{minutes} minute{_plural(minutes)}")
    parts.append(f"{seconds}.{milliseconds:03d} second{_plural(seconds)}")

    if len(parts) == 1:
        return parts[0]
    return f"{', '.join(parts[:-1])} and {parts[-1]}"


def format_elapsed(total_seconds: float) -> str:
    """format_duration() for a plain number of seconds."""
    total_ms = int(round(max(total_seconds, 0.0) * 1000))
    total_s, milliseconds = divmod(total_ms, 1000)
    hours, remainder = divmod(total_s, 3600)
    minutes, seconds = divmod(remainder, 60)
    return format_duration(hours, minutes, seconds, milliseconds)


def build_completion_text(username: str, total_seconds: float, is_update: bool) -> str:
    """Markdown body of the completion notification."""
    suffix = " (Updated)" if is_update else ""
    return (
        f"*{EMBED_TITLE}*\n"
        f"{username} finished their puzzle in *{format_elapsed(total_seconds)}*!{suffix}\n\n"
        f"{EMBED_FOOTER}"
    )

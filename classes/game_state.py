import datetime
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass
class GameState:
    user_id: int
    last_start: float  # monotonic seconds, start of the current attempt
    created_at: datetime.datetime  # tz-aware wall clock, for day rollover
    total_active: float = 0.0  # seconds spent actively solving
    completion_msg_id: Optional[int] = None  # notification to edit in place
    channel_id: Optional[int] = None  # chat where completion was detected
    completed: bool = False
    username: str = ""

    def is_current(self, now: datetime.datetime, tz: ZoneInfo) -> bool:
        """True while the record was created on today's date in `tz`."""
        return self.created_at.astimezone(tz).date() == now.astimezone(tz).date()

    def update_active_time(self, now_monotonic: float) -> None:
        """Fold the running attempt into the total and restart the clock."""
        self.total_active += max(now_monotonic - self.last_start, 0.0)
        self.last_start = now_monotonic

    def elapsed(self, now_monotonic: float) -> float:
        """Total active time including the attempt still running."""
        if self.completed:
            return self.total_active
        return self.total_active + max(now_monotonic - self.last_start, 0.0)

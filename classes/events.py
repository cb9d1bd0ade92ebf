from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ObservedMessage:
    """A chat message (new or edited) as seen by the tracker."""

    channel_id: int
    message_id: int
    text: str = ""
    attachment_url: Optional[str] = None

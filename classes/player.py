from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional


@dataclass
class Player:
    _uid: int
    _username: str = ""
    _avatar_url: str = ""
    _avatar_path: Optional[Path] = None
    _completed: bool = False

    def __init__(
        self,
        uid: int,
        username: str,
        avatar_url: str,
        avatar_path: Optional[Path] = None,
    ):
        self._uid = uid
        self._username = username
        self._avatar_url = avatar_url
        self._avatar_path = avatar_path
        self._completed = False

    def get_uid(self) -> int:
        return self._uid

    def get_username(self) -> str:
        return self._username

    def get_avatar_url(self) -> str:
        return self._avatar_url

    def get_avatar_path(self) -> Optional[Path]:
        return self._avatar_path

    def is_completed(self) -> bool:
        return self._completed

    def set_completed(self, completed: bool):
        self._completed = completed

    def resolve_avatar(self, fetch: Callable[[str], Path]) -> Path:
        """Fetch the avatar on first use, then keep returning the same file."""
        if self._avatar_path is None:
            self._avatar_path = fetch(self.get_avatar_url())
        return self._avatar_path

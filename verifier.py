"""Decide whether a player's avatar sits next to a "solved" marker."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np

from api import fetch_image
from classes import Player
from detection import detect, load_image

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchParams:
    max_matches: int
    scale_min: float
    scale_max: float
    scale_steps: int
    threshold: float


# markers change with the chat theme, so search wide and demand a near-exact hit
MARKER_SEARCH = SearchParams(30, 0.1, 1.0, 100, 0.99)
AVATAR_SEARCH = SearchParams(1, 0.3, 1.0, 70, 0.84)


class CompletionVerifier:
    def __init__(
        self,
        marker: np.ndarray,
        fetch: Callable[[str], Path] = fetch_image,
        marker_search: SearchParams = MARKER_SEARCH,
        avatar_search: SearchParams = AVATAR_SEARCH,
    ):
        self.marker = marker
        self.fetch = fetch
        self.marker_search = marker_search
        self.avatar_search = avatar_search

    @classmethod
    def from_file(cls, marker_path: Path, **kwargs) -> "CompletionVerifier":
        marker_path = Path(marker_path)
        if not marker_path.exists():
            raise FileNotFoundError(f"Solved marker template not found: {marker_path}")
        return cls(load_image(marker_path), **kwargs)

    def _detect(self, template: np.ndarray, screenshot: np.ndarray, params: SearchParams):
        return detect(
            template,
            screenshot,
            params.max_matches,
            params.scale_min,
            params.scale_max,
            params.scale_steps,
            params.threshold,
        )

    def verify(self, player: Player, screenshot: np.ndarray) -> bool:
        """
        Check whether `player` finished the puzzle shown in `screenshot`.

        Only horizontal position is compared: the avatar's center must fall
        strictly inside the x-span of some marker. An avatar found zero times
        or more than once counts as not completed. Marks the player completed
        on success.
        """
        markers = self._detect(self.marker, screenshot, self.marker_search)
        if not markers:
            LOGGER.debug("No completions found")
            return False
        LOGGER.debug("Found %d completions: %s", len(markers), markers)

        avatar = load_image(player.resolve_avatar(self.fetch))
        found = self._detect(avatar, screenshot, self.avatar_search)
        if len(found) != 1:
            LOGGER.debug("Found %d avatars for %s", len(found), player.get_username())
            return False

        center = found[0].box.center_x
        completed = any(
            m.box.top_left.x < center < m.box.bottom_right.x for m in markers
        )
        LOGGER.debug(
            "Player %s completed: %s, center: %d",
            player.get_username(),
            completed,
            center,
        )

        if completed:
            player.set_completed(True)
        return completed

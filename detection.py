"""Scale-invariant template search.

A template (needle) is resized across a range of scale factors and correlated
against the full target (haystack) with TM_CCORR_NORMED. Each per-scale
similarity surface is mined greedily: take the strongest peak, record it if it
clears the threshold, then zero a neighbourhood around it so the same instance
is not picked again at a shifted offset. Matches from every scale are pooled
and ranked by confidence.

Everything here is synchronous and holds no shared state, so it is safe to run
from worker threads.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, NamedTuple, Tuple

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)


class Point(NamedTuple):
    x: int
    y: int


class BoundingBox(NamedTuple):
    top_left: Point
    bottom_right: Point

    @property
    def width(self) -> int:
        return self.bottom_right.x - self.top_left.x

    @property
    def height(self) -> int:
        return self.bottom_right.y - self.top_left.y

    @property
    def center_x(self) -> int:
        return (self.top_left.x + self.bottom_right.x) // 2


class Match(NamedTuple):
    box: BoundingBox
    confidence: float


def load_image(path) -> np.ndarray:
    """Decode an image file into an RGB uint8 array."""
    image = cv2.imread(str(Path(path)), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError(f"Unreadable image: {path}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def scale_factors(scale_min: float, scale_max: float, scale_steps: int) -> np.ndarray:
    """`scale_steps + 1` evenly spaced factors, both ends included."""
    return np.linspace(scale_min, scale_max, scale_steps + 1)


def resize_template(template: np.ndarray, scale: float) -> np.ndarray:
    height, width = template.shape[:2]
    size = (int(width * scale), int(height * scale))
    return cv2.resize(template, size, interpolation=cv2.INTER_LINEAR)


def search(
    template: np.ndarray,
    target: np.ndarray,
    scale_min: float,
    scale_max: float,
    scale_steps: int,
) -> List[Tuple[np.ndarray, Tuple[int, int]]]:
    """Correlate the template against the target at every sampled scale.

    Returns one (surface, (width, height)) pair per scale that could be
    computed. Scales that cannot be searched (template shrunk to nothing or
    grown past the target) are logged and skipped.
    """
    surfaces = []
    target_height, target_width = target.shape[:2]
    template_height, template_width = template.shape[:2]
    for scale in scale_factors(scale_min, scale_max, scale_steps):
        width = int(template_width * scale)
        height = int(template_height * scale)
        if not (0 < width <= target_width and 0 < height <= target_height):
            LOGGER.info(
                "Skipping scale %.3f: template %dx%d does not fit target %dx%d",
                scale,
                width,
                height,
                target_width,
                target_height,
            )
            continue
        try:
            scaled = resize_template(template, scale)
            surface = cv2.matchTemplate(target, scaled, cv2.TM_CCORR_NORMED)
        except cv2.error as exc:
            LOGGER.info("Failed to match template at scale %.3f: %s", scale, exc)
            continue
        surfaces.append((surface, (width, height)))
    return surfaces


def extract(
    surface: np.ndarray,
    template_size: Tuple[int, int],
    threshold: float,
    max_count: int,
) -> List[Match]:
    """Greedily pull up to `max_count` peaks at or above `threshold`.

    The surface is copied, the caller's array is left as it was.
    """
    surface = surface.copy()
    width, height = template_size
    rows, cols = surface.shape[:2]
    matches: List[Match] = []

    for _ in range(max_count):
        _, max_val, _, max_loc = cv2.minMaxLoc(surface)
        if max_val < threshold:
            break

        x, y = max_loc
        box = BoundingBox(Point(x, y), Point(x + width, y + height))
        matches.append(Match(box, float(max_val)))

        # knock out ~1.5x the template footprint around the pick
        x1 = max(x - width // 4, 0)
        y1 = max(y - height // 4, 0)
        x2 = min(x1 + width + width // 2, cols)
        y2 = min(y1 + height + height // 2, rows)
        if x2 > x1 and y2 > y1:
            surface[y1:y2, x1:x2] = 0

    return matches


def detect(
    template: np.ndarray,
    target: np.ndarray,
    max_matches: int,
    scale_min: float,
    scale_max: float,
    scale_steps: int,
    threshold: float,
) -> List[Match]:
    """Find up to `max_matches` instances of `template` in `target`.

    The same physical instance may be found at neighbouring scales; those
    duplicates compete on confidence and are only cut by the final truncation.
    """
    if target is None or target.size == 0:
        raise ValueError("Target image is empty")
    if template is None or template.size == 0:
        raise ValueError("Template image is empty")

    pool: List[Match] = []
    for surface, size in search(template, target, scale_min, scale_max, scale_steps):
        pool.extend(extract(surface, size, threshold, max_matches))

    pool.sort(key=lambda m: m.confidence, reverse=True)
    return pool[:max_matches]

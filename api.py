import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

from config import DATA_DIR

LOGGER = logging.getLogger(__name__)


def cache_path_for(url: str, data_dir: Path = DATA_DIR) -> Path:
    """Cache location for `url`: the data dir plus the URL's last path segment."""
    name = urlparse(url).path.rstrip("/").split("/")[-1]
    if not name:
        raise ValueError(f"Cannot derive a file name from {url!r}")
    return Path(data_dir) / name


def fetch_image(url: str, data_dir: Optional[Path] = None) -> Path:
    """
    Download an image into the local cache and return its path.

    Args:
        url (str): Where to fetch the image from.
        data_dir (Path): Cache directory, defaults to DATA_DIR.

    Returns:
        Path: The cached file. A file already in the cache is returned
        without another request.
    """
    path = cache_path_for(url, data_dir or DATA_DIR)
    if path.exists():
        LOGGER.debug("Using cached image %s", path)
        return path

    LOGGER.info("Downloading image from %s", url)
    r = requests.get(url, timeout=15)
    r.raise_for_status()

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(r.content)
    LOGGER.info("Successfully downloaded image and saved to %s", path)
    return path

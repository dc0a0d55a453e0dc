"""Request classification: which handler serves a given URL and path."""

from __future__ import annotations

import enum
import mimetypes
import os
import stat
from pathlib import Path

from livepreview.assets import AssetMap
from livepreview.config import ServerConfig
from livepreview.paths import RAW_PREFIX

EVENTS_ROUTE = "/events"


class Strategy(enum.Enum):
    INTERNAL_ASSET = "internal-asset"
    EVENT_STREAM = "event-stream"
    RAW = "raw-passthrough"
    DIRECTORY = "directory-listing"
    ALWAYS_RAW = "always-raw-mime"
    LATEX = "latex-convert"
    MARKDOWN = "markdown-render"
    IMAGE = "image-serve"
    NOT_FOUND = "not-found"


# Extensions never rendered, only passed through with a fixed type.
ALWAYS_RAW = {
    ".pdf": "application/pdf",
    ".json": "application/json",
    ".html": "text/html",
}

IMAGE_EXTENSIONS = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".bmp", ".ico", ".avif"}
)

_IMAGE_TYPES = {
    ".jpg": "image/jpeg",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
}


def extension(path: str | os.PathLike[str]) -> str:
    return os.path.splitext(str(path))[1].lower()


def image_mimetype(ext: str) -> str:
    ext = ext.lower()
    return _IMAGE_TYPES.get(ext, f"image/{ext.lstrip('.')}")


def raw_mimetype(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "text/plain"


def route_strategy(url: str, assets: AssetMap) -> Strategy | None:
    """Classify by URL shape alone; ``None`` means the path must be stat'ed."""
    if assets.lookup(url) is not None:
        return Strategy.INTERNAL_ASSET
    if assets.owns(url):
        return Strategy.NOT_FOUND
    if url == EVENTS_ROUTE:
        return Strategy.EVENT_STREAM
    if url.startswith(RAW_PREFIX):
        return Strategy.RAW
    if extension(url) in IMAGE_EXTENSIONS:
        return Strategy.IMAGE
    return None


def file_strategy(path: Path, stats: os.stat_result, config: ServerConfig) -> Strategy:
    if stat.S_ISDIR(stats.st_mode):
        return Strategy.DIRECTORY
    ext = extension(path)
    if ext in IMAGE_EXTENSIONS:
        return Strategy.IMAGE
    if config.raw_mode:
        return Strategy.RAW
    if ext in ALWAYS_RAW:
        return Strategy.ALWAYS_RAW
    if ext == ".tex":
        return Strategy.LATEX
    return Strategy.MARKDOWN


def classify(
    url: str,
    path: Path | None,
    stats: os.stat_result | None,
    config: ServerConfig,
    assets: AssetMap,
) -> Strategy:
    """First match wins; URL-shaped routes come before anything that needs
    the file's stat result."""
    strategy = route_strategy(url, assets)
    if strategy is not None:
        return strategy
    if path is None or stats is None:
        return Strategy.NOT_FOUND
    return file_strategy(path, stats, config)

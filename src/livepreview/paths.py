"""Mapping request URLs onto the file system without escaping the served root."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import quote

from livepreview.config import ServerConfig

RAW_PREFIX = "/raw/"
HOME_PREFIX = "/~"


def _within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        return False


def _join_under(root: Path, rel: str) -> Path | None:
    """Join ``rel`` below ``root``; ``None`` if the result would leave it."""
    base = os.path.normpath(str(root))
    candidate = os.path.normpath(os.path.join(base, rel.lstrip("/")))
    if not _within(candidate, base):
        return None
    return Path(candidate)


def resolve_request(url: str, config: ServerConfig) -> Path | None:
    """Return the file-system path for an already percent-decoded URL path."""
    if url in ("", "/"):
        return config.original_path if config.serve_file_on_root else config.base_path
    return _join_under(config.base_path, url)


def resolve_raw(url: str, config: ServerConfig) -> Path | None:
    rest = url[len(RAW_PREFIX):] if url.startswith(RAW_PREFIX) else url
    if not rest:
        return None
    return _join_under(config.base_path, rest)


def resolve_image(url: str, config: ServerConfig) -> Path | None:
    """Home-relative (``/~...``) images resolve under the user's home,
    everything else under the served root."""
    if url.startswith(HOME_PREFIX):
        return _join_under(Path.home(), url[len(HOME_PREFIX):])
    return resolve_request(url, config)


def quote_segment(part: str) -> str:
    # fsencode keeps undecodable bytes from the file system intact.
    return quote(os.fsencode(part))


def display_name(name: str) -> str:
    """Printable form of a file-system name that may not be valid UTF-8."""
    return os.fsencode(name).decode("utf-8", "replace")


def encode_link(path: Path, root: Path) -> str:
    """Root-relative link to ``path``, percent-encoded per segment."""
    rel = os.path.relpath(path, root)
    if rel == os.curdir:
        return "/"
    return "/" + "/".join(quote_segment(part) for part in Path(rel).parts)

"""Startup configuration: origin path resolution and the frozen server config."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple


class ResolvedPaths(NamedTuple):
    base_path: Path
    serve_file_on_root: bool
    is_directory_init: bool


@dataclass(frozen=True)
class ServerConfig:
    base_path: Path
    serve_file_on_root: bool
    is_directory_init: bool
    original_path: Path
    raw_mode: bool = False
    content_type_override: str | None = None
    host: str = "127.0.0.1"
    port: int = 8601

    @property
    def watch_root(self) -> Path:
        """The file or directory whose changes trigger a reload."""
        return self.original_path if self.serve_file_on_root else self.base_path


def resolve_paths(origin: str | os.PathLike[str]) -> ResolvedPaths:
    """Decide how root requests behave for the path the server was started with.

    A directory is served as-is, a file is served on ``/`` with its parent as
    the root, and anything missing or inaccessible falls back to the current
    directory so the server still starts.
    """
    path = Path(origin)
    try:
        st = path.stat()
    except OSError:
        return ResolvedPaths(Path.cwd(), False, False)
    if stat.S_ISDIR(st.st_mode):
        return ResolvedPaths(path, False, True)
    return ResolvedPaths(path.parent, True, False)


def build_config(
    path: str,
    *,
    port: int = 8601,
    host: str = "127.0.0.1",
    raw: bool = False,
    content_type: str | None = None,
) -> ServerConfig:
    cwd = Path.cwd()
    original = Path(os.path.expanduser(path))
    if not original.is_absolute():
        original = cwd / original
    original = Path(os.path.normpath(original))
    resolved = resolve_paths(original)
    return ServerConfig(
        base_path=resolved.base_path,
        serve_file_on_root=resolved.serve_file_on_root,
        is_directory_init=resolved.is_directory_init,
        original_path=original,
        raw_mode=raw,
        content_type_override=content_type or None,
        host=host,
        port=port,
    )

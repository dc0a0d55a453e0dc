"""Directory listing: sorted file/directory cards with a short content preview."""

from __future__ import annotations

import codecs
import logging
import os
import stat
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from livepreview import templates
from livepreview.classify import ALWAYS_RAW, IMAGE_EXTENSIONS, extension
from livepreview.paths import display_name, encode_link, quote_segment

_log = logging.getLogger("livepreview.listing")

PREVIEW_BYTES = 2048
PREVIEW_CHARS = 400
MAX_WORKERS = 8

VERBATIM_EXTENSIONS = frozenset({".md", ".txt"})
FIXED_LABELS = {".pdf": "PDF Document", ".tex": "LaTeX Document"}
NEW_TAB_EXTENSIONS = frozenset({".pdf", ".json"})


@dataclass
class DirectoryEntry:
    name: str
    path: Path
    is_directory: bool
    extension: str
    link: str
    stat_ok: bool = True
    preview: str = ""
    preformatted: bool = False
    raw_link: str | None = None

    @property
    def label(self) -> str:
        return display_name(self.name)

    @property
    def new_tab(self) -> bool:
        return not self.is_directory and self.extension in NEW_TAB_EXTENSIONS


class Preview(NamedTuple):
    text: str
    preformatted: bool = False
    raw: bool = True


def _sort_key(entry: DirectoryEntry) -> bytes:
    return os.fsencode(entry.name)


def scan(dir_path: Path, base_path: Path) -> list[DirectoryEntry]:
    """Stat every entry of ``dir_path``. Raises ``OSError`` if the directory
    itself cannot be read; entries that cannot be stat'ed are kept as files."""
    entries: list[DirectoryEntry] = []
    for name in os.listdir(dir_path):
        full = dir_path / name
        try:
            is_dir = stat.S_ISDIR(full.stat().st_mode)
            stat_ok = True
        except OSError:
            is_dir, stat_ok = False, False
        entries.append(
            DirectoryEntry(
                name=name,
                path=full,
                is_directory=is_dir,
                extension=extension(name),
                link=encode_link(full, base_path),
                stat_ok=stat_ok,
            )
        )
    return entries


def _binary_label(ext: str) -> str:
    return f"{ext[1:].upper()} file" if ext else "File"


def preview_for(entry: DirectoryEntry) -> Preview:
    if entry.is_directory:
        return Preview("Directory", raw=False)
    if entry.extension in FIXED_LABELS:
        return Preview(FIXED_LABELS[entry.extension])
    if not entry.stat_ok:
        return Preview("FILE", raw=False)

    try:
        with open(entry.path, "rb") as f:
            data = f.read(PREVIEW_BYTES)
    except OSError:
        return Preview("FILE", raw=False)

    if not data:
        return Preview("Empty File")
    if b"\x00" in data:
        return Preview(_binary_label(entry.extension), raw=False)
    try:
        # Incremental decode tolerates a multibyte char cut at the read boundary.
        text = codecs.getincrementaldecoder("utf-8")().decode(data, final=False)
    except UnicodeDecodeError:
        return Preview(_binary_label(entry.extension), raw=False)

    text = text[:PREVIEW_CHARS]
    if entry.extension in VERBATIM_EXTENSIONS:
        return Preview(text)
    return Preview(text, preformatted=True)


def _offers_raw(entry: DirectoryEntry, preview: Preview) -> bool:
    if entry.is_directory or not preview.raw:
        return False
    return entry.extension not in ALWAYS_RAW and entry.extension not in IMAGE_EXTENSIONS


def attach_previews(entries: list[DirectoryEntry]) -> None:
    """Compute every preview concurrently; a failing entry gets an empty one."""
    if not entries:
        return
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(entries))) as pool:
        futures = [(entry, pool.submit(preview_for, entry)) for entry in entries]
        for entry, future in futures:
            try:
                preview = future.result()
            except Exception as e:
                _log.debug("preview failed for %s: %s", entry.path, e)
                preview = Preview("", raw=False)
            entry.preview = preview.text
            entry.preformatted = preview.preformatted
            if _offers_raw(entry, preview):
                entry.raw_link = "/raw" + entry.link


def build_listing(dir_path: Path, base_path: Path) -> tuple[list[DirectoryEntry], list[DirectoryEntry]]:
    """Return ``(files, directories)``, each sorted by name in byte order."""
    entries = scan(dir_path, base_path)
    files = sorted((e for e in entries if not e.is_directory), key=_sort_key)
    dirs = sorted((e for e in entries if e.is_directory), key=_sort_key)
    attach_previews(files + dirs)
    return files, dirs


def breadcrumb(dir_path: Path, root: Path) -> str:
    rel = os.path.relpath(dir_path, root)
    if rel == os.curdir:
        return templates.breadcrumb([])
    parts = Path(rel).parts
    crumbs = [
        (display_name(part), "/" + "/".join(quote_segment(p) for p in parts[: i + 1]))
        for i, part in enumerate(parts)
    ]
    return templates.breadcrumb(crumbs)


def render_listing(dir_path: Path, base_path: Path) -> str:
    """HTML fragment for ``dir_path``: breadcrumb, then Files, then Directories."""
    files, dirs = build_listing(dir_path, base_path)
    sections = []
    if files:
        sections.append(("Files", files))
    if dirs:
        sections.append(("Directories", dirs))
    return templates.listing(breadcrumb(dir_path, base_path), sections)

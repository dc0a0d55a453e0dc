"""Bundled stylesheets exposed under a random per-process route prefix."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from pathlib import Path

STYLESHEETS = ("bamboo.css", "hjs.css", "hjs-dark.css", "directory.css")


def assets_dir() -> Path:
    """Return the directory containing the bundled CSS files.
    These ship as package data inside the livepreview package."""
    return Path(__file__).resolve().parent / "static"


@dataclass(frozen=True)
class Asset:
    mimetype: str
    path: Path


class AssetMap:
    """Route table for bundled assets: ``/<prefix>-<name>`` → file on disk.

    The prefix is drawn once when the map is built and never changes, so the
    routes cannot collide with files in the served tree.
    """

    def __init__(self, prefix: str | None = None) -> None:
        self.prefix = prefix or secrets.token_hex(8)
        root = assets_dir()
        self._routes: dict[str, Asset] = {
            self.href(name): Asset("text/css", root / name) for name in STYLESHEETS
        }

    def href(self, name: str) -> str:
        return f"/{self.prefix}-{name}"

    def owns(self, url: str) -> bool:
        return url.startswith(f"/{self.prefix}-")

    def lookup(self, url: str) -> Asset | None:
        return self._routes.get(url)

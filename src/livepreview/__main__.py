"""Entry point for `python -m livepreview` and the `livepreview` console script."""

from __future__ import annotations

from livepreview.cli import main

if __name__ == "__main__":
    main()

"""Document renderers: Markdown with YAML frontmatter, and LaTeX via pandoc."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Any

import markdown  # type: ignore
import yaml  # type: ignore
from markdown.extensions.codehilite import CodeHiliteExtension  # type: ignore
from markdown.extensions.fenced_code import FencedCodeExtension  # type: ignore
from markdown.extensions.tables import TableExtension  # type: ignore

_log = logging.getLogger("livepreview.render")

PANDOC = "pandoc"
CONVERT_TIMEOUT = 60

_FRONTMATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z", re.DOTALL)
_BODY = re.compile(r"<body[^>]*>(.*)</body>", re.DOTALL | re.IGNORECASE)


class ConversionError(Exception):
    """The external LaTeX converter is missing or failed."""

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        if self.diagnostics:
            return f"{self.message}: {self.diagnostics}"
        return self.message


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a leading ``---`` YAML block off ``text``.

    Returns ``({}, text)`` when there is no block or it is not a YAML mapping.
    """
    match = _FRONTMATTER.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, match.group(2)


class MarkdownRenderer:
    """Markdown → HTML with fenced code, tables and Pygments highlighting.

    ``formatter`` is handed to codehilite as its Pygments formatter, which is
    how highlighting is customised; ``highlight=False`` leaves code blocks
    as escaped plain text.
    """

    def __init__(self, highlight: bool = True, formatter: Any = "html") -> None:
        self._extensions = [
            FencedCodeExtension(),
            TableExtension(),
            CodeHiliteExtension(
                css_class="highlight",
                guess_lang=False,
                use_pygments=highlight,
                pygments_formatter=formatter,
            ),
            "sane_lists",
        ]

    def render(self, source: str) -> str:
        # Markdown instances keep per-document state, so one per call.
        md = markdown.Markdown(extensions=self._extensions, output_format="html")
        return md.convert(source)


def convert_latex(path: Path, timeout: int = CONVERT_TIMEOUT) -> str:
    """Convert a ``.tex`` file to an HTML fragment with pandoc."""
    try:
        proc = subprocess.run(
            [PANDOC, "-f", "latex", "-t", "html", str(path)],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ConversionError("LaTeX converter not available (is pandoc installed?)") from None
    except subprocess.TimeoutExpired:
        raise ConversionError("LaTeX conversion timed out") from None

    if proc.returncode != 0:
        _log.warning("pandoc exited with %d for %s", proc.returncode, path)
        raise ConversionError("Error converting LaTeX", proc.stderr.strip())

    match = _BODY.search(proc.stdout)
    return match.group(1) if match else proc.stdout

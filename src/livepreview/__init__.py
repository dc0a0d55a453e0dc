"""livepreview — local Markdown/LaTeX/directory preview server with live reload."""

__version__ = "0.4.0"

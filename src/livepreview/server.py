"""livepreview server — request dispatch for rendered previews and live reload.

Serves the configured file or directory at http://localhost:8601 by default.
"""

from __future__ import annotations

import gzip
import logging
import os
import platform
import subprocess
import webbrowser
from pathlib import Path
from socketserver import ThreadingMixIn
from typing import Any, cast
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import bottle  # type: ignore

from livepreview import templates
from livepreview.assets import AssetMap
from livepreview.classify import (
    ALWAYS_RAW,
    Strategy,
    classify,
    extension,
    image_mimetype,
    raw_mimetype,
)
from livepreview.config import ServerConfig
from livepreview.listing import breadcrumb, render_listing
from livepreview.livereload import Broadcaster, Watcher
from livepreview.paths import (
    RAW_PREFIX,
    display_name,
    resolve_image,
    resolve_raw,
    resolve_request,
)
from livepreview.render import ConversionError, MarkdownRenderer, convert_latex, split_frontmatter

Bottle = cast(Any, bottle.Bottle)
request = cast(Any, bottle.request)
response = cast(Any, bottle.response)
static_file = cast(Any, bottle.static_file)
HTTPResponse = cast(Any, bottle.HTTPResponse)

_log = logging.getLogger("livepreview.server")

NO_CACHE = "no-cache, no-store, must-revalidate"


try:
    import brotli  # type: ignore

    HAS_BROTLI = True
except ImportError:
    HAS_BROTLI = False

try:
    import zstandard as zstd  # type: ignore

    HAS_ZSTD = True
except ImportError:
    HAS_ZSTD = False


# ── Compression ────────────────────────────────────────────────────


def compress_payload(body: bytes, accept_encoding: str) -> tuple[bytes, str]:
    """Compress payload using the best available algorithm."""
    if HAS_ZSTD and "zstd" in accept_encoding:
        cctx = zstd.ZstdCompressor(level=3)  # type: ignore
        return cctx.compress(body), "zstd"
    if HAS_BROTLI and "br" in accept_encoding:
        return brotli.compress(body), "br"  # type: ignore
    if "gzip" in accept_encoding:
        return gzip.compress(body), "gzip"
    return body, ""


# ── Response helpers ───────────────────────────────────────────────


def _plain(status: int, text: str) -> Any:
    """Plain-text response for errors; never compressed."""
    resp = HTTPResponse(status=status, body=text)
    resp.content_type = "text/plain; charset=utf-8"
    resp.set_header("Cache-Control", NO_CACHE)
    return resp


def _not_found(text: str = "Not found.") -> Any:
    return _plain(404, text)


def _stat(path: Path | None) -> os.stat_result | None:
    """Stat result, or ``None`` for anything that cannot be stat'ed
    (missing, unreadable, or a name with an embedded NUL)."""
    if path is None:
        return None
    try:
        return path.stat()
    except (OSError, ValueError):
        return None


class Dispatcher:
    """Maps each request onto one handling strategy.

    Owns the live-reload broadcaster (the only state shared between requests)
    and the per-process asset routes.
    """

    def __init__(
        self,
        config: ServerConfig,
        broadcaster: Broadcaster | None = None,
        assets: AssetMap | None = None,
        renderer: MarkdownRenderer | None = None,
    ) -> None:
        self.config = config
        self.broadcaster = broadcaster or Broadcaster()
        self.assets = assets or AssetMap()
        self.renderer = renderer or MarkdownRenderer()

    # ── entry point ──

    def handle(self, url: str = "") -> Any:
        url = "/" + url
        path = resolve_request(url, self.config)
        stats = _stat(path)
        strategy = classify(url, path, stats, self.config, self.assets)

        if strategy is Strategy.NOT_FOUND:
            return _not_found()
        if strategy is Strategy.INTERNAL_ASSET:
            return self.serve_asset(url)
        if strategy is Strategy.EVENT_STREAM:
            return self.serve_events()
        if strategy is Strategy.RAW:
            if url.startswith(RAW_PREFIX):
                raw_path = resolve_raw(url, self.config)
                if raw_path is None:
                    return _not_found()
                return self.serve_bytes(raw_path, "text/plain")
            return self.serve_bytes(path, raw_mimetype(path))
        if strategy is Strategy.IMAGE:
            image_path = resolve_image(url, self.config) if url != "/" else path
            if image_path is None:
                return _not_found()
            return self.serve_bytes(image_path, image_mimetype(extension(image_path)))
        if strategy is Strategy.DIRECTORY:
            return self.serve_directory(path)
        if strategy is Strategy.ALWAYS_RAW:
            ext = extension(path)
            if ext == ".html":
                return self.serve_html(path)
            return self.serve_bytes(path, ALWAYS_RAW[ext])
        if strategy is Strategy.LATEX:
            return self.serve_latex(path)
        return self.serve_markdown(path)

    # ── helpers ──

    def _title(self, path: Path) -> str:
        return display_name(os.path.relpath(path, self.config.base_path))

    def _navigation(self, path: Path) -> str:
        if not self.config.is_directory_init:
            return ""
        return breadcrumb(path.parent, self.config.base_path)

    def _content_type(self, computed: str) -> str:
        return self.config.content_type_override or computed

    def _html(self, document: str) -> bytes:
        """Compress a rendered page and set the response headers."""
        accept_enc = request.headers.get("Accept-Encoding", "")
        body, encoding = compress_payload(document.encode("utf-8"), accept_enc)
        response.content_type = self._content_type("text/html; charset=utf-8")
        response.set_header("Cache-Control", NO_CACHE)
        response.set_header("Vary", "Accept-Encoding")
        if encoding:
            response.set_header("Content-Encoding", encoding)
        response.set_header("Content-Length", str(len(body)))
        return body

    # ── handlers ──

    def serve_asset(self, url: str) -> Any:
        asset = self.assets.lookup(url)
        if asset is None:
            return _not_found()
        return static_file(asset.path.name, root=str(asset.path.parent), mimetype=asset.mimetype)

    def serve_events(self) -> Any:
        client = self.broadcaster.subscribe()
        response.content_type = "text/event-stream"
        response.set_header("Cache-Control", "no-cache")
        response.set_header("X-Accel-Buffering", "no")
        return self.broadcaster.stream(client)

    def serve_bytes(self, path: Path, mimetype: str) -> Any:
        """Serve the file unchanged (range/conditional requests handled by bottle)."""
        if not path.is_file():
            return _not_found("File not found.")
        resp = static_file(
            path.name,
            root=str(path.parent),
            mimetype=self._content_type(mimetype),
        )
        if isinstance(resp, bottle.HTTPError):
            return _plain(resp.status_code, resp.body if isinstance(resp.body, str) else "Error.")
        resp.set_header("Cache-Control", NO_CACHE)
        return resp

    def serve_html(self, path: Path) -> Any:
        try:
            document = path.read_bytes()
        except OSError:
            return _not_found("File not found.")
        body = templates.inject_reload_script(document)
        response.content_type = self._content_type("text/html; charset=utf-8")
        response.set_header("Cache-Control", NO_CACHE)
        response.set_header("Content-Length", str(len(body)))
        return body

    def serve_directory(self, path: Path) -> Any:
        try:
            fragment = render_listing(path, self.config.base_path)
        except OSError as e:
            _log.warning("cannot list %s: %s", path, e)
            return _plain(500, "Error reading directory.")
        title = f"Directory: {self._title(path)}"
        return self._html(templates.page(fragment, title, self.assets, directory_chrome=True))

    def serve_latex(self, path: Path) -> Any:
        try:
            content = convert_latex(path)
        except ConversionError as e:
            return _plain(500, str(e))
        document = templates.page(
            content,
            self._title(path),
            self.assets,
            navigation=self._navigation(path),
            directory_chrome=self.config.is_directory_init,
        )
        return self._html(document)

    def serve_markdown(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return _not_found("File not found.")
        try:
            metadata, source = split_frontmatter(text)
            content = templates.metadata_table(metadata) + self.renderer.render(source)
        except Exception as e:
            _log.exception("rendering %s failed", path)
            return _plain(500, f"Error rendering Markdown: {e}")
        title = str(metadata.get("title") or self._title(path))
        document = templates.page(
            content,
            title,
            self.assets,
            navigation=self._navigation(path),
            directory_chrome=self.config.is_directory_init,
        )
        return self._html(document)


def create_app(
    config: ServerConfig,
    broadcaster: Broadcaster | None = None,
    assets: AssetMap | None = None,
) -> Any:
    """Build the bottle app; the dispatcher is reachable as ``app.config["livepreview.dispatcher"]``."""
    dispatcher = Dispatcher(config, broadcaster=broadcaster, assets=assets)
    app = Bottle()
    app.config["livepreview.dispatcher"] = dispatcher
    app.route("/", "GET", dispatcher.handle)
    app.route("/<url:path>", "GET", dispatcher.handle)
    return app


# ── Server ─────────────────────────────────────────────────────────


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_request(self, *args: Any, **kwargs: Any) -> None:
        pass


class ThreadingWSGIRefServer(bottle.ServerAdapter):  # type: ignore[misc]
    """wsgiref with a thread per connection, so event streams don't block.

    Calls the ``on_bind`` option with the bound port before serving.
    """

    def run(self, handler: Any) -> None:
        srv = make_server(
            self.host, self.port, handler,
            server_class=_ThreadingWSGIServer,
            handler_class=_QuietHandler,
        )
        self.port = srv.server_port
        on_bind = self.options.get("on_bind")
        if on_bind is not None:
            on_bind(srv.server_port)
        try:
            srv.serve_forever()
        finally:
            srv.server_close()


def run(config: ServerConfig, open_in_browser: bool = True) -> None:
    """Serve until interrupted. Raises ``OSError`` if the port cannot be bound."""
    broadcaster = Broadcaster()
    watcher = Watcher(broadcaster, config.watch_root, single_file=config.serve_file_on_root)
    app = create_app(config, broadcaster=broadcaster)

    def on_bind(port: int) -> None:
        url = f"http://localhost:{port}"
        _log.info("serving %s at %s", config.original_path, url)
        watcher.start()
        if open_in_browser:
            open_browser(url)

    server = ThreadingWSGIRefServer(host=config.host, port=config.port, on_bind=on_bind)
    try:
        bottle.run(app, server=server, quiet=True)
    finally:
        watcher.stop()
        broadcaster.close()


# ── Browser opener ─────────────────────────────────────────────────


def open_browser(url: str) -> None:
    system = platform.system()
    try:
        if system == "Linux":
            subprocess.Popen(
                ["xdg-open", url], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        elif system == "Darwin":
            subprocess.Popen(
                ["open", url], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        elif system == "Windows":
            subprocess.Popen(
                ["start", url],
                shell=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        else:
            webbrowser.open(url)
    except OSError:
        webbrowser.open(url)

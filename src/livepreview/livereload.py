"""Live reload: file-system watching and the server-sent event fan-out."""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections.abc import Iterator
from pathlib import Path

from watchdog.events import (  # type: ignore
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer  # type: ignore

_log = logging.getLogger("livepreview.livereload")

REFRESH = "refresh"
KEEPALIVE_SECONDS = 15.0

_CHANGE_EVENTS = frozenset({EVENT_TYPE_MODIFIED, EVENT_TYPE_CREATED, EVENT_TYPE_MOVED})


class Broadcaster:
    """Set of connected event-stream clients, one queue per client.

    Connections are served on separate threads, so the set is only touched
    under ``_lock`` and broadcasts iterate over a snapshot.
    """

    def __init__(self, keepalive: float = KEEPALIVE_SECONDS) -> None:
        self.keepalive = keepalive
        self._clients: set[queue.Queue[str | None]] = set()
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue[str | None]:
        client: queue.Queue[str | None] = queue.Queue()
        with self._lock:
            self._clients.add(client)
        return client

    def unsubscribe(self, client: queue.Queue[str | None]) -> None:
        with self._lock:
            self._clients.discard(client)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def broadcast(self, message: str = REFRESH) -> int:
        """Queue ``message`` for every client connected right now."""
        with self._lock:
            snapshot = list(self._clients)
        for client in snapshot:
            client.put_nowait(message)
        return len(snapshot)

    def close(self) -> None:
        """End every open stream."""
        with self._lock:
            snapshot = list(self._clients)
        for client in snapshot:
            client.put_nowait(None)

    def stream(self, client: queue.Queue[str | None]) -> Iterator[bytes]:
        """Yield SSE frames for ``client`` until it disconnects.

        A failed write surfaces as ``GeneratorExit`` (the server closes the
        iterator), which drops the client from the set.
        """
        try:
            yield b": connected\n\n"
            while True:
                try:
                    message = client.get(timeout=self.keepalive)
                except queue.Empty:
                    yield b": keepalive\n\n"
                    continue
                if message is None:
                    return
                yield f"data: {message}\n\n".encode("utf-8")
        finally:
            self.unsubscribe(client)


class ReloadHandler(FileSystemEventHandler):
    """Broadcast a refresh for file changes; ignore directory events.

    With ``only`` set, events for any other path are ignored (used when a
    single file is served and its parent directory is what gets watched).
    """

    def __init__(self, broadcaster: Broadcaster, only: Path | None = None) -> None:
        super().__init__()
        self.broadcaster = broadcaster
        self.only = os.path.normpath(str(only)) if only is not None else None

    def _paths(self, event: FileSystemEvent) -> list[str]:
        paths = [os.fsdecode(event.src_path)] if event.src_path else []
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        return paths

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        paths = self._paths(event)
        if not paths:
            return
        if self.only is not None and self.only not in map(os.path.normpath, paths):
            return
        count = self.broadcaster.broadcast()
        _log.debug("%s %s -> refreshed %d client(s)", event.event_type, paths[-1], count)


class Watcher:
    """Runs a watchdog observer over the served file or directory tree."""

    def __init__(self, broadcaster: Broadcaster, root: Path, single_file: bool = False) -> None:
        self.broadcaster = broadcaster
        self.root = root
        self.single_file = single_file
        self._observer: Observer | None = None

    def start(self) -> bool:
        """Start watching; returns ``False`` (and logs) if that is not possible."""
        if self.single_file:
            target, recursive = self.root.parent, False
            handler = ReloadHandler(self.broadcaster, only=self.root)
        else:
            target, recursive = self.root, True
            handler = ReloadHandler(self.broadcaster)

        observer = Observer()
        observer.daemon = True
        try:
            observer.schedule(handler, str(target), recursive=recursive)
            observer.start()
        except OSError as e:
            _log.warning("live reload disabled, cannot watch %s: %s", target, e)
            return False
        self._observer = observer
        _log.info("watching %s for changes", self.root)
        return True

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None

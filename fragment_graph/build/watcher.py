"""Filesystem watcher that triggers rebuilds."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from fragment_graph.utils.globs import matches_all

ChangeCallback = Callable[[str, Path], None]


class ProjectEventHandler(FileSystemEventHandler):
    """Forward file events under the project root to a callback."""

    def __init__(
        self,
        root: Path,
        callback: ChangeCallback,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
    ) -> None:
        super().__init__()
        self.root = root
        self.callback = callback
        self.include = include or ["**/*"]
        self.exclude = exclude or []

    def wants(self, path: Path) -> bool:
        try:
            rel_path = path.relative_to(self.root).as_posix()
        except ValueError:
            return False
        if self.exclude and matches_all(rel_path, self.exclude):
            return False
        return matches_all(rel_path, self.include)

    def on_created(self, event: FileSystemEvent) -> None:
        self._dispatch_path("created", event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._dispatch_path("modified", event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._dispatch_path("moved", event, event.dest_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._dispatch_path("deleted", event, event.src_path)

    def _dispatch_path(self, kind: str, event: FileSystemEvent, raw_path: str | bytes) -> None:
        if event.is_directory:
            return
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if self.wants(path):
            self.callback(kind, path)


class Watcher:
    """Wrapper around a watchdog observer for one project root."""

    def __init__(self, observer: BaseObserver | None = None) -> None:
        self._observer: BaseObserver = observer or Observer()
        self._lock = threading.Lock()
        self._started = False

    def watch(
        self,
        root: Path,
        callback: ChangeCallback,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
    ) -> ProjectEventHandler:
        normalized_root = root.expanduser().resolve()
        handler = ProjectEventHandler(normalized_root, callback, include=include, exclude=exclude)
        with self._lock:
            self._observer.schedule(handler, str(normalized_root), recursive=True)
        return handler

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._observer.start()
            self._started = True

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False

    def close(self) -> None:
        self.stop()
        with self._lock:
            self._observer.unschedule_all()


__all__ = ["Watcher", "ProjectEventHandler", "ChangeCallback"]

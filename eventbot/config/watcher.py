"""
Config directory watcher for runtime config changes
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Callable
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..logging_config import log_structured_error


class ConfigFileHandler(FileSystemEventHandler):
    """Forwards changes of the watched files, debounced by mtime."""

    def __init__(self, watcher: ConfigWatcher):
        super().__init__()
        self.watcher = watcher
        self.last_modified: dict[str, float] = {}

    def _should_process(self, path: str) -> bool:
        """Check if the file's mtime advanced since last processed."""
        try:
            mtime = os.path.getmtime(path)
        except FileNotFoundError:
            return False
        if mtime <= self.last_modified.get(path, 0.0):
            return False
        self.last_modified[path] = mtime
        return True

    def _handle_event(self, src_path: str) -> None:
        path = os.path.abspath(src_path)
        if not self.watcher.is_watched(path):
            return
        if self._should_process(path):
            self.watcher.notify(path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(str(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event(str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save via rename report the real file as the destination
        dest = getattr(event, "dest_path", None) or event.src_path
        self._handle_event(str(dest))


class ConfigWatcher:
    """Watches files in one directory and runs callbacks on the event loop.

    Watchdog delivers events on its own thread; callbacks are hopped onto the
    asyncio loop that called ``start`` so they never race the bot's state.
    """

    def __init__(self, config_dir: str):
        self.config_dir = os.path.abspath(config_dir)
        self._callbacks: dict[str, Callable[[], Any]] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self.observer: Any | None = None
        self.running = False

    def watch(self, filename: str, callback: Callable[[], Any]) -> None:
        path = os.path.join(self.config_dir, filename)
        with self._lock:
            self._callbacks[path] = callback

    def is_watched(self, path: str) -> bool:
        with self._lock:
            return path in self._callbacks

    def start(self) -> None:
        """Start watching the config directory"""
        if self.running:
            return
        if not os.path.isdir(self.config_dir):
            logging.warning(f"⚠️ Config directory {self.config_dir} missing, hot reload disabled")
            return
        self._loop = asyncio.get_running_loop()
        try:
            observer = Observer()
            observer.schedule(ConfigFileHandler(self), self.config_dir, recursive=False)
            observer.start()
        except Exception as e:
            log_structured_error(
                "config_watch", "Failed to start config watcher", exception=e
            )
            return
        self.observer = observer
        self.running = True
        logging.info(f"👀 Watching {self.config_dir} for config changes")

    def stop(self) -> None:
        """Stop watching the config directory"""
        obs = self.observer
        if self.running and obs is not None:
            try:
                obs.stop()
                obs.join()
            finally:
                self.running = False
                self.observer = None
                logging.info("👀 Config watcher stopped")

    def notify(self, path: str) -> None:
        """Schedule the callback for ``path`` on the event loop (thread-safe)."""
        with self._lock:
            callback = self._callbacks.get(path)
        loop = self._loop
        if callback is None or loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._run_callback, path, callback)

    @staticmethod
    def _run_callback(path: str, callback: Callable[[], Any]) -> None:
        logging.info(f"🔄 Config change detected: {os.path.basename(path)}")
        try:
            callback()
        except Exception as e:
            log_structured_error(
                "config_watch",
                f"Reload handler for {os.path.basename(path)} failed",
                exception=e,
            )

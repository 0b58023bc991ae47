"""File watcher that reports changes to individual files."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]


def normalize_path(path: Path) -> Path:
    """Absolute, normalized form used to match watchdog event paths."""
    return Path(os.path.abspath(os.fspath(path)))


class FileChangeHandler(FileSystemEventHandler):
    """Dispatches change events for the subscribed files of one directory."""

    def __init__(self, directory: Path, event_loop: asyncio.AbstractEventLoop, stats: Dict[str, int]):
        """Initialize file change handler.

        Args:
            directory: Directory being watched (non-recursively)
            event_loop: Event loop the callbacks run on
            stats: Shared statistics of the owning watcher
        """
        super().__init__()
        self.directory = directory
        self.event_loop = event_loop
        self.callbacks: Dict[Path, List[ChangeCallback]] = {}
        self._stats = stats

    def add(self, file_path: Path, callback: ChangeCallback) -> None:
        self.callbacks.setdefault(file_path, []).append(callback)

    def remove(self, file_path: Path, callback: ChangeCallback) -> None:
        callbacks = self.callbacks.get(file_path, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self.callbacks.pop(file_path, None)

    def is_empty(self) -> bool:
        return not self.callbacks

    def _changed_path(self, event: FileSystemEvent) -> Optional[Path]:
        """Path whose content changed, or None for events we don't handle."""
        if event.is_directory:
            return None

        if event.event_type in ("created", "modified"):
            return normalize_path(Path(os.fsdecode(event.src_path)))

        # Editors that save via a temp file and rename land here
        if event.event_type == "moved":
            return normalize_path(Path(os.fsdecode(event.dest_path)))

        return None

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any file system event (runs on the observer thread)."""
        try:
            file_path = self._changed_path(event)
            if file_path is None:
                return

            # Copy so the loop thread can (un)subscribe while we iterate
            callbacks = list(self.callbacks.get(file_path, ()))
            if not callbacks:
                return

            self._stats["events_processed"] += 1
            logger.debug(f"File {event.event_type}: {file_path}")
            for callback in callbacks:
                self.event_loop.call_soon_threadsafe(callback)

        except Exception as e:
            logger.error(f"Error handling file system event: {e}")


class WatchSubscription:
    """Handle for one file subscription; ``cancel()`` releases it."""

    def __init__(self, watcher: "FileWatcher", file_path: Path, callback: ChangeCallback):
        self.watcher = watcher
        self.file_path = file_path
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.watcher._unsubscribe(self.file_path, self.callback)


class FileWatcher:
    """Watches individual files for changes using a single watchdog observer."""

    def __init__(self):
        """Initialize file watcher."""
        self.observer = Observer()
        self.handlers: Dict[Path, FileChangeHandler] = {}
        self.watches: Dict[Path, ObservedWatch] = {}
        self.running = False
        self.event_loop: Optional[asyncio.AbstractEventLoop] = None

        # Statistics
        self._stats = {
            "subscriptions": 0,
            "events_processed": 0,
        }

    async def start(self) -> None:
        """Start the observer thread."""
        if self.running:
            logger.warning("File watcher is already running")
            return

        self.event_loop = asyncio.get_running_loop()

        logger.info("Starting file watcher")
        self.observer.start()
        self.running = True

    async def stop(self) -> None:
        """Stop the observer thread and drop every subscription."""
        if not self.running:
            return

        logger.info("Stopping file watcher")

        self.running = False
        self.observer.stop()
        self.observer.join(timeout=5)

        self.handlers.clear()
        self.watches.clear()
        self._stats["subscriptions"] = 0

        logger.info("File watcher stopped")

    def subscribe(self, local_path: Path, on_change: ChangeCallback) -> WatchSubscription:
        """Call ``on_change`` on the event loop whenever ``local_path`` changes.

        The parent directory is watched, so the file itself may not exist yet.

        Raises:
            RuntimeError: If the watcher has not been started
            FileNotFoundError: If the parent directory does not exist
        """
        if not self.running or not self.event_loop:
            raise RuntimeError("File watcher not running. Call start() first.")

        file_path = normalize_path(local_path)
        directory = file_path.parent
        if not directory.is_dir():
            raise FileNotFoundError(f"Watch directory does not exist: {directory}")

        handler = self.handlers.get(directory)
        if handler is None:
            handler = FileChangeHandler(directory, self.event_loop, self._stats)
            self.watches[directory] = self.observer.schedule(handler, str(directory), recursive=False)
            self.handlers[directory] = handler
            logger.debug(f"Added watch for directory: {directory}")

        handler.add(file_path, on_change)
        self._stats["subscriptions"] += 1
        logger.info(f"Watching file {file_path}")

        return WatchSubscription(self, file_path, on_change)

    def _unsubscribe(self, file_path: Path, callback: ChangeCallback) -> None:
        directory = file_path.parent
        handler = self.handlers.get(directory)
        if handler is None:
            return

        handler.remove(file_path, callback)
        self._stats["subscriptions"] -= 1

        if handler.is_empty():
            del self.handlers[directory]
            watch = self.watches.pop(directory)
            if self.running:
                self.observer.unschedule(watch)
            logger.debug(f"Removed watch for directory: {directory}")

    def get_statistics(self) -> dict:
        """Get watcher statistics.

        Returns:
            Dictionary with watcher statistics
        """
        return {
            "running": self.running,
            "watched_directories": len(self.handlers),
            **self._stats,
        }

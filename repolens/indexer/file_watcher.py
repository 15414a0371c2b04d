"""Filesystem watcher that batches changes into incremental analysis runs."""

import asyncio
import logging
import threading
import time
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .scanner import is_excluded_path

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Set[str], Set[str]], Awaitable[None]]


class RepositoryEventHandler(FileSystemEventHandler):
    """Collects relative paths of changed files under one repository root."""

    def __init__(self, root: str, exclude_patterns: Optional[List[str]] = None):
        """Initialize event handler.

        Args:
            root: Repository root being watched
            exclude_patterns: Extra glob patterns whose matches are ignored
        """
        super().__init__()
        self.root = Path(root).resolve()
        self.exclude_patterns = exclude_patterns or []

        self._lock = threading.Lock()
        self.modified_files: Set[str] = set()
        self.deleted_files: Set[str] = set()
        self.last_change_time = 0.0

    def relative_path(self, file_path: str) -> Optional[str]:
        """Map an event path to a repository-relative path that the scanner would keep.

        Args:
            file_path: Absolute path reported by the observer

        Returns:
            POSIX relative path, or None when the path is outside the root or excluded
        """
        try:
            rel_path = Path(file_path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None
        if is_excluded_path(rel_path):
            return None
        if any(PurePosixPath(rel_path).match(pattern) for pattern in self.exclude_patterns):
            return None
        return rel_path

    def _record(self, file_path: str, deleted: bool) -> None:
        rel_path = self.relative_path(file_path)
        if rel_path is None:
            return
        with self._lock:
            if deleted:
                self.modified_files.discard(rel_path)
                self.deleted_files.add(rel_path)
            else:
                self.deleted_files.discard(rel_path)
                self.modified_files.add(rel_path)
            self.last_change_time = time.time()
        logger.debug(f"File {'deleted' if deleted else 'changed'}: {rel_path}")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path, deleted=False)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path, deleted=False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path, deleted=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # A move is a delete of the source plus a create of the destination
        self._record(event.src_path, deleted=True)
        dest_path = getattr(event, "dest_path", None)
        if dest_path:
            self._record(dest_path, deleted=False)

    def get_pending_changes(self) -> Tuple[Set[str], Set[str]]:
        """Take the pending changes and clear the buffers.

        Returns:
            Tuple of (modified_files, deleted_files)
        """
        with self._lock:
            modified, deleted = self.modified_files, self.deleted_files
            self.modified_files, self.deleted_files = set(), set()
        return modified, deleted

    def has_pending_changes(self) -> bool:
        with self._lock:
            return bool(self.modified_files or self.deleted_files)

    def time_since_last_change(self) -> float:
        return time.time() - self.last_change_time


class RepositoryWatcher:
    """Watches a repository and hands debounced change batches to a callback."""

    def __init__(
        self,
        root: str,
        on_change_callback: ChangeCallback,
        debounce_seconds: float = 2.0,
        exclude_patterns: Optional[List[str]] = None,
    ):
        """Initialize repository watcher.

        Args:
            root: Repository root to watch recursively
            on_change_callback: Async callback receiving (modified, deleted) path sets
            debounce_seconds: Quiet period required before a batch is flushed
            exclude_patterns: Extra glob patterns to ignore
        """
        self.root = Path(root)
        self.on_change_callback = on_change_callback
        self.debounce_seconds = debounce_seconds

        self.event_handler = RepositoryEventHandler(root, exclude_patterns)
        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(self.root), recursive=True)

        self._running = False
        self._debounce_task: Optional[asyncio.Task] = None

        logger.info(f"Initialized watcher for {self.root}")

    def start(self) -> None:
        if not self._running:
            self.observer.start()
            self._running = True
            logger.info(f"Started watching {self.root}")

    def stop(self) -> None:
        if self._running:
            self._running = False
            self.observer.stop()
            self.observer.join(timeout=5.0)
            logger.info(f"Stopped watching {self.root}")

    def is_running(self) -> bool:
        return self._running

    async def flush(self, force: bool = False) -> bool:
        """Deliver pending changes once the debounce window has passed.

        Args:
            force: Deliver regardless of the debounce window

        Returns:
            True if a batch was handed to the callback
        """
        handler = self.event_handler
        if not handler.has_pending_changes():
            return False
        if not force and handler.time_since_last_change() < self.debounce_seconds:
            return False

        modified, deleted = handler.get_pending_changes()
        logger.info(f"Processing changes: {len(modified)} modified, {len(deleted)} deleted")
        await self.on_change_callback(modified, deleted)
        return True

    async def run_debounce_loop(self, poll_interval: float = 0.5) -> None:
        """Poll for settled changes until the watcher stops."""
        logger.debug("Started debounce loop")
        while self._running:
            try:
                await self.flush()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error processing file changes: {e}")
            await asyncio.sleep(poll_interval)

    async def run_async(self) -> None:
        """Watch until stopped, flushing batches in the background."""
        self.start()
        self._debounce_task = asyncio.create_task(self.run_debounce_loop())
        try:
            while self._running:
                await asyncio.sleep(1.0)
        finally:
            self._debounce_task.cancel()
            try:
                await self._debounce_task
            except asyncio.CancelledError:
                pass

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

"""Watch backends: the capability interface and its watchdog implementation."""

import logging
import os
import queue
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from .config import WatchConfig
from .exceptions import WatchRegistrationError, WatchRuntimeError
from .models import EventBatch, FileEventKindTag, FileTypeTag, RawEvent, SourceTag

logger = logging.getLogger(__name__)

_KIND_TAGS = {
    "created": FileEventKindTag("create"),
    "deleted": FileEventKindTag("remove"),
    "modified": FileEventKindTag("modify", "any"),
    "opened": FileEventKindTag("access", "open"),
    "closed": FileEventKindTag("access", "close", "write"),
    "closed_no_write": FileEventKindTag("access", "close", "read"),
}
_RENAME_FROM = FileEventKindTag("modify", "name", "from")
_RENAME_TO = FileEventKindTag("modify", "name", "to")
_OTHER = FileEventKindTag("other")


class WatchBackend(ABC):
    """
    What the watch loop needs from an OS change-detection primitive.

    Implementations deliver debounced batches of raw events, preserving
    order within one root.
    """

    @abstractmethod
    def register(self, root: Path) -> bool:
        """
        Start watching a root.

        Returns:
            True if watching started, False if the root was already watched

        Raises:
            WatchRegistrationError: If the root cannot be watched
        """

    @abstractmethod
    def unregister(self, root: Path) -> bool:
        """Stop watching a root. Returns False if it was not watched."""

    @abstractmethod
    def next_batch(self, timeout: float) -> Optional[EventBatch]:
        """
        Wait up to ``timeout`` seconds for the next batch.

        Returns:
            The batch, or None if nothing arrived in time

        Raises:
            WatchRuntimeError: If watching a root failed
        """

    @abstractmethod
    def close(self) -> int:
        """Stop watching every root. Returns the number of roots released."""


class FSEventHandler(FileSystemEventHandler):
    """Converts watchdog events into RawEvents."""

    def __init__(
        self,
        callback: Callable[[RawEvent], None],
        root: Path,
        source: str = "watchdog",
        on_root_lost: Optional[Callable[[Path, str], None]] = None,
    ):
        super().__init__()
        self.callback = callback
        self.root = root
        self.source = source
        self.on_root_lost = on_root_lost

    def _emit(self, path: Path, kind_tag: FileEventKindTag, is_directory: bool) -> None:
        raw_event = RawEvent(
            path=path,
            tags=(
                kind_tag,
                FileTypeTag("dir" if is_directory else "file"),
                SourceTag(self.source),
            ),
            root=self.root,
        )
        self.callback(raw_event)

    def on_any_event(self, event: FileSystemEvent) -> None:
        src_path = Path(os.fsdecode(event.src_path))

        if event.event_type == "moved":
            dest_path = Path(os.fsdecode(event.dest_path))
            self._emit(src_path, _RENAME_FROM, event.is_directory)
            self._emit(dest_path, _RENAME_TO, event.is_directory)
        else:
            kind_tag = _KIND_TAGS.get(event.event_type, _OTHER)
            self._emit(src_path, kind_tag, event.is_directory)

        if event.event_type in ("deleted", "moved") and src_path == self.root:
            if self.on_root_lost:
                self.on_root_lost(self.root, f"watched root was {event.event_type}")


class WatchdogBackend(WatchBackend):
    """
    Watch backend built on watchdog observers, one observer per root.

    Events from all observers go into one FIFO queue; ``next_batch`` closes
    a batch once the queue has been quiet for the debounce window.
    """

    def __init__(self, config: Optional[WatchConfig] = None):
        """
        Initialize the backend.

        Args:
            config: Watch configuration (debounce, polling, recursion)
        """
        self.config = config or WatchConfig()
        self._events: "queue.Queue[RawEvent]" = queue.Queue()
        self._observers: Dict[Path, BaseObserver] = {}
        self._failures: Dict[Path, WatchRuntimeError] = {}
        self._lock = threading.Lock()

    @property
    def source(self) -> str:
        return "polling" if self.config.use_polling else "watchdog"

    def _make_observer(self) -> BaseObserver:
        if self.config.use_polling:
            return PollingObserver(timeout=self.config.polling_interval_ms / 1000.0)
        return Observer()

    def _root_lost(self, root: Path, reason: str) -> None:
        logger.warning(f"Lost watched root {root}: {reason}")
        with self._lock:
            self._failures.setdefault(root, WatchRuntimeError(f"{reason}: {root}", root=root))

    def register(self, root: Path) -> bool:
        root = Path(root).resolve()
        if not root.is_dir():
            raise WatchRegistrationError(root, "root is not an existing directory")

        with self._lock:
            if root in self._observers:
                return False

            observer = self._make_observer()
            handler = FSEventHandler(self._events.put, root, self.source, self._root_lost)
            try:
                observer.schedule(handler, str(root), recursive=self.config.recursive)
                observer.start()
            except OSError as e:
                observer.stop()
                raise WatchRegistrationError(root, f"cannot watch root ({e})") from e

            self._observers[root] = observer
            self._failures.pop(root, None)

        logger.info(f"Watching {root} ({self.source})")
        return True

    def unregister(self, root: Path) -> bool:
        root = Path(root).resolve()

        with self._lock:
            observer = self._observers.pop(root, None)
            self._failures.pop(root, None)

        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=5.0)

        dropped = self._discard_queued(root)
        if observer is None:
            return False

        logger.info(f"Stopped watching {root} ({dropped} queued event(s) discarded)")
        return True

    def _discard_queued(self, root: Optional[Path] = None) -> int:
        """Remove queued events of one root, or of every root if root is None."""
        with self._events.mutex:
            pending = self._events.queue
            kept = [e for e in pending if root is not None and e.root != root]
            dropped = len(pending) - len(kept)
            pending.clear()
            pending.extend(kept)
        return dropped

    def close(self) -> int:
        with self._lock:
            observers = list(self._observers.values())
            self._observers.clear()
            self._failures.clear()

        for observer in observers:
            observer.stop()
        for observer in observers:
            if observer.is_alive():
                observer.join(timeout=5.0)
        self._discard_queued()
        return len(observers)

    def next_batch(self, timeout: float) -> Optional[EventBatch]:
        self._raise_failure()

        try:
            first = self._events.get(timeout=timeout)
        except queue.Empty:
            self._check_health()
            return None

        events: List[RawEvent] = [first]
        quiet = self.config.debounce_ms / 1000.0
        while len(events) < self.config.max_batch_size:
            try:
                events.append(self._events.get(timeout=quiet))
            except queue.Empty:
                break

        return EventBatch(events=events)

    def _raise_failure(self) -> None:
        with self._lock:
            if not self._failures:
                return
            root = next(iter(self._failures))
            failure = self._failures.pop(root)
        raise failure

    def _check_health(self) -> None:
        with self._lock:
            observers = list(self._observers.items())

        for root, observer in observers:
            if not root.is_dir():
                raise WatchRuntimeError(f"watched root disappeared: {root}", root=root)
            if not observer.is_alive():
                raise WatchRuntimeError(f"observer for {root} stopped unexpectedly", root=root)

    def is_watching(self, root: Path) -> bool:
        root = Path(root).resolve()
        with self._lock:
            return root in self._observers

    def get_watched_roots(self) -> List[Path]:
        with self._lock:
            return list(self._observers.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)

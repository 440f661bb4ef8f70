"""Watch loop: root registration, batch filtering and handler dispatch."""

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .config import WatchConfig
from .exceptions import (
    FilterError,
    HandlerError,
    LoopAlreadyRunningError,
    RootAlreadyExistsError,
    WatchgateError,
    WatchRegistrationError,
    WatchRuntimeError,
)
from .fs_watcher import WatchBackend, WatchdogBackend
from .models import Disposition, EventBatch, RawEvent, WatchState
from .pipeline import FilterPipeline
from .root_manager import RootManager

logger = logging.getLogger(__name__)

Handler = Callable[[EventBatch], Optional[Disposition]]


@dataclass
class LoopStats:
    """Counters kept by a watch loop."""
    batches_received: int = 0
    batches_dispatched: int = 0
    events_received: int = 0
    events_passed: int = 0
    events_dropped: int = 0


class WatchLoop:
    """
    Receives event batches from a backend and dispatches qualifying ones.

    A batch qualifies when at least one of its events passes the filter
    pipeline; the handler then receives the whole, unpruned batch. The
    handler runs on the thread that called :meth:`run`, one batch at a
    time, and its Disposition decides what happens next:

    - CONTINUE (or None): keep watching
    - STOP: release the roots, ``run`` returns STOPPED
    - PAUSE: release the roots, ``run`` returns IDLE and may be called again

    A handler exception, or a backend failure without ``auto_resume``,
    moves the loop to FAILED and is raised from ``run``.
    """

    def __init__(
        self,
        backend: WatchBackend,
        pipeline: FilterPipeline,
        handler: Handler,
        config: Optional[WatchConfig] = None,
    ):
        """
        Initialize the loop.

        Args:
            backend: Source of event batches
            pipeline: Filter deciding which events qualify
            handler: Callback invoked with each qualifying batch
            config: Loop configuration (roots, timeouts, failure policy)
        """
        self.backend = backend
        self.pipeline = pipeline
        self.handler = handler
        self.config = config or WatchConfig()
        self.stats = LoopStats()

        self._root_manager = RootManager()
        self._state = WatchState.IDLE
        self._stop_event = threading.Event()
        self._running = False
        self._lock = threading.Lock()

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def get_roots(self) -> List[Path]:
        """Roots currently registered, sorted."""
        return sorted(self._root_manager.get_roots())

    def _set_state(self, state: WatchState) -> None:
        if state is not self._state:
            logger.debug(f"Watch loop {self._state.value} -> {state.value}")
            self._state = state

    def stop(self) -> None:
        """
        Ask the loop to stop.

        Safe to call from any thread; the loop stops after the current
        batch, or within one poll timeout when idle.
        """
        self._stop_event.set()

    def run(self, roots: Optional[Iterable[Path]] = None) -> WatchState:
        """
        Watch the roots and dispatch batches until stopped, paused or failed.

        Args:
            roots: Roots to watch (defaults to the configured roots)

        Returns:
            STOPPED after a clean stop, IDLE after a pause

        Raises:
            WatchRegistrationError: If the roots cannot be registered
            HandlerError: If the handler fails
            WatchRuntimeError: If the backend fails while watching
            LoopAlreadyRunningError: If the loop is already running
        """
        with self._lock:
            if self._running:
                raise LoopAlreadyRunningError("Watch loop is already running")
            if self._state in (WatchState.STOPPED, WatchState.FAILED):
                raise WatchgateError(f"Watch loop has terminated ({self._state.value})")
            self._running = True

        try:
            return self._run(list(roots) if roots is not None else list(self.config.roots))
        finally:
            with self._lock:
                self._running = False

    def _run(self, roots: List[Path]) -> WatchState:
        try:
            self._register_all(roots)
        except WatchgateError:
            self._set_state(WatchState.FAILED)
            raise

        self._set_state(WatchState.WATCHING)
        logger.info(f"Watching {len(self._root_manager)} root(s)")
        timeout = self.config.poll_timeout_ms / 1000.0

        try:
            while not self._stop_event.is_set():
                try:
                    batch = self.backend.next_batch(timeout)
                except WatchRuntimeError as e:
                    self._recover(e)
                    continue

                if batch is None:
                    continue

                disposition = self._dispatch(batch)

                if disposition is Disposition.STOP:
                    logger.info("Handler requested stop")
                    break
                if disposition is Disposition.PAUSE:
                    logger.info("Handler requested pause")
                    self._release_roots()
                    self._set_state(WatchState.IDLE)
                    return WatchState.IDLE

                self._set_state(WatchState.WATCHING)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping")
        except Exception:
            self._release_roots()
            self._set_state(WatchState.FAILED)
            raise

        self._release_roots()
        self._set_state(WatchState.STOPPED)
        return WatchState.STOPPED

    def _dispatch(self, batch: EventBatch) -> Disposition:
        """Filter one batch and hand it to the handler if anything passed."""
        self._set_state(WatchState.DISPATCHING)
        self.stats.batches_received += 1
        self.stats.events_received += len(batch)

        passed = 0
        for event in batch:
            try:
                if self.pipeline.check(self._with_root(event)):
                    passed += 1
            except FilterError as e:
                self.stats.events_dropped += 1
                logger.warning(f"Dropping malformed event in batch {batch.batch_id}: {e}")

        self.stats.events_passed += passed
        if not passed:
            logger.debug(f"Batch {batch.batch_id}: none of {len(batch)} event(s) passed")
            return Disposition.CONTINUE

        logger.debug(f"Batch {batch.batch_id}: {passed}/{len(batch)} event(s) passed, dispatching")
        self.stats.batches_dispatched += 1
        try:
            disposition = self.handler(batch)
        except Exception as e:
            raise HandlerError(f"Handler failed on batch {batch.batch_id}: {e}") from e

        if disposition is None:
            return Disposition.CONTINUE
        if not isinstance(disposition, Disposition):
            raise HandlerError(f"Handler returned {disposition!r}, expected a Disposition")
        return disposition

    def _with_root(self, event: RawEvent) -> RawEvent:
        """Attach the watched root to an event the backend left unattributed."""
        if getattr(event, "root", None) is not None:
            return event
        path = getattr(event, "path", None)
        if not isinstance(path, (str, Path)):
            return event
        root = self._root_manager.find_root_for_path(Path(path))
        if root is None:
            return event
        return replace(event, root=root)

    def _register_all(self, roots: List[Path]) -> None:
        """Register every root, parents first, or none of them."""
        if not roots:
            raise WatchRegistrationError(Path.cwd(), "no roots to watch")

        ordered = sorted(
            {Path(r).expanduser().resolve() for r in roots},
            key=lambda p: (len(p.parts), str(p)),
        )
        registered = 0
        first_error: Optional[WatchRegistrationError] = None

        for root in ordered:
            try:
                if self._register_one(root):
                    registered += 1
            except WatchRegistrationError as e:
                if not self.config.allow_partial_registration:
                    logger.error(f"Cannot watch {root}, releasing {registered} registered root(s)")
                    self._release_roots()
                    raise
                logger.warning(f"Skipping root: {e}")
                first_error = first_error or e

        if not registered:
            raise first_error or WatchRegistrationError(ordered[0], "no root could be watched")

    def _register_one(self, root: Path) -> bool:
        try:
            self._root_manager.add_root(root)
        except RootAlreadyExistsError as e:
            logger.warning(f"Skipping overlapping root: {e}")
            return False

        try:
            self.backend.register(root)
        except WatchRegistrationError:
            self._root_manager.remove_root(root)
            raise
        except OSError as e:
            self._root_manager.remove_root(root)
            raise WatchRegistrationError(root, f"cannot watch root ({e})") from e
        return True

    def _release_roots(self) -> None:
        for root in self._root_manager.get_roots():
            try:
                self.backend.unregister(root)
            except Exception as e:
                logger.warning(f"Error releasing root {root}: {e}")
        self._root_manager.clear()

    def _recover(self, error: WatchRuntimeError) -> None:
        """Drop a failed root when auto-resume is on, otherwise re-raise."""
        if not self.config.auto_resume or error.root is None:
            raise error

        logger.warning(f"Dropping failed root {error.root}: {error}")
        self.backend.unregister(error.root)
        self._root_manager.remove_root(error.root)
        if not len(self._root_manager):
            raise WatchRuntimeError("No watched roots left", root=error.root) from error

    def close(self) -> None:
        """Stop the loop and release every root."""
        self.stop()
        if not self._running:
            self._release_roots()
        self.backend.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def watch(
    handler: Handler,
    config: Optional[WatchConfig] = None,
    roots: Optional[Iterable[Path]] = None,
    backend: Optional[WatchBackend] = None,
) -> WatchState:
    """
    Build a pipeline and backend from a config and run a watch loop.

    Args:
        handler: Callback invoked with each qualifying batch
        config: Watch configuration
        roots: Roots to watch (defaults to ``config.roots``)
        backend: Backend to use (defaults to a WatchdogBackend)

    Returns:
        The loop's final state (STOPPED or IDLE)
    """
    config = config or WatchConfig()
    pipeline = FilterPipeline.from_config(config)
    with WatchLoop(backend or WatchdogBackend(config), pipeline, handler, config) as loop:
        return loop.run(roots)

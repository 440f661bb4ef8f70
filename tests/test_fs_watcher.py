"""Tests for filesystem watcher module."""

import pytest
import shutil
import time
from pathlib import Path

from watchdog.events import (
    DirDeletedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from src.watchgate.config import WatchConfig
from src.watchgate.exceptions import WatchRegistrationError, WatchRuntimeError
from src.watchgate.fs_watcher import FSEventHandler, WatchdogBackend
from src.watchgate.models import FileEventKindTag, FileTypeTag, RawEvent, SourceTag


def collect(backend, predicate, timeout=3.0):
    """Pull batches until an event matching predicate shows up."""
    events = []
    deadline = time.time() + timeout
    while time.time() < deadline:
        batch = backend.next_batch(0.2)
        if batch is None:
            continue
        events.extend(batch)
        if any(predicate(e) for e in batch):
            break
    return events


def has_kind(event, path, kind):
    return event.path == path and any(t.kind == kind for t in event.kind_tags)


class TestWatchdogBackend:
    """Tests for WatchdogBackend class."""

    def test_create_backend(self):
        backend = WatchdogBackend()
        assert len(backend) == 0
        assert backend.source == "watchdog"

    def test_register(self, tmp_path):
        backend = WatchdogBackend()

        result = backend.register(tmp_path)

        assert result is True
        assert len(backend) == 1
        assert backend.is_watching(tmp_path)

        backend.close()

    def test_register_duplicate(self, tmp_path):
        backend = WatchdogBackend()

        backend.register(tmp_path)
        result = backend.register(tmp_path)

        assert result is False
        assert len(backend) == 1

        backend.close()

    def test_register_missing_root_raises(self, tmp_path):
        backend = WatchdogBackend()

        with pytest.raises(WatchRegistrationError) as exc_info:
            backend.register(tmp_path / "missing")

        assert exc_info.value.root == tmp_path.resolve() / "missing"
        assert len(backend) == 0

    def test_register_file_raises(self, tmp_path):
        file_path = tmp_path / "file.txt"
        file_path.write_text("not a directory")
        backend = WatchdogBackend()

        with pytest.raises(WatchRegistrationError):
            backend.register(file_path)

    def test_unregister(self, tmp_path):
        backend = WatchdogBackend()

        backend.register(tmp_path)
        result = backend.unregister(tmp_path)

        assert result is True
        assert len(backend) == 0
        assert not backend.is_watching(tmp_path)

    def test_unregister_not_watching(self, tmp_path):
        backend = WatchdogBackend()
        assert backend.unregister(tmp_path) is False

    def test_close(self, tmp_path):
        root1 = tmp_path / "root1"
        root2 = tmp_path / "root2"
        root1.mkdir()
        root2.mkdir()

        backend = WatchdogBackend()
        backend.register(root1)
        backend.register(root2)

        assert sorted(backend.get_watched_roots()) == sorted([root1.resolve(), root2.resolve()])
        assert backend.close() == 2
        assert len(backend) == 0

    def test_next_batch_times_out(self, tmp_path):
        backend = WatchdogBackend()
        backend.register(tmp_path)

        start = time.time()
        batch = backend.next_batch(0.1)

        assert batch is None
        assert time.time() - start < 1.0

        backend.close()

    def test_batches_queued_events(self):
        backend = WatchdogBackend(WatchConfig(debounce_ms=50))
        for name in ("a", "b", "c"):
            backend._events.put(RawEvent(path=Path(name)))

        batch = backend.next_batch(0.1)

        assert [e.path for e in batch] == [Path("a"), Path("b"), Path("c")]
        assert backend.next_batch(0.05) is None

    def test_batch_size_is_bounded(self):
        backend = WatchdogBackend(WatchConfig(max_batch_size=2))
        for name in ("a", "b", "c"):
            backend._events.put(RawEvent(path=Path(name)))

        assert len(backend.next_batch(0.1)) == 2
        assert len(backend.next_batch(0.1)) == 1

    def test_unregister_discards_queued_events_of_root(self, tmp_path):
        root1 = tmp_path.resolve() / "root1"
        root2 = tmp_path.resolve() / "root2"
        root1.mkdir()
        root2.mkdir()

        backend = WatchdogBackend()
        backend.register(root1)
        backend.register(root2)
        backend._events.put(RawEvent(path=root1 / "a.txt", root=root1))
        backend._events.put(RawEvent(path=root2 / "b.txt", root=root2))
        backend._events.put(RawEvent(path=root1 / "c.txt", root=root1))

        backend.unregister(root1)
        batch = backend.next_batch(0.1)

        assert [e.path for e in batch] == [root2 / "b.txt"]
        backend.close()

    def test_unregister_after_file_change(self, tmp_path):
        root = tmp_path.resolve()
        backend = WatchdogBackend()
        backend.register(root)
        time.sleep(0.2)

        (root / "a.txt").write_text("hello")
        time.sleep(0.5)

        backend.unregister(root)

        assert backend.next_batch(0.1) is None

    def test_close_discards_queued_events(self, tmp_path):
        backend = WatchdogBackend()
        backend.register(tmp_path)
        backend._events.put(RawEvent(path=tmp_path / "a.txt", root=tmp_path.resolve()))

        backend.close()

        assert backend.next_batch(0.05) is None

    def test_detects_file_creation(self, tmp_path):
        root = tmp_path.resolve()
        backend = WatchdogBackend()
        backend.register(root)

        # Give watcher time to start
        time.sleep(0.2)

        test_file = root / "test.txt"
        test_file.write_text("hello")

        events = collect(backend, lambda e: has_kind(e, test_file, "create"))
        backend.close()

        created = [e for e in events if has_kind(e, test_file, "create")]
        assert len(created) >= 1
        assert FileTypeTag("file") in created[0].tags
        assert SourceTag("watchdog") in created[0].tags
        assert created[0].root == root

    def test_detects_file_modification(self, tmp_path):
        root = tmp_path.resolve()
        test_file = root / "test.txt"
        test_file.write_text("initial")

        backend = WatchdogBackend()
        backend.register(root)
        time.sleep(0.2)

        test_file.write_text("modified")

        events = collect(backend, lambda e: has_kind(e, test_file, "modify"))
        backend.close()

        assert any(has_kind(e, test_file, "modify") for e in events)

    def test_detects_file_deletion(self, tmp_path):
        root = tmp_path.resolve()
        test_file = root / "test.txt"
        test_file.write_text("to be deleted")

        backend = WatchdogBackend()
        backend.register(root)
        time.sleep(0.2)

        test_file.unlink()

        events = collect(backend, lambda e: has_kind(e, test_file, "remove"))
        backend.close()

        assert any(has_kind(e, test_file, "remove") for e in events)

    def test_watches_subdirectories(self, tmp_path):
        root = tmp_path.resolve()
        subdir = root / "subdir"
        subdir.mkdir()

        backend = WatchdogBackend(WatchConfig(recursive=True))
        backend.register(root)
        time.sleep(0.2)

        nested = subdir / "nested.txt"
        nested.write_text("nested content")

        events = collect(backend, lambda e: e.path == nested)
        backend.close()

        assert any(e.path == nested for e in events)

    def test_root_removal_raises_runtime_error(self, tmp_path):
        root = tmp_path.resolve() / "root"
        root.mkdir()
        (root / "file.txt").write_text("content")

        backend = WatchdogBackend()
        backend.register(root)
        time.sleep(0.2)

        shutil.rmtree(root)

        with pytest.raises(WatchRuntimeError) as exc_info:
            for _ in range(20):
                backend.next_batch(0.2)

        assert exc_info.value.root == root
        backend.close()

    def test_polling_observer(self, tmp_path):
        root = tmp_path.resolve()
        backend = WatchdogBackend(WatchConfig(use_polling=True, polling_interval_ms=100))
        backend.register(root)
        assert backend.source == "polling"

        time.sleep(0.3)
        test_file = root / "polled.txt"
        test_file.write_text("hello")

        events = collect(backend, lambda e: has_kind(e, test_file, "create"))
        backend.close()

        created = [e for e in events if has_kind(e, test_file, "create")]
        assert len(created) >= 1
        assert SourceTag("polling") in created[0].tags


class TestFSEventHandler:
    """Tests for FSEventHandler class."""

    def test_created_event(self, tmp_path):
        events = []
        handler = FSEventHandler(events.append, tmp_path)

        handler.on_any_event(FileCreatedEvent(str(tmp_path / "a.txt")))

        assert len(events) == 1
        assert events[0].path == tmp_path / "a.txt"
        assert events[0].tags == (
            FileEventKindTag("create"),
            FileTypeTag("file"),
            SourceTag("watchdog"),
        )
        assert events[0].root == tmp_path

    def test_modified_event(self, tmp_path):
        events = []
        handler = FSEventHandler(events.append, tmp_path)

        handler.on_any_event(FileModifiedEvent(str(tmp_path / "a.txt")))

        assert events[0].kind_tags == [FileEventKindTag("modify", "any")]

    def test_moved_event_yields_two_events(self, tmp_path):
        events = []
        handler = FSEventHandler(events.append, tmp_path, source="polling")

        handler.on_any_event(FileMovedEvent(str(tmp_path / "old.txt"), str(tmp_path / "new.txt")))

        assert [e.path for e in events] == [tmp_path / "old.txt", tmp_path / "new.txt"]
        assert events[0].kind_tags == [FileEventKindTag("modify", "name", "from")]
        assert events[1].kind_tags == [FileEventKindTag("modify", "name", "to")]
        assert SourceTag("polling") in events[1].tags

    def test_directory_event(self, tmp_path):
        events = []
        handler = FSEventHandler(events.append, tmp_path)

        handler.on_any_event(DirDeletedEvent(str(tmp_path / "sub")))

        assert FileTypeTag("dir") in events[0].tags

    def test_root_deleted_reports_loss(self, tmp_path):
        events = []
        lost = []
        handler = FSEventHandler(events.append, tmp_path, on_root_lost=lambda root, reason: lost.append((root, reason)))

        handler.on_any_event(FileDeletedEvent(str(tmp_path / "a.txt")))
        assert lost == []

        handler.on_any_event(DirDeletedEvent(str(tmp_path)))
        assert lost == [(tmp_path, "watched root was deleted")]

    def test_root_moved_reports_loss(self, tmp_path):
        lost = []
        handler = FSEventHandler(lambda e: None, tmp_path, on_root_lost=lambda root, reason: lost.append(root))

        handler.on_any_event(DirMovedEvent(str(tmp_path), str(tmp_path) + "-moved"))

        assert lost == [tmp_path]

"""Tests for root manager module."""

import pytest
import threading
from pathlib import Path

from src.watchgate.root_manager import RootManager
from src.watchgate.exceptions import RootAlreadyExistsError, WatchRegistrationError


class TestRootManager:
    """Tests for RootManager class."""

    def test_create_empty_manager(self):
        manager = RootManager()
        assert len(manager) == 0
        assert manager.get_roots() == frozenset()

    def test_add_root(self, tmp_path):
        manager = RootManager()
        result = manager.add_root(tmp_path)

        assert result is True
        assert len(manager) == 1
        assert tmp_path.resolve() in manager.get_roots()

    def test_add_nonexistent_root_raises(self):
        manager = RootManager()

        with pytest.raises(WatchRegistrationError) as exc_info:
            manager.add_root(Path("/nonexistent/path/12345"))

        assert exc_info.value.root == Path("/nonexistent/path/12345")

    def test_add_file_as_root_raises(self, tmp_path):
        file_path = tmp_path / "file.txt"
        file_path.write_text("not a directory")
        manager = RootManager()

        with pytest.raises(WatchRegistrationError):
            manager.add_root(file_path)

    def test_add_duplicate_root_raises(self, tmp_path):
        manager = RootManager()
        manager.add_root(tmp_path)

        with pytest.raises(RootAlreadyExistsError):
            manager.add_root(tmp_path)

    def test_add_nested_root_raises(self, tmp_path):
        child = tmp_path / "child"
        child.mkdir()
        manager = RootManager()
        manager.add_root(tmp_path)

        with pytest.raises(RootAlreadyExistsError, match="already inside"):
            manager.add_root(child)

    def test_add_parent_of_root_raises(self, tmp_path):
        child = tmp_path / "child"
        child.mkdir()
        manager = RootManager()
        manager.add_root(child)

        with pytest.raises(RootAlreadyExistsError, match="contains"):
            manager.add_root(tmp_path)

    def test_remove_root(self, tmp_path):
        manager = RootManager()
        manager.add_root(tmp_path)

        result = manager.remove_root(tmp_path)

        assert result is True
        assert len(manager) == 0

    def test_remove_nonexistent_root(self, tmp_path):
        manager = RootManager()

        result = manager.remove_root(tmp_path)
        assert result is False

    def test_get_roots_returns_frozen_set(self, tmp_path):
        manager = RootManager()
        manager.add_root(tmp_path)

        roots = manager.get_roots()

        assert isinstance(roots, frozenset)
        with pytest.raises(AttributeError):
            roots.add(Path("/new/path"))

    def test_find_root_for_path(self, tmp_path):
        manager = RootManager()
        manager.add_root(tmp_path)

        file_path = tmp_path / "subdir" / "file.txt"

        assert manager.find_root_for_path(file_path) == tmp_path.resolve()

    def test_find_root_for_path_multiple_roots(self, tmp_path):
        root1 = tmp_path / "root1"
        root2 = tmp_path / "root2"
        root1.mkdir()
        root2.mkdir()

        manager = RootManager()
        manager.add_root(root1)
        manager.add_root(root2)

        assert manager.find_root_for_path(root1 / "file.txt") == root1.resolve()
        assert manager.find_root_for_path(root2 / "file.txt") == root2.resolve()
        assert manager.find_root_for_path(tmp_path / "other.txt") is None

    def test_clear(self, tmp_path):
        root1 = tmp_path / "root1"
        root2 = tmp_path / "root2"
        root1.mkdir()
        root2.mkdir()

        manager = RootManager()
        manager.add_root(root1)
        manager.add_root(root2)

        count = manager.clear()

        assert count == 2
        assert len(manager) == 0

    def test_thread_safety(self, tmp_path):
        manager = RootManager()
        errors = []

        def add_roots():
            try:
                for i in range(10):
                    root = tmp_path / f"root_{threading.current_thread().name}_{i}"
                    root.mkdir(exist_ok=True)
                    manager.add_root(root)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=add_roots, name=f"t{i}") for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 0
        assert len(manager) == 50

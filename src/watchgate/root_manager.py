"""Thread-safe bookkeeping of watched roots."""

import threading
from pathlib import Path
from typing import FrozenSet, Optional, Set

from .exceptions import RootAlreadyExistsError, WatchRegistrationError


class RootManager:
    """
    Thread-safe set of roots being watched.

    Roots never overlap: a root inside (or containing) an existing root is
    rejected, since watches are recursive.
    """

    def __init__(self):
        self._roots: Set[Path] = set()
        self._lock = threading.RLock()

    def add_root(self, path: Path) -> bool:
        """
        Add a root.

        Args:
            path: Path to the root directory

        Returns:
            True if the root was added

        Raises:
            WatchRegistrationError: If the path is not an existing directory
            RootAlreadyExistsError: If the root overlaps an existing root
        """
        path = path.resolve()

        if not path.is_dir():
            raise WatchRegistrationError(path, "root is not an existing directory")

        with self._lock:
            if path in self._roots:
                raise RootAlreadyExistsError(f"Root already being watched: {path}")

            for existing in self._roots:
                if _is_relative_to(path, existing):
                    raise RootAlreadyExistsError(
                        f"'{path}' is already inside watched root '{existing}'"
                    )
                if _is_relative_to(existing, path):
                    raise RootAlreadyExistsError(
                        f"'{path}' contains already-watched root '{existing}'"
                    )

            self._roots.add(path)
            return True

    def remove_root(self, path: Path) -> bool:
        """
        Remove a root.

        Returns:
            True if the root was removed, False if it was not known
        """
        path = path.resolve()

        with self._lock:
            if path in self._roots:
                self._roots.discard(path)
                return True
            return False

    def get_roots(self) -> FrozenSet[Path]:
        with self._lock:
            return frozenset(self._roots)

    def find_root_for_path(self, path: Path) -> Optional[Path]:
        """
        Find which root contains the given path.

        Returns:
            The containing root, or None
        """
        path = Path(path).resolve()

        with self._lock:
            for root in self._roots:
                if _is_relative_to(path, root):
                    return root
            return None

    def clear(self) -> int:
        """
        Remove all roots.

        Returns:
            Number of roots removed
        """
        with self._lock:
            count = len(self._roots)
            self._roots.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._roots)


def _is_relative_to(path: Path, other: Path) -> bool:
    try:
        path.relative_to(other)
        return True
    except ValueError:
        return False

"""Custom exceptions for the watchgate package."""

from pathlib import Path
from typing import Optional


class WatchgateError(Exception):
    """Base exception for all watchgate errors."""
    pass


class PatternSyntaxError(WatchgateError):
    """
    A glob pattern could not be compiled.

    Attributes:
        pattern: The offending pattern
        position: Character offset in the pattern where the problem was found
        reason: Short description of the problem
    """

    def __init__(self, pattern: str, position: int, reason: str = "invalid glob"):
        super().__init__(f"{reason} at position {position} in pattern {pattern!r}")
        self.pattern = pattern
        self.position = position
        self.reason = reason


class RootError(WatchgateError):
    """Error related to watch root management."""
    pass


class WatchRegistrationError(RootError):
    """A root could not be registered with the watch backend."""

    def __init__(self, root: Path, reason: str = "cannot watch root"):
        super().__init__(f"{reason}: {root}")
        self.root = root
        self.reason = reason


class RootAlreadyExistsError(RootError):
    """Root folder is already being watched."""
    pass


class EventNormalizationError(WatchgateError):
    """A raw event kind tag has an unrecognized shape."""

    def __init__(self, tag: object):
        super().__init__(f"unrecognized event kind tag: {tag!r}")
        self.tag = tag


class FilterError(WatchgateError):
    """An event is malformed and cannot be run through the filter pipeline."""
    pass


class HandlerError(WatchgateError):
    """The user handler raised or returned an invalid disposition."""
    pass


class WatchRuntimeError(WatchgateError):
    """The watch backend failed while running."""

    def __init__(self, message: str, root: Optional[Path] = None):
        super().__init__(message)
        self.root = root


class LoopAlreadyRunningError(WatchgateError):
    """The watch loop is already running."""
    pass

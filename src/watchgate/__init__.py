"""
watchgate

A file-system change-monitoring front end. It watches directory trees,
receives raw change notifications and forwards a batch to a handler only
when at least one of its events passes a two-stage filter.

Features:
- Canonical event kinds (access, create, remove, rename, modify, metadata)
  with a configurable allowlist
- Include/exclude glob rules, optionally scoped to a directory
- Built-in excludes for VCS metadata, editor swap files and OS artifacts
- Debounced batches from watchdog observers, native or polling
- Handler-driven continue / stop / pause control
"""

from .models import (
    EventKind,
    Priority,
    MatchResult,
    Disposition,
    WatchState,
    GlobRule,
    IgnoreRule,
    FileEventKindTag,
    SourceTag,
    FileTypeTag,
    RawEvent,
    EventBatch,
)

from .config import WatchConfig, DEFAULT_EXCLUDES

from .exceptions import (
    WatchgateError,
    PatternSyntaxError,
    RootError,
    WatchRegistrationError,
    RootAlreadyExistsError,
    EventNormalizationError,
    FilterError,
    HandlerError,
    WatchRuntimeError,
    LoopAlreadyRunningError,
)

from .globs import GlobPatternStore, compile_glob, translate_glob
from .kinds import DEFAULT_ALLOWED_KINDS, EventKindFilter, normalize, parse_kind_tag, parse_kinds
from .pipeline import FilterPipeline, PathFilter
from .root_manager import RootManager
from .fs_watcher import WatchBackend, WatchdogBackend, FSEventHandler
from .loop import WatchLoop, LoopStats, watch


__all__ = [
    # Models
    "EventKind",
    "Priority",
    "MatchResult",
    "Disposition",
    "WatchState",
    "GlobRule",
    "IgnoreRule",
    "FileEventKindTag",
    "SourceTag",
    "FileTypeTag",
    "RawEvent",
    "EventBatch",
    # Config
    "WatchConfig",
    "DEFAULT_EXCLUDES",
    "DEFAULT_ALLOWED_KINDS",
    # Exceptions
    "WatchgateError",
    "PatternSyntaxError",
    "RootError",
    "WatchRegistrationError",
    "RootAlreadyExistsError",
    "EventNormalizationError",
    "FilterError",
    "HandlerError",
    "WatchRuntimeError",
    "LoopAlreadyRunningError",
    # Filtering
    "GlobPatternStore",
    "compile_glob",
    "translate_glob",
    "EventKindFilter",
    "normalize",
    "parse_kind_tag",
    "parse_kinds",
    "FilterPipeline",
    "PathFilter",
    # Watching
    "RootManager",
    "WatchBackend",
    "WatchdogBackend",
    "FSEventHandler",
    "WatchLoop",
    "LoopStats",
    "watch",
]

__version__ = "0.1.0"

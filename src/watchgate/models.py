"""Data models for the watchgate package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple
import time
import uuid


class EventKind(Enum):
    """Canonical, OS-independent classification of a file system change."""
    ACCESS = "access"
    CREATE = "create"
    REMOVE = "remove"
    RENAME = "rename"
    MODIFY = "modify"
    METADATA = "metadata"


class Priority(Enum):
    """Delivery priority attached to a raw event by the backend."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MatchResult(Enum):
    """Outcome of matching a path against a glob pattern store."""
    INCLUDED = "included"
    EXCLUDED = "excluded"
    UNMATCHED = "unmatched"


class Disposition(Enum):
    """What the handler wants the watch loop to do next."""
    CONTINUE = "continue"
    STOP = "stop"
    PAUSE = "pause"


class WatchState(Enum):
    """States of the watch loop."""
    IDLE = "idle"
    WATCHING = "watching"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class GlobRule:
    """
    An include or exclude glob rule.

    Attributes:
        pattern: Glob pattern string
        scope_root: Optional absolute directory the rule is restricted to
    """
    pattern: str
    scope_root: Optional[Path] = None

    def __post_init__(self):
        if not self.pattern:
            raise ValueError("pattern must not be empty")
        if self.scope_root is not None and not Path(self.scope_root).is_absolute():
            raise ValueError(f"scope_root must be absolute: {self.scope_root}")


IgnoreRule = GlobRule


@dataclass(frozen=True)
class FileEventKindTag:
    """
    OS-specific description of what happened to a path.

    The shape follows the usual notification hierarchy: a top level ``kind``
    (any, access, create, modify, remove, other), an optional ``sub_kind``
    (for modify: data, metadata, name, any, other) and an optional free-form
    ``detail`` (for example ``permissions`` or ``from``).
    """
    kind: str
    sub_kind: Optional[str] = None
    detail: Optional[str] = None

    def __str__(self) -> str:
        return "-".join(p for p in (self.kind, self.sub_kind, self.detail) if p)


@dataclass(frozen=True)
class SourceTag:
    """Which backend produced the event."""
    source: str


@dataclass(frozen=True)
class FileTypeTag:
    """Type of the filesystem object (file, dir, symlink, other)."""
    file_type: str


@dataclass(frozen=True)
class RawEvent:
    """
    Raw change notification as delivered by a watch backend.

    Attributes:
        path: Affected path (None for events not tied to a path)
        tags: Heterogeneous tag list; consumers use the tags they understand
        timestamp: Unix timestamp when the event was observed
        priority: Delivery priority
        root: Watched root the event was observed under, if known
    """
    path: Optional[Path]
    tags: Tuple[object, ...] = ()
    timestamp: float = field(default_factory=time.time)
    priority: Priority = Priority.NORMAL
    root: Optional[Path] = None

    @property
    def kind_tags(self) -> List[FileEventKindTag]:
        """Return only the file event kind tags."""
        return [t for t in self.tags if isinstance(t, FileEventKindTag)]


@dataclass
class EventBatch:
    """
    Events collected within one debounce window.

    Attributes:
        events: Ordered list of raw events
        batch_id: Unique identifier for this batch
        created_at: Unix timestamp when the batch was created
    """
    events: List[RawEvent]
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[RawEvent]:
        return iter(self.events)

"""Configuration for the watchgate package."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple

from .globs import GlobPatternStore, RuleLike
from .kinds import DEFAULT_ALLOWED_KINDS
from .models import EventKind


DEFAULT_EXCLUDES: Tuple[str, ...] = (
    # version control metadata
    "**/.git/**",
    "**/.hg/**",
    "**/.svn/**",
    "**/.bzr/**",
    "**/_darcs/**",
    "**/.pijul/**",
    "**/.fossil-settings/**",
    # editor swap and lock files
    ".*.sw?",
    ".*.sw?x",
    ".*.kate-swp",
    "#*#",
    ".#*",
    # OS artifacts
    "**/.DS_Store",
    # compiled python
    "*.py[co]",
    # our own rotated logs
    "watchexec.*.log",
)


@dataclass(frozen=True)
class WatchConfig:
    """
    Startup configuration for a watch loop.

    Built once and shared read-only by the loop, the backend and the
    filter pipeline.

    Attributes:
        roots: Directories to watch (absolute, or relative to the cwd)
        include_patterns: Ordered include globs (strings or GlobRule)
        exclude_patterns: Ordered exclude globs (strings or GlobRule)
        use_default_excludes: Merge DEFAULT_EXCLUDES into the exclude set
        allowed_kinds: Event kinds allowed to trigger the handler
        origin: Base directory for rules without a scope root
        debounce_ms: Quiet period that closes a batch
        poll_timeout_ms: How long the loop waits for a batch before
            checking for a stop request
        max_batch_size: Upper bound on events per batch
        recursive: Watch subdirectories
        use_polling: Use the polling observer instead of native events
        polling_interval_ms: Interval of the polling observer
        allow_partial_registration: Keep going when some roots fail to register
        auto_resume: Drop a root that fails at runtime instead of failing the loop
    """
    roots: Tuple[Path, ...] = ()
    include_patterns: Tuple[RuleLike, ...] = ()
    exclude_patterns: Tuple[RuleLike, ...] = ()
    use_default_excludes: bool = True
    allowed_kinds: FrozenSet[EventKind] = field(default_factory=lambda: DEFAULT_ALLOWED_KINDS)
    origin: Optional[Path] = None
    debounce_ms: int = 50
    poll_timeout_ms: int = 500
    max_batch_size: int = 1000
    recursive: bool = True
    use_polling: bool = False
    polling_interval_ms: int = 1000
    allow_partial_registration: bool = False
    auto_resume: bool = False

    def __post_init__(self):
        object.__setattr__(self, "roots", tuple(Path(r) for r in self.roots))
        object.__setattr__(self, "include_patterns", tuple(self.include_patterns))
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns))
        object.__setattr__(self, "allowed_kinds", frozenset(self.allowed_kinds))
        if self.origin is not None:
            object.__setattr__(self, "origin", Path(self.origin))

        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0: {self.debounce_ms}")
        if self.poll_timeout_ms <= 0:
            raise ValueError(f"poll_timeout_ms must be > 0: {self.poll_timeout_ms}")
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1: {self.max_batch_size}")

    def resolved_roots(self) -> Tuple[Path, ...]:
        """Return the roots as absolute paths, in order, without duplicates."""
        resolved = []
        for root in self.roots:
            root = root.expanduser().resolve()
            if root not in resolved:
                resolved.append(root)
        return tuple(resolved)

    def all_exclude_rules(self) -> Tuple[RuleLike, ...]:
        """Exclude rules including the defaults, if enabled."""
        if self.use_default_excludes:
            return DEFAULT_EXCLUDES + self.exclude_patterns
        return self.exclude_patterns

    def build_pattern_store(self) -> GlobPatternStore:
        """
        Compile the include and exclude rules.

        Raises:
            PatternSyntaxError: If any pattern is invalid
        """
        return GlobPatternStore.from_rules(
            includes=self.include_patterns,
            excludes=self.all_exclude_rules(),
            origin=self.origin,
        )

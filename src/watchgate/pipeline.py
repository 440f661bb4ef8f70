"""Two-stage event filter: event kind allowlist, then path globs."""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from .config import WatchConfig
from .exceptions import FilterError
from .globs import GlobPatternStore
from .kinds import EventKindFilter, normalize
from .models import FileEventKindTag, MatchResult, RawEvent

logger = logging.getLogger(__name__)


class PathFilter:
    """Decides whether a path passes the include/exclude glob rules."""

    def __init__(self, store: GlobPatternStore):
        self.store = store

    def check(self, path: Union[str, Path], root: Optional[Path] = None) -> bool:
        """
        Check a path against the pattern store.

        EXCLUDED always drops the path. UNMATCHED drops it only when
        include rules are registered.
        """
        result = self.store.matches(path, root)
        if result is MatchResult.EXCLUDED:
            return False
        if result is MatchResult.UNMATCHED:
            return not self.store.has_includes
        return True


class FilterPipeline:
    """
    Runs an event through the kind stage and the path stage.

    Both stages must pass. The pipeline keeps no mutable state and can be
    called from several threads at once.
    """

    def __init__(self, kind_filter: EventKindFilter, path_filter: PathFilter):
        self.kind_filter = kind_filter
        self.path_filter = path_filter

    @classmethod
    def from_config(cls, config: WatchConfig) -> "FilterPipeline":
        """
        Build the pipeline described by a config.

        Raises:
            PatternSyntaxError: If any glob in the config is invalid
        """
        return cls(
            EventKindFilter(config.allowed_kinds),
            PathFilter(config.build_pattern_store()),
        )

    def check(self, event: RawEvent) -> bool:
        """
        Decide whether an event may trigger the handler.

        Args:
            event: The raw event

        Returns:
            True if the event passes both stages

        Raises:
            FilterError: If the event is malformed
        """
        tags = self._tags(event)

        for tag in tags:
            if not isinstance(tag, FileEventKindTag):
                continue
            kind = normalize(tag)
            if kind is None:
                continue
            if not self.kind_filter.is_allowed(kind):
                logger.debug(f"Vetoed {event.path}: kind {kind.value} not allowed")
                return False

        path = self._path(event)
        if path is None:
            return True
        return self.path_filter.check(path, getattr(event, "root", None))

    @staticmethod
    def _tags(event: RawEvent) -> Sequence[object]:
        tags = getattr(event, "tags", None)
        if not isinstance(tags, (tuple, list)):
            raise FilterError(f"event tags must be a sequence, got {type(tags).__name__}")
        return tags

    @staticmethod
    def _path(event: RawEvent) -> Optional[Path]:
        raw_path = getattr(event, "path", None)
        if raw_path is None:
            return None
        try:
            return Path(raw_path)
        except TypeError as e:
            raise FilterError(f"event path is not a path: {raw_path!r}") from e

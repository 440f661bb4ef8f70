"""Normalization of OS-specific event kind tags and the kind allowlist."""

import logging
from typing import FrozenSet, Iterable, Optional, Union

from .exceptions import EventNormalizationError
from .models import EventKind, FileEventKindTag

logger = logging.getLogger(__name__)

# Rename and metadata changes are not forwarded by default.
DEFAULT_ALLOWED_KINDS: FrozenSet[EventKind] = frozenset({
    EventKind.ACCESS,
    EventKind.MODIFY,
    EventKind.CREATE,
    EventKind.REMOVE,
})

KNOWN_KINDS = frozenset({"any", "access", "create", "modify", "remove", "other"})

_TOP_LEVEL = {
    "access": EventKind.ACCESS,
    "create": EventKind.CREATE,
    "remove": EventKind.REMOVE,
}

_MODIFY_SUB_KINDS = {
    "name": EventKind.RENAME,
    "metadata": EventKind.METADATA,
}


def parse_kind_tag(text: str) -> FileEventKindTag:
    """
    Parse a dash-separated tag string such as ``modify-metadata-permissions``.

    Raises:
        EventNormalizationError: If the top level kind is not recognized
    """
    parts = [p for p in text.strip().lower().split("-") if p]
    if not parts or parts[0] not in KNOWN_KINDS:
        raise EventNormalizationError(text)
    sub_kind = parts[1] if len(parts) > 1 else None
    detail = "-".join(parts[2:]) or None
    return FileEventKindTag(kind=parts[0], sub_kind=sub_kind, detail=detail)


def _classify(tag: FileEventKindTag) -> Optional[EventKind]:
    kind = tag.kind.lower()
    if kind not in KNOWN_KINDS:
        raise EventNormalizationError(tag)
    if kind == "modify":
        return _MODIFY_SUB_KINDS.get((tag.sub_kind or "").lower(), EventKind.MODIFY)
    return _TOP_LEVEL.get(kind)


def normalize(raw_tag: Union[FileEventKindTag, str]) -> Optional[EventKind]:
    """
    Map a raw event kind tag to its canonical EventKind.

    | raw tag                       | kind     |
    |-------------------------------|----------|
    | access                        | ACCESS   |
    | modify, name sub-kind         | RENAME   |
    | modify, metadata sub-kind     | METADATA |
    | modify, any other sub-kind    | MODIFY   |
    | create                        | CREATE   |
    | remove                        | REMOVE   |
    | anything else                 | None     |

    Args:
        raw_tag: A FileEventKindTag or its string form

    Returns:
        The canonical kind, or None if the tag carries no classification
    """
    try:
        if isinstance(raw_tag, str):
            raw_tag = parse_kind_tag(raw_tag)
        elif not isinstance(raw_tag, FileEventKindTag):
            raise EventNormalizationError(raw_tag)
        return _classify(raw_tag)
    except EventNormalizationError as e:
        logger.debug(f"Skipping tag: {e}")
        return None


def parse_kinds(text: str) -> FrozenSet[EventKind]:
    """
    Parse a comma-separated list of kind names (``access,create``).

    Raises:
        ValueError: If a name is not a known EventKind
    """
    kinds = set()
    for name in text.split(","):
        name = name.strip().lower()
        if name:
            kinds.add(EventKind(name))
    return frozenset(kinds)


class EventKindFilter:
    """Allowlist of canonical event kinds."""

    def __init__(self, allowed: Iterable[EventKind] = DEFAULT_ALLOWED_KINDS):
        self.allowed: FrozenSet[EventKind] = frozenset(allowed)

    def is_allowed(self, kind: EventKind) -> bool:
        return kind in self.allowed

    def __repr__(self) -> str:
        names = ",".join(sorted(k.value for k in self.allowed))
        return f"EventKindFilter({names})"

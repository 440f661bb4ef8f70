"""
Glob rule compilation and path matching.

Patterns use segment-aware shell glob syntax:

- ``?`` matches one character other than ``/``
- ``*`` matches any run of characters within one path segment
- ``**`` matches zero or more whole segments and must be a segment on its own
- ``[abc]``, ``[a-z]``, ``[!x]`` match one character from a class
- ``{a,b}`` matches either alternative (within a segment)
- ``\\`` escapes the next character, also inside a class (``[\\]]``)

A pattern without ``/`` matches the last component of a path at any depth
(``*.pyc`` matches ``pkg/mod.pyc``). A pattern containing ``/`` is anchored
at the rule's base directory: its scope root, else the store origin, else
the watched root the path was reported under. Each pattern is compiled to a
regular expression once, when the rule is added.
"""

import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Tuple, Union

from .exceptions import PatternSyntaxError
from .models import GlobRule, MatchResult

logger = logging.getLogger(__name__)

RuleLike = Union[str, GlobRule]

# Zero or more complete segments, each followed by a separator.
_ANY_LEADING_SEGMENTS = "(?:[^/]+/)*"


def _split_segments(pattern: str) -> List[Tuple[str, int]]:
    """Split a pattern on unescaped separators into (segment, offset) pairs."""
    segments = []
    start = 0
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\":
            i += 2
            continue
        if c == "/":
            segments.append((pattern[start:i], start))
            start = i + 1
        i += 1
    segments.append((pattern[start:], start))
    return segments


def _translate_class(pattern: str, segment: str, start: int, offset: int) -> Tuple[str, int]:
    """Translate a bracket expression starting at ``segment[start]``."""
    i = start + 1
    negate = i < len(segment) and segment[i] in "!^"
    if negate:
        i += 1

    items = []
    first = True
    while i < len(segment):
        c = segment[i]
        if c == "]" and not first:
            body = "".join(items)
            if negate:
                return f"[^/{body}]", i + 1
            return f"(?!/)[{body}]", i + 1
        first = False

        if c == "\\":
            if i + 1 >= len(segment):
                raise PatternSyntaxError(pattern, offset + i, "dangling escape")
            items.append(re.escape(segment[i + 1]))
            i += 2
            continue

        if i + 2 < len(segment) and segment[i + 1] == "-" and segment[i + 2] != "]":
            high = segment[i + 2]
            if high < c:
                raise PatternSyntaxError(pattern, offset + i, f"invalid character range {c}-{high}")
            items.append(f"{re.escape(c)}-{re.escape(high)}")
            i += 3
        else:
            items.append(re.escape(c))
            i += 1

    raise PatternSyntaxError(pattern, offset + start, "unclosed character class")


def _translate_segment(pattern: str, segment: str, offset: int) -> str:
    """Translate one path segment (never ``**``) into a regex fragment."""
    out = []
    alternate_open: Optional[int] = None
    i = 0
    while i < len(segment):
        c = segment[i]
        if c == "\\":
            if i + 1 >= len(segment):
                raise PatternSyntaxError(pattern, offset + i, "dangling escape")
            out.append(re.escape(segment[i + 1]))
            i += 2
            continue
        if c == "[":
            fragment, i = _translate_class(pattern, segment, i, offset)
            out.append(fragment)
            continue

        if c == "*":
            if i + 1 < len(segment) and segment[i + 1] == "*":
                raise PatternSyntaxError(pattern, offset + i, "'**' must be a whole path segment")
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "{":
            if alternate_open is not None:
                raise PatternSyntaxError(pattern, offset + i, "nested alternate groups are not allowed")
            alternate_open = i
            out.append("(?:")
        elif c == "}":
            if alternate_open is None:
                raise PatternSyntaxError(pattern, offset + i, "unopened alternate group")
            alternate_open = None
            out.append(")")
        elif c == "," and alternate_open is not None:
            out.append("|")
        else:
            out.append(re.escape(c))
        i += 1

    if alternate_open is not None:
        raise PatternSyntaxError(pattern, offset + alternate_open, "unclosed alternate group")
    return "".join(out)


def translate_glob(pattern: str) -> str:
    """
    Translate a glob pattern into a regular expression source string.

    The returned expression is meant to be used with ``fullmatch`` against
    a ``/``-joined relative path.

    Raises:
        PatternSyntaxError: If the pattern is empty or malformed
    """
    if not pattern:
        raise PatternSyntaxError(pattern, 0, "empty pattern")

    anchored = pattern.startswith("/")
    segments = [(s, off) for s, off in _split_segments(pattern) if s]
    if not segments:
        raise PatternSyntaxError(pattern, 0, "pattern has no path components")

    collapsed: List[Tuple[str, int]] = []
    for segment in segments:
        if segment[0] == "**" and collapsed and collapsed[-1][0] == "**":
            continue
        collapsed.append(segment)

    parts = []
    after_recursive = False
    for index, (segment, offset) in enumerate(collapsed):
        last = index == len(collapsed) - 1
        if segment == "**":
            if not parts:
                parts.append(".*" if last else _ANY_LEADING_SEGMENTS)
            elif last:
                parts.append("(?:/[^/]+)*")
            else:
                parts.append("/" + _ANY_LEADING_SEGMENTS)
            after_recursive = True
            continue

        fragment = _translate_segment(pattern, segment, offset)
        if parts and not after_recursive:
            parts.append("/")
        parts.append(fragment)
        after_recursive = False

    regex = "".join(parts)
    if not anchored and len(collapsed) == 1 and collapsed[0][0] != "**":
        regex = _ANY_LEADING_SEGMENTS + regex
    return regex


def compile_glob(pattern: str) -> Pattern[str]:
    """Compile a glob pattern. See :func:`translate_glob`."""
    return re.compile(translate_glob(pattern), re.DOTALL)


@dataclass(frozen=True)
class CompiledRule:
    """A glob rule together with its compiled matcher."""
    rule: GlobRule
    regex: Pattern[str]

    @property
    def scope_root(self) -> Optional[Path]:
        return self.rule.scope_root

    def relative_parts(
        self,
        path: Path,
        origin: Optional[Path],
        root: Optional[Path] = None,
    ) -> Optional[Tuple[str, ...]]:
        """
        Express a path relative to this rule's base directory.

        Args:
            path: Candidate path
            origin: Store origin, if any
            root: Watched root the path was reported under, if known

        Returns:
            Path components, or None if the rule cannot apply to the path
        """
        scope = self.rule.scope_root
        if scope is not None:
            if not path.is_absolute():
                if origin is None:
                    return None
                path = origin / path
            try:
                return path.relative_to(scope).parts
            except ValueError:
                return None

        if path.is_absolute():
            for base in (origin, root):
                if base is None:
                    continue
                try:
                    return path.relative_to(base).parts
                except ValueError:
                    pass
            return path.parts[1:]
        return path.parts

    def fires(
        self,
        path: Path,
        origin: Optional[Path],
        root: Optional[Path] = None,
        check_ancestors: bool = False,
    ) -> bool:
        """Check whether this rule matches the path (or one of its ancestors)."""
        parts = self.relative_parts(path, origin, root)
        if not parts:
            return False
        if self.regex.fullmatch("/".join(parts)):
            return True
        if check_ancestors:
            for end in range(len(parts) - 1, 0, -1):
                if self.regex.fullmatch("/".join(parts[:end])):
                    return True
        return False


def compile_rule(rule: RuleLike) -> CompiledRule:
    """
    Compile a single rule.

    Args:
        rule: A pattern string or a GlobRule

    Raises:
        PatternSyntaxError: If the pattern is invalid
    """
    if isinstance(rule, str):
        if not rule:
            raise PatternSyntaxError(rule, 0, "empty pattern")
        rule = GlobRule(rule)
    elif rule.scope_root is not None:
        # Event paths are reported under resolved roots.
        rule = GlobRule(rule.pattern, Path(rule.scope_root).resolve())
    return CompiledRule(rule=rule, regex=compile_glob(rule.pattern))


class GlobPatternStore:
    """
    Compiled include and exclude glob rules.

    Exclude rules always win over include rules. With no include rules
    registered every path that is not excluded is included.

    The rule sets are replaced copy-on-write when a rule is added, so
    readers calling :meth:`matches` concurrently always see a complete set.
    """

    def __init__(self, origin: Optional[Path] = None):
        """
        Initialize an empty store.

        Args:
            origin: Base directory for rules without a scope root
        """
        self.origin = Path(origin) if origin is not None else None
        self._rules: Tuple[Tuple[CompiledRule, ...], Tuple[CompiledRule, ...]] = ((), ())
        self._write_lock = threading.Lock()

    @classmethod
    def from_rules(
        cls,
        includes: Iterable[RuleLike] = (),
        excludes: Iterable[RuleLike] = (),
        origin: Optional[Path] = None,
    ) -> "GlobPatternStore":
        """
        Build a store from rule lists.

        Either every rule compiles and a store is returned, or
        PatternSyntaxError is raised and nothing is kept.
        """
        compiled_includes = tuple(compile_rule(r) for r in includes)
        compiled_excludes = tuple(compile_rule(r) for r in excludes)

        store = cls(origin)
        store._rules = (compiled_includes, compiled_excludes)
        logger.debug(
            f"Compiled {len(compiled_includes)} include and "
            f"{len(compiled_excludes)} exclude rule(s)"
        )
        return store

    def add_include(self, pattern: str, scope_root: Optional[Path] = None) -> None:
        """Compile and register an include rule."""
        compiled = compile_rule(self._make_rule(pattern, scope_root))
        with self._write_lock:
            includes, excludes = self._rules
            self._rules = (includes + (compiled,), excludes)

    def add_exclude(self, pattern: str, scope_root: Optional[Path] = None) -> None:
        """Compile and register an exclude rule."""
        compiled = compile_rule(self._make_rule(pattern, scope_root))
        with self._write_lock:
            includes, excludes = self._rules
            self._rules = (includes, excludes + (compiled,))

    @staticmethod
    def _make_rule(pattern: str, scope_root: Optional[Path]) -> RuleLike:
        if not pattern:
            raise PatternSyntaxError(pattern, 0, "empty pattern")
        if scope_root is None:
            return pattern
        return GlobRule(pattern, Path(scope_root))

    def matches(self, path: Union[str, Path], root: Optional[Path] = None) -> MatchResult:
        """
        Match a path against the stored rules.

        Args:
            path: Absolute path, or path relative to the origin
            root: Watched root the path was reported under; unscoped rules
                are anchored there when the path is not under the origin

        Returns:
            EXCLUDED if any exclude rule fires, otherwise INCLUDED if there
            are no include rules or one of them fires, otherwise UNMATCHED
        """
        path = Path(path)
        root = Path(root) if root is not None else None
        includes, excludes = self._rules

        for compiled in excludes:
            if compiled.fires(path, self.origin, root, check_ancestors=True):
                return MatchResult.EXCLUDED

        if not includes:
            return MatchResult.INCLUDED

        for compiled in includes:
            if compiled.fires(path, self.origin, root):
                return MatchResult.INCLUDED

        return MatchResult.UNMATCHED

    @property
    def include_rules(self) -> Tuple[GlobRule, ...]:
        return tuple(c.rule for c in self._rules[0])

    @property
    def exclude_rules(self) -> Tuple[GlobRule, ...]:
        return tuple(c.rule for c in self._rules[1])

    @property
    def has_includes(self) -> bool:
        return bool(self._rules[0])

    def __len__(self) -> int:
        includes, excludes = self._rules
        return len(includes) + len(excludes)

"""
ProtectionPolicy: decide which paths the change-producer may touch.

Patterns are glob-like and anchored at the working-tree root:
- `**/` matches zero or more leading path segments
- a trailing `/**` matches the directory itself and everything under it
- `*` matches within one segment, `?` matches one character of a segment

Each pattern table is compiled once into a single alternation, so a
classification is one regex match per table and pattern order never
changes the answer.
"""

import posixpath
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from tollgate.config import DEFAULT_PROTECTED_PATTERNS, DEFAULT_SENSITIVE_PATTERNS, MutationSettings
from tollgate.schemas import PathClass


def normalize_path(path: str) -> str:
    """
    Normalize a caller-supplied path to a root-relative POSIX path.

    Strips leading `./` and `/`, folds `.` and `..` segments. A result
    starting with `..` points outside the working tree.
    """
    normalized = path.replace("\\", "/")
    while normalized.startswith("./") or normalized.startswith("/"):
        normalized = normalized[2:] if normalized.startswith("./") else normalized[1:]
    if not normalized:
        return ""
    normalized = posixpath.normpath(normalized)
    return "" if normalized == "." else normalized


def escapes_root(normalized: str) -> bool:
    return normalized == ".." or normalized.startswith("../")


def glob_to_regex(pattern: str) -> str:
    """Translate one glob pattern into an (unanchored) regex fragment."""
    out: List[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("/**", i) and i + 3 == n:
            out.append("(?:/.*)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return "".join(out)


class PathMatcher:
    """An immutable, precompiled set of glob patterns."""

    def __init__(self, patterns: Iterable[str]):
        self._patterns: Tuple[str, ...] = tuple(normalize_path(p) for p in patterns if p.strip())
        self._each: Tuple[Tuple[str, Pattern[str]], ...] = tuple(
            (p, re.compile(glob_to_regex(p))) for p in self._patterns
        )
        self._combined: Optional[Pattern[str]] = None
        if self._patterns:
            self._combined = re.compile(
                "|".join(f"(?:{glob_to_regex(p)})" for p in self._patterns)
            )

    @property
    def patterns(self) -> Tuple[str, ...]:
        return self._patterns

    def matches(self, normalized_path: str) -> bool:
        if self._combined is None:
            return False
        return self._combined.fullmatch(normalized_path) is not None

    def matching_patterns(self, normalized_path: str) -> List[str]:
        """Every pattern that matches, in table order."""
        return [p for p, rx in self._each if rx.fullmatch(normalized_path)]

    def __len__(self) -> int:
        return len(self._patterns)


@dataclass
class PathPartition:
    """Paths split by classification."""
    ordinary: List[str] = field(default_factory=list)
    sensitive: List[str] = field(default_factory=list)
    protected: List[str] = field(default_factory=list)


class ProtectionPolicy:
    """
    Classify paths as ordinary, sensitive or protected.

    Protection always takes precedence over sensitivity. Pure: the pattern
    tables are fixed at construction.
    """

    def __init__(
        self,
        protected_patterns: Sequence[str] = DEFAULT_PROTECTED_PATTERNS,
        sensitive_patterns: Sequence[str] = DEFAULT_SENSITIVE_PATTERNS,
    ):
        self._protected = PathMatcher(protected_patterns)
        self._sensitive = PathMatcher(sensitive_patterns)

    @classmethod
    def from_settings(cls, settings: MutationSettings) -> "ProtectionPolicy":
        return cls(settings.protected_patterns, settings.sensitive_patterns)

    @property
    def protected_patterns(self) -> Tuple[str, ...]:
        return self._protected.patterns

    @property
    def sensitive_patterns(self) -> Tuple[str, ...]:
        return self._sensitive.patterns

    def classify(self, path: str) -> PathClass:
        normalized = normalize_path(path)
        if self._protected.matches(normalized):
            return PathClass.PROTECTED
        if self._sensitive.matches(normalized):
            return PathClass.SENSITIVE
        return PathClass.ORDINARY

    def is_protected(self, path: str) -> bool:
        return self.classify(path) is PathClass.PROTECTED

    def is_sensitive(self, path: str) -> bool:
        return self.classify(path) is PathClass.SENSITIVE

    def partition(self, paths: Iterable[str]) -> PathPartition:
        """Split paths into ordinary, sensitive and protected buckets."""
        result = PathPartition()
        for path in paths:
            path_class = self.classify(path)
            if path_class is PathClass.PROTECTED:
                result.protected.append(path)
            elif path_class is PathClass.SENSITIVE:
                result.sensitive.append(path)
            else:
                result.ordinary.append(path)
        return result

    def explain(self, path: str) -> dict:
        """Classification plus the patterns responsible for it."""
        normalized = normalize_path(path)
        return {
            "path": path,
            "normalized": normalized,
            "class": self.classify(path).value,
            "protected_by": self._protected.matching_patterns(normalized),
            "sensitive_by": self._sensitive.matching_patterns(normalized),
        }

"""Case-insensitive glob masks matched against leaf names."""

from __future__ import annotations

import fnmatch
import posixpath
import re
from typing import Callable, Iterable, List, Optional

WILDCARD_CHARS = set("*?[")


def has_wildcard(text: str) -> bool:
    return any(ch in WILDCARD_CHARS for ch in text)


def leaf_name(path: str) -> str:
    """Final path component; accepts both separators and ignores a trailing one."""
    cleaned = path.replace("\\", "/").rstrip("/")
    return posixpath.basename(cleaned) if cleaned else ""


def compile_mask(mask: str) -> Callable[[str], bool]:
    # fnmatch.translate gives shell semantics; IGNORECASE makes it platform independent
    pattern = re.compile(fnmatch.translate(mask), re.IGNORECASE | re.DOTALL)
    return lambda name: pattern.match(leaf_name(name)) is not None


class MaskSet:
    """A compiled list of masks. An empty set matches nothing."""

    def __init__(self, masks: Optional[Iterable[str]] = None):
        self.masks: List[str] = [m for m in (masks or []) if m]
        self._predicates = [compile_mask(m) for m in self.masks]

    def __bool__(self) -> bool:
        return bool(self.masks)

    def __repr__(self) -> str:
        return f"MaskSet({self.masks!r})"

    def matches(self, name: str) -> bool:
        return any(pred(name) for pred in self._predicates)


def passes_filters(name: str, include: MaskSet, exclude: MaskSet) -> bool:
    """Include narrows when non-empty; exclude always wins."""
    if include and not include.matches(name):
        return False
    if exclude and exclude.matches(name):
        return False
    return True


__all__ = [
    "MaskSet",
    "compile_mask",
    "has_wildcard",
    "leaf_name",
    "passes_filters",
]

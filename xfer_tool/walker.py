"""Lazy, optionally recursive and filtered remote directory listing."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .errors import ListingError
from .masks import MaskSet, passes_filters
from .models import DirectoryEntry, EntryKind, RemoteStat
from .session import Session


@dataclass
class ListFilter:
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    files_only: bool = False
    directories_only: bool = False

    def wants(self, kind: EntryKind) -> bool:
        # asking for both kinds or neither means everything
        if self.files_only == self.directories_only:
            return True
        if self.files_only:
            return kind is EntryKind.FILE
        return kind is EntryKind.DIRECTORY


def _with_separator(path: str) -> str:
    path = (path or "/").replace("\\", "/")
    return path if path.endswith("/") else path + "/"


def to_entry(root: str, row: RemoteStat) -> DirectoryEntry:
    base, _ext = posixpath.splitext(row.name)
    return DirectoryEntry(
        name=row.name,
        path=root + row.name,
        kind=EntryKind.DIRECTORY if row.is_dir else EntryKind.FILE,
        size=int(row.size or 0),
        mtime=datetime.fromtimestamp(row.mtime, tz=timezone.utc) if row.mtime is not None else None,
        permissions=row.mode,
        base_name=base or row.name,
    )


def _list_once(session: Session, root: str) -> List[RemoteStat]:
    # hold the session only for the listing call itself, never across yields
    with session.exclusive() as transport:
        try:
            return transport.list_directory(root)
        except Exception as exc:
            raise ListingError(root, str(exc) or exc.__class__.__name__) from exc


def list_directory(session: Session, path: str, filters: Optional[ListFilter] = None,
                   recurse: bool = False, max_depth: Optional[int] = None) -> Iterator[DirectoryEntry]:
    """Yield entries under ``path`` in pre-order.

    Nothing is listed until the first item is requested, and child directories are
    listed only when the consumer gets that far. Directories whose name starts with a
    dot are never descended into. ``max_depth`` (None = unlimited) counts levels below
    ``path``.
    """
    session.require_open()
    filters = filters or ListFilter()
    include = MaskSet(filters.include)
    exclude = MaskSet(filters.exclude)
    return _walk(session, _with_separator(path), filters, include, exclude, recurse, max_depth, 0)


def _walk(session: Session, root: str, filters: ListFilter, include: MaskSet, exclude: MaskSet,
          recurse: bool, max_depth: Optional[int], depth: int) -> Iterator[DirectoryEntry]:
    for row in _list_once(session, root):
        if row.name in (".", "..") or not row.name:
            continue
        entry = to_entry(root, row)
        if passes_filters(entry.name, include, exclude) and filters.wants(entry.kind):
            yield entry
        if (
            recurse
            and entry.is_directory
            and not entry.name.startswith(".")
            and (max_depth is None or depth < max_depth)
        ):
            yield from _walk(session, entry.path + "/", filters, include, exclude,
                             recurse, max_depth, depth + 1)


__all__ = ["ListFilter", "list_directory", "to_entry"]

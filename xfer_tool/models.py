"""Shared value types for sessions, listings and transfers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class _Tag(str, Enum):
    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "-")
        for member in cls:
            if text in (member.value, member.name.lower().replace("_", "-")):
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"invalid {cls.__name__.lower()} '{value}' (expected one of: {choices})")


class Protocol(_Tag):
    FTP = "ftp"
    SFTP = "sftp"
    SCP = "scp"


class Security(_Tag):
    NONE = "none"
    IMPLICIT_TLS = "implicit"
    EXPLICIT_TLS = "explicit-tls"
    EXPLICIT_SSL = "explicit-ssl"


class TransferMode(_Tag):
    PASSIVE = "passive"
    ACTIVE = "active"


class EntryKind(_Tag):
    FILE = "file"
    DIRECTORY = "directory"


class Direction(_Tag):
    UPLOAD = "upload"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class TrustOverrides:
    host_key: bool = False
    ssl_cert: bool = False
    tls_cert: bool = False

    @property
    def any(self) -> bool:
        return self.host_key or self.ssl_cert or self.tls_cert


@dataclass
class RemoteStat:
    """Raw listing row as a transport reports it."""

    name: str
    is_dir: bool
    size: int = 0
    mtime: Optional[float] = None
    mode: Optional[int] = None


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    kind: EntryKind
    size: int
    mtime: Optional[datetime]
    permissions: Optional[int]
    base_name: str

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass
class TransferRequest:
    direction: Direction
    source: str
    destination: str
    remove_source: bool = False
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    # ASCII transcoding is not supported; every transfer is binary
    binary: bool = field(default=True, init=False)


@dataclass
class FileTransfer:
    """One file a transport attempted within a batch."""

    file_name: str
    destination: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    transfers: List[FileTransfer] = field(default_factory=list)

    @property
    def failures(self) -> List[FileTransfer]:
        return [t for t in self.transfers if not t.ok]

    @property
    def is_success(self) -> bool:
        return not self.failures


@dataclass
class TransferOutcome:
    file_name: str
    destination: str
    success: bool
    error: Optional[str] = None

    def __post_init__(self):
        if self.success and self.error is not None:
            raise ValueError("a successful outcome cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("a failed outcome needs an error detail")


@dataclass
class ProgressEvent:
    direction: Direction
    file_name: str
    transferred: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0
        return min(1.0, self.transferred / self.total)


__all__ = [
    "Protocol",
    "Security",
    "TransferMode",
    "EntryKind",
    "Direction",
    "TrustOverrides",
    "RemoteStat",
    "DirectoryEntry",
    "TransferRequest",
    "FileTransfer",
    "BatchResult",
    "TransferOutcome",
    "ProgressEvent",
]

"""Error taxonomy for sessions, listings and transfers."""

from __future__ import annotations

from typing import Optional


class XferError(Exception):
    """Base class. ``fatal`` tells the CLI whether to report an error or a warning."""

    fatal = True


class ConnectionError(XferError):  # noqa: A001
    """Network or authentication failure while opening a session."""

    def __init__(self, host: str, reason: str):
        super().__init__(f"connection to {host} failed: {reason}")
        self.host = host
        self.reason = reason


class AlreadyOpenError(XferError):
    def __init__(self, host: str):
        super().__init__(f"a default session to {host} is already open; close it first")
        self.host = host


class SessionNotOpenError(XferError):
    def __init__(self, state: str = "closed"):
        super().__init__(f"session is not open (state: {state})")
        self.state = state


class InvalidLocalPathError(XferError):
    def __init__(self, path: str, reason: str = "not a local filesystem path"):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ListingError(XferError):
    """A directory could not be listed or prepared. Aborts the walk or batch.

    When raised out of a batch, ``partial`` holds the transport's BatchResult so far and
    ``outcomes`` the TransferOutcomes the engine built from everything that finished.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"listing {path} failed: {reason}")
        self.path = path
        self.reason = reason
        self.partial = None
        self.outcomes: list = []


class PerFileTransferError(XferError):
    """One file of a batch failed. Carried inside outcomes, never raised out of a batch."""

    fatal = False

    def __init__(self, file_name: str, reason: str, destination: Optional[str] = None):
        super().__init__(f"{file_name}: {reason}")
        self.file_name = file_name
        self.reason = reason
        self.destination = destination


class NoActiveSessionError(XferError):
    fatal = False

    def __init__(self):
        super().__init__("there is no active session to close")


__all__ = [
    "XferError",
    "ConnectionError",
    "AlreadyOpenError",
    "SessionNotOpenError",
    "InvalidLocalPathError",
    "ListingError",
    "PerFileTransferError",
    "NoActiveSessionError",
]

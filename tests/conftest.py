"""Shared fixtures: an in-memory remote filesystem behind the real batch logic."""

from __future__ import annotations

import posixpath
from typing import Dict, List, Optional, Set

import pytest

from xfer_tool.config import SessionConfig
from xfer_tool.models import RemoteStat, TrustOverrides
from xfer_tool.session import SessionManager
from xfer_tool.transport import BaseTransport

MTIME = 1_700_000_000.0


def _norm(path: str) -> str:
    return posixpath.normpath("/" + path.strip("/")) if path not in ("", ".") else "/"


class MemoryTransport(BaseTransport):
    """Remote tree kept in dicts. Failures are injected per path."""

    def __init__(self, config: Optional[SessionConfig] = None, trust: Optional[TrustOverrides] = None):
        super().__init__(config or SessionConfig(host="example.test"), trust or TrustOverrides())
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = {"/"}
        self.fail_get: Set[str] = set()
        self.fail_put: Set[str] = set()
        self.fail_list: Set[str] = set()
        self.list_calls: List[str] = []
        self.connect_error: Optional[Exception] = None
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0

    def bind(self, config: SessionConfig, trust: TrustOverrides, logger=None) -> "MemoryTransport":
        self.config = config
        self.trust = trust
        if logger is not None:
            self.logger = logger
        return self

    def add_dir(self, path: str) -> None:
        path = _norm(path)
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def add_file(self, path: str, data: bytes = b"payload") -> None:
        path = _norm(path)
        self.add_dir(posixpath.dirname(path))
        self.files[path] = data

    def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    def list_directory(self, path: str) -> List[RemoteStat]:
        norm = _norm(path)
        self.list_calls.append(norm)
        if norm in self.fail_list:
            raise IOError("permission denied")
        if norm not in self.dirs:
            raise IOError(f"no such directory: {norm}")
        rows = [RemoteStat(".", True), RemoteStat("..", True)]
        for d in sorted(self.dirs):
            if d != "/" and posixpath.dirname(d) == norm:
                rows.append(RemoteStat(posixpath.basename(d), True, 0, MTIME, 0o755))
        for f, data in sorted(self.files.items()):
            if posixpath.dirname(f) == norm:
                rows.append(RemoteStat(posixpath.basename(f), False, len(data), MTIME, 0o644))
        return rows

    def _stat(self, path: str) -> Optional[RemoteStat]:
        norm = _norm(path)
        if norm in self.dirs:
            return RemoteStat(posixpath.basename(norm) or "/", True)
        if norm in self.files:
            return RemoteStat(posixpath.basename(norm), False, len(self.files[norm]), MTIME, 0o644)
        return None

    def _download(self, remote_path, local_path, callback) -> None:
        norm = _norm(remote_path)
        if norm in self.fail_get:
            raise IOError("simulated transfer failure")
        data = self.files[norm]
        with open(local_path, "wb") as fh:
            fh.write(data)
        callback(len(data), len(data))

    def _upload(self, local_path, remote_path, callback) -> None:
        norm = _norm(remote_path)
        if norm in self.fail_put:
            raise IOError("simulated transfer failure")
        if posixpath.dirname(norm) not in self.dirs:
            raise IOError(f"no such directory: {posixpath.dirname(norm)}")
        with open(local_path, "rb") as fh:
            data = fh.read()
        self.files[norm] = data
        callback(len(data), len(data))

    def _remove(self, remote_path) -> None:
        del self.files[_norm(remote_path)]

    def _mkdir(self, remote_path) -> None:
        self.dirs.add(_norm(remote_path))

    def _rmdir(self, remote_path) -> None:
        norm = _norm(remote_path)
        if any(posixpath.dirname(p) == norm for p in list(self.files) + list(self.dirs) if p != norm):
            raise IOError("directory not empty")
        self.dirs.discard(norm)


@pytest.fixture
def remote() -> MemoryTransport:
    return MemoryTransport()


@pytest.fixture
def manager(remote: MemoryTransport) -> SessionManager:
    return SessionManager(transport_factory=remote.bind)


@pytest.fixture
def session(manager: SessionManager):
    sess = manager.open(SessionConfig(host="example.test", username="tester"), make_default=False)
    yield sess
    sess.close()

"""Transport provider interface and the batch logic shared by every protocol.

A concrete transport only implements a handful of primitives (list, stat, get one
file, put one file, remove, mkdir, rmdir). Wildcard expansion, directory recursion,
remove-after-success, progress events and per-file error capture live here.
"""

from __future__ import annotations

import glob
import logging
import os
import posixpath
from typing import Callable, List, Optional

from .config import SessionConfig
from .errors import ListingError
from .masks import compile_mask, has_wildcard, leaf_name
from .models import (
    BatchResult,
    Direction,
    FileTransfer,
    ProgressEvent,
    Protocol,
    RemoteStat,
    TrustOverrides,
)

ProgressCallback = Callable[[ProgressEvent], None]

PART_SUFFIX = ".part"

_PERM_BITS = (
    (0o400, "r"), (0o200, "w"), (0o100, "x"),
    (0o040, "r"), (0o020, "w"), (0o010, "x"),
    (0o004, "r"), (0o002, "w"), (0o001, "x"),
)


def mode_from_permissions(text: str) -> Optional[int]:
    """'drwxr-x---' -> 0o750. Special bits (s/t) count as execute."""
    flags = text[1:10] if len(text) >= 10 else ""
    if len(flags) != 9:
        return None
    mode = 0
    for (bit, char), actual in zip(_PERM_BITS, flags):
        if actual == char or (char == "x" and actual in "sStT" and actual.islower()):
            mode |= bit
    return mode


def remote_join(parent: str, name: str) -> str:
    if not parent:
        return name
    return parent.rstrip("/") + "/" + name if parent != "/" else "/" + name


class TransportProvider:
    """What the session manager, walker and engine expect from a protocol backend."""

    def connect(self) -> None:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def list_directory(self, path: str) -> List[RemoteStat]:
        raise NotImplementedError

    def get_files(self, remote_mask: str, local_dest: str, remove_after: bool = False,
                  binary: bool = True) -> BatchResult:
        raise NotImplementedError

    def put_files(self, local_path: str, remote_dest: str, remove_after: bool = False,
                  binary: bool = True) -> BatchResult:
        raise NotImplementedError

    def on_progress(self, callback: ProgressCallback) -> None:
        raise NotImplementedError


class BaseTransport(TransportProvider):
    def __init__(self, config: SessionConfig, trust: TrustOverrides,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.trust = trust
        self.logger = logger or logging.getLogger("xfer_tool")
        self._listeners: List[ProgressCallback] = []

    # ---------------------------------------------------------------- primitives
    def _stat(self, path: str) -> Optional[RemoteStat]:
        """Stat through the parent listing; transports with a native stat override this."""
        path = path.rstrip("/") or "/"
        if path == "/":
            return RemoteStat(name="/", is_dir=True)
        parent = posixpath.dirname(path) or "."
        name = posixpath.basename(path)
        try:
            rows = self.list_directory(parent)
        except OSError:
            return None
        for row in rows:
            if row.name == name:
                return row
        return None

    def _download(self, remote_path: str, local_path: str, callback: Callable[[int, int], None]) -> None:
        raise NotImplementedError

    def _upload(self, local_path: str, remote_path: str, callback: Callable[[int, int], None]) -> None:
        raise NotImplementedError

    def _remove(self, remote_path: str) -> None:
        raise NotImplementedError

    def _mkdir(self, remote_path: str) -> None:
        raise NotImplementedError

    def _rmdir(self, remote_path: str) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------ progress
    def on_progress(self, callback: ProgressCallback) -> None:
        self._listeners.append(callback)

    def _progress_callback(self, direction: Direction, file_name: str) -> Callable[[int, int], None]:
        # same (transferred, total) shape paramiko uses for put/get callbacks
        def emit(transferred: int, total: int) -> None:
            if not self._listeners:
                return
            event = ProgressEvent(direction=direction, file_name=file_name,
                                  transferred=int(transferred), total=int(total))
            for listener in self._listeners:
                listener(event)
        return emit

    # --------------------------------------------------------------------- batch
    def _batch_listing(self, path: str) -> List[RemoteStat]:
        try:
            return self.list_directory(path)
        except Exception as exc:
            raise ListingError(path, str(exc) or exc.__class__.__name__) from exc

    def get_files(self, remote_mask: str, local_dest: str, remove_after: bool = False,
                  binary: bool = True) -> BatchResult:
        if not binary:
            raise ValueError("only binary transfers are supported")
        result = BatchResult()
        remote_mask = remote_mask.replace("\\", "/")
        trimmed = remote_mask.rstrip("/") or "/"
        parent, leaf = posixpath.split(trimmed)

        if has_wildcard(leaf):
            matcher = compile_mask(leaf)
            rows = [
                r for r in self._batch_listing(parent or ".")
                if r.name not in (".", "..") and matcher(r.name)
            ]
            targets = [(remote_join(parent, r.name), r) for r in rows]
        else:
            st = self._stat(trimmed)
            if st is None:
                result.transfers.append(FileTransfer(leaf or trimmed, local_dest, error="no such file or directory"))
                return result
            targets = [(trimmed, st)]

        try:
            for remote_path, st in targets:
                name = leaf_name(remote_path) or st.name
                local_target = self._local_target(local_dest, name)
                if st.is_dir:
                    self._get_tree(remote_path, local_target, remove_after, result)
                else:
                    self._get_one(remote_path, local_target, remove_after, result)
        except ListingError as exc:
            exc.partial = result
            raise
        return result

    def put_files(self, local_path: str, remote_dest: str, remove_after: bool = False,
                  binary: bool = True) -> BatchResult:
        if not binary:
            raise ValueError("only binary transfers are supported")
        result = BatchResult()
        # an existing path is taken literally even if its name holds [ ] * ?
        if not os.path.exists(local_path) and has_wildcard(os.path.basename(local_path)):
            sources = sorted(glob.glob(local_path))
        else:
            sources = [local_path]

        try:
            for source in sources:
                name = leaf_name(source)
                remote_target = remote_join(remote_dest, name) if remote_dest.endswith("/") else remote_dest
                if os.path.isdir(source):
                    self._put_tree(source, remote_target, remove_after, result)
                elif os.path.isfile(source):
                    self._put_one(source, remote_target, remove_after, result)
                else:
                    result.transfers.append(FileTransfer(name, remote_target, error="no such local file"))
        except ListingError as exc:
            exc.partial = result
            raise
        return result

    @staticmethod
    def _local_target(local_dest: str, name: str) -> str:
        if local_dest.endswith(("/", os.sep)) or os.path.isdir(local_dest):
            return os.path.join(local_dest, name)
        return local_dest

    def _get_one(self, remote_path: str, local_path: str, remove_after: bool, result: BatchResult) -> None:
        name = leaf_name(remote_path)
        # written under a temporary name so a failed get never leaves a truncated target
        part_path = local_path + PART_SUFFIX
        try:
            parent = os.path.dirname(local_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            self._download(remote_path, part_path, self._progress_callback(Direction.DOWNLOAD, name))
            os.replace(part_path, local_path)
            if remove_after:
                self._remove(remote_path)
        except Exception as exc:  # collected per file, the batch goes on
            self.logger.debug("[GET] %s failed: %r", remote_path, exc)
            if os.path.exists(part_path):
                try:
                    os.remove(part_path)
                except OSError as cleanup_exc:
                    self.logger.warning(f"[GET] could not remove partial file {part_path}: {cleanup_exc}")
            result.transfers.append(FileTransfer(name, local_path, error=str(exc) or exc.__class__.__name__))
            return
        result.transfers.append(FileTransfer(name, local_path))

    def _get_tree(self, remote_dir: str, local_dir: str, remove_after: bool, result: BatchResult) -> None:
        os.makedirs(local_dir, exist_ok=True)
        before = len(result.failures)
        for row in self._batch_listing(remote_dir):
            if row.name in (".", ".."):
                continue
            child_remote = remote_join(remote_dir, row.name)
            child_local = os.path.join(local_dir, row.name)
            if row.is_dir:
                self._get_tree(child_remote, child_local, remove_after, result)
            else:
                self._get_one(child_remote, child_local, remove_after, result)
        if remove_after and len(result.failures) == before:
            try:
                self._rmdir(remote_dir)
            except Exception as exc:
                self.logger.warning(f"[GET] could not remove source directory {remote_dir}: {exc}")

    def _put_one(self, local_path: str, remote_path: str, remove_after: bool, result: BatchResult) -> None:
        name = leaf_name(local_path)
        try:
            self._upload(local_path, remote_path, self._progress_callback(Direction.UPLOAD, name))
            if remove_after:
                os.remove(local_path)
        except Exception as exc:  # collected per file, the batch goes on
            self.logger.debug("[PUT] %s failed: %r", local_path, exc)
            result.transfers.append(FileTransfer(name, remote_path, error=str(exc) or exc.__class__.__name__))
            return
        result.transfers.append(FileTransfer(name, remote_path))

    def _put_tree(self, local_dir: str, remote_dir: str, remove_after: bool, result: BatchResult) -> None:
        try:
            self.ensure_remote_dir(remote_dir)
        except Exception as exc:
            raise ListingError(remote_dir, str(exc) or exc.__class__.__name__) from exc
        before = len(result.failures)
        for name in sorted(os.listdir(local_dir)):
            child_local = os.path.join(local_dir, name)
            child_remote = remote_join(remote_dir, name)
            if os.path.isdir(child_local):
                self._put_tree(child_local, child_remote, remove_after, result)
            else:
                self._put_one(child_local, child_remote, remove_after, result)
        if remove_after and len(result.failures) == before:
            try:
                os.rmdir(local_dir)
            except OSError as exc:
                self.logger.warning(f"[PUT] could not remove source directory {local_dir}: {exc}")

    def ensure_remote_dir(self, remote_dir: str) -> None:
        remote_dir = posixpath.normpath(remote_dir)
        if remote_dir in ("", "/", "."):
            return
        path = "/" if remote_dir.startswith("/") else ""
        for part in remote_dir.strip("/").split("/"):
            path = remote_join(path, part)
            if self._stat(path) is None:
                self._mkdir(path)


def create_transport(config: SessionConfig, trust: TrustOverrides,
                     logger: Optional[logging.Logger] = None) -> BaseTransport:
    if config.protocol is Protocol.FTP:
        from .ftp_transport import FTPTransport
        return FTPTransport(config, trust, logger)
    from .ssh_transport import SCPTransport, SFTPTransport
    if config.protocol is Protocol.SCP:
        return SCPTransport(config, trust, logger)
    return SFTPTransport(config, trust, logger)


__all__ = [
    "PART_SUFFIX",
    "ProgressCallback",
    "TransportProvider",
    "BaseTransport",
    "create_transport",
    "mode_from_permissions",
    "remote_join",
]

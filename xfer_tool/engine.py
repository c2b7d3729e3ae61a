"""Batch upload/download with filtering, destination resolution and per-file outcomes."""

from __future__ import annotations

import glob
import logging
import os
import re
from pathlib import Path
from typing import Callable, List, Optional

from .errors import InvalidLocalPathError, ListingError, PerFileTransferError, XferError
from .masks import MaskSet, has_wildcard, leaf_name, passes_filters
from .models import BatchResult, Direction, TransferOutcome, TransferRequest
from .session import Session

# confirm(action, target) -> False vetoes the action
ConfirmCallback = Callable[[str, str], bool]

_PROVIDER_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]+:(//|(?![\\/]))")


def resolve_local_destination(destination: str) -> str:
    """Absolute local path; an existing directory gets a trailing separator."""
    if not destination or _PROVIDER_PREFIX.match(destination):
        raise InvalidLocalPathError(destination or "<empty>")
    path = Path(destination).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    path = Path(os.path.normpath(str(path)))
    probe = path
    while not probe.exists():
        if probe.parent == probe:
            break
        probe = probe.parent
    if probe != path and probe.exists() and not probe.is_dir():
        raise InvalidLocalPathError(destination, f"{probe} is not a directory")
    resolved = str(path)
    if path.is_dir() or destination.endswith(("/", os.sep)):
        resolved = resolved.rstrip(os.sep) + os.sep
    return resolved


def expand_local_source(source: str) -> List[str]:
    path = os.path.expanduser(source)
    # an existing path is taken literally even if its name holds [ ] * ?
    if os.path.exists(path):
        return [path]
    if has_wildcard(os.path.basename(path)):
        return sorted(glob.glob(path))
    return []


class TransferEngine:
    def __init__(self, confirm: Optional[ConfirmCallback] = None,
                 logger: Optional[logging.Logger] = None):
        self.confirm = confirm
        self.logger = logger or logging.getLogger("xfer_tool")

    def _allowed(self, action: str, target: str) -> bool:
        if self.confirm is None:
            return True
        if self.confirm(action, target):
            return True
        self.logger.info(f"[WHATIF] skipped: {action} -> {target}")
        return False

    def _outcomes(self, batch: BatchResult, tag: str, check_local: bool) -> List[TransferOutcome]:
        outcomes: List[TransferOutcome] = []
        for item in batch.transfers:
            error = item.error
            if error is None and check_local and not os.path.isfile(item.destination):
                error = "transfer reported success but the local file is missing"
            if error is None:
                self.logger.info(f"[{tag}] {item.file_name} -> {item.destination}")
                outcomes.append(TransferOutcome(item.file_name, item.destination, True))
            else:
                failure = PerFileTransferError(item.file_name, error, item.destination)
                self.logger.warning(f"[{tag}] {failure}")
                outcomes.append(TransferOutcome(item.file_name, item.destination, False, error))
        return outcomes

    def _run_batch(self, call: Callable[[], BatchResult], source: str, tag: str,
                   check_local: bool, done: List[TransferOutcome]) -> List[TransferOutcome]:
        """One transport batch. Batch-level failures leave as ListingError with the finished outcomes."""
        try:
            batch = call()
        except ListingError as exc:
            partial = self._outcomes(exc.partial, tag, check_local) if exc.partial is not None else []
            exc.outcomes = done + partial
            raise
        except XferError:
            raise
        except Exception as exc:
            failure = ListingError(source, str(exc) or exc.__class__.__name__)
            failure.outcomes = list(done)
            raise failure from exc
        return self._outcomes(batch, tag, check_local)

    def download(self, session: Session, request: TransferRequest) -> List[TransferOutcome]:
        if request.direction is not Direction.DOWNLOAD:
            raise ValueError("download() needs a download request")
        session.require_open()
        destination = resolve_local_destination(request.destination)

        # filters only see the literal source leaf, not the files it expands to
        name = leaf_name(request.source)
        if not passes_filters(name, MaskSet(request.include), MaskSet(request.exclude)):
            self.logger.info(f"[GET] {request.source} filtered out")
            return []
        if not self._allowed(f"Download {request.source}", destination):
            return []

        with session.exclusive() as transport:
            return self._run_batch(
                lambda: transport.get_files(request.source, destination,
                                            remove_after=request.remove_source, binary=True),
                request.source, "GET", check_local=True, done=[],
            )

    def upload(self, session: Session, request: TransferRequest) -> List[TransferOutcome]:
        if request.direction is not Direction.UPLOAD:
            raise ValueError("upload() needs an upload request")
        session.require_open()
        candidates = expand_local_source(request.source)
        if not candidates:
            raise InvalidLocalPathError(request.source, "no local file or directory matches")

        include, exclude = MaskSet(request.include), MaskSet(request.exclude)
        selected = [local for local in candidates if passes_filters(leaf_name(local), include, exclude)]
        if len(selected) > 1 and not request.destination.endswith("/"):
            self.logger.warning(
                f"[PUT] {len(selected)} files all target {request.destination}; "
                "end the destination with / to upload into a directory"
            )

        outcomes: List[TransferOutcome] = []
        with session.exclusive() as transport:
            for local in selected:
                remote = request.destination
                if remote.endswith("/"):
                    remote = remote + leaf_name(local)
                if not self._allowed(f"Upload {local}", remote):
                    continue
                outcomes.extend(self._run_batch(
                    lambda: transport.put_files(local, remote, remove_after=request.remove_source, binary=True),
                    local, "PUT", check_local=False, done=outcomes,
                ))
        return outcomes

    def run(self, session: Session, request: TransferRequest) -> List[TransferOutcome]:
        if request.direction is Direction.UPLOAD:
            return self.upload(session, request)
        return self.download(session, request)


def download(session: Session, request: TransferRequest,
             confirm: Optional[ConfirmCallback] = None) -> List[TransferOutcome]:
    return TransferEngine(confirm=confirm).download(session, request)


def upload(session: Session, request: TransferRequest,
           confirm: Optional[ConfirmCallback] = None) -> List[TransferOutcome]:
    return TransferEngine(confirm=confirm).upload(session, request)


__all__ = [
    "ConfirmCallback",
    "TransferEngine",
    "download",
    "upload",
    "expand_local_source",
    "resolve_local_destination",
]

"""FTP / FTPS transport on top of ftplib."""

from __future__ import annotations

import calendar
import ftplib
import logging
import ssl
import time
from datetime import datetime
from typing import Callable, List, Optional

from .config import SessionConfig
from .models import RemoteStat, Security, TransferMode, TrustOverrides
from .transport import BaseTransport, mode_from_permissions

BLOCK_SIZE = 32768

_MONTHS = {m: i for i, m in enumerate(
    ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1)}


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTPS where the control connection is TLS from the first byte (port 990)."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._sock = None

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


class ExplicitSSL_FTP(ftplib.FTP_TLS):
    """Explicit FTPS negotiated with ``AUTH SSL`` instead of ``AUTH TLS``."""

    def auth(self):
        if isinstance(self.sock, ssl.SSLSocket):
            raise ValueError("Already using TLS")
        resp = self.voidcmd("AUTH SSL")
        self.sock = self.context.wrap_socket(self.sock, server_hostname=self.host)
        self.file = self.sock.makefile(mode="r", encoding=self.encoding)
        return resp


def build_ssl_context(security: Security, trust: TrustOverrides) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if security is Security.EXPLICIT_SSL:
        skip = trust.ssl_cert
    elif security is Security.EXPLICIT_TLS:
        skip = trust.tls_cert
    else:
        skip = trust.ssl_cert or trust.tls_cert
    if skip:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def parse_mlsd_time(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        parsed = datetime.strptime(value[:14], "%Y%m%d%H%M%S")
    except ValueError:
        return None
    return float(calendar.timegm(parsed.timetuple()))


def parse_list_line(line: str) -> Optional[RemoteStat]:
    """Parse a unix-style ``LIST`` line ('drwxr-xr-x 2 u g 4096 Jan 01 12:00 name')."""
    parts = line.split(None, 8)
    if len(parts) < 9 or parts[0].startswith("total"):
        return None
    perms, _links, _owner, _group, size, month, day, clock, name = parts
    if perms.startswith("l") and " -> " in name:
        name = name.split(" -> ", 1)[0]
    try:
        size_val = int(size)
    except ValueError:
        return None
    mtime = None
    month_no = _MONTHS.get(month.lower()[:3])
    if month_no and day.isdigit():
        if ":" in clock:
            year = time.gmtime().tm_year
            hour, minute = (int(x) for x in clock.split(":", 1))
        else:
            year, hour, minute = int(clock), 0, 0
        try:
            mtime = float(calendar.timegm((year, month_no, int(day), hour, minute, 0)))
        except (ValueError, OverflowError):
            mtime = None
    return RemoteStat(name=name, is_dir=perms.startswith("d"), size=size_val,
                      mtime=mtime, mode=mode_from_permissions(perms))


class FTPTransport(BaseTransport):
    def __init__(self, config: SessionConfig, trust: TrustOverrides,
                 logger: Optional[logging.Logger] = None):
        super().__init__(config, trust, logger)
        self._ftp: Optional[ftplib.FTP] = None
        self._use_mlsd = True

    def _new_client(self) -> ftplib.FTP:
        security = self.config.security
        if security is Security.NONE:
            return ftplib.FTP()
        ctx = build_ssl_context(security, self.trust)
        if security is Security.IMPLICIT_TLS:
            return ImplicitFTP_TLS(context=ctx)
        if security is Security.EXPLICIT_SSL:
            return ExplicitSSL_FTP(context=ctx)
        return ftplib.FTP_TLS(context=ctx)

    def connect(self) -> None:
        ftp = self._new_client()
        try:
            ftp.connect(self.config.host, self.config.effective_port(), timeout=self.config.timeout)
            # FTP_TLS.login sends AUTH first for the explicit variants
            ftp.login(self.config.username or "anonymous", self.config.password or "")
            if isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()
            ftp.set_pasv(self.config.transfer_mode is TransferMode.PASSIVE)
            ftp.voidcmd("TYPE I")
        except Exception:
            ftp.close()
            raise
        self._ftp = ftp

    def disconnect(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            self._ftp.close()
        self._ftp = None

    @property
    def ftp(self) -> ftplib.FTP:
        if self._ftp is None:
            raise IOError("FTP connection is not open")
        return self._ftp

    def list_directory(self, path: str) -> List[RemoteStat]:
        path = path or "."
        try:
            if self._use_mlsd:
                try:
                    return self._list_mlsd(path)
                except ftplib.error_perm as exc:
                    if not str(exc).startswith("500") and not str(exc).startswith("502"):
                        raise
                    self.logger.debug("[LIST] MLSD unsupported, falling back to LIST")
                    self._use_mlsd = False
            lines: List[str] = []
            self.ftp.retrlines(f"LIST {path}", lines.append)
        except ftplib.all_errors as exc:
            raise IOError(str(exc)) from exc
        rows = [parse_list_line(line) for line in lines]
        return [r for r in rows if r is not None]

    def _list_mlsd(self, path: str) -> List[RemoteStat]:
        rows: List[RemoteStat] = []
        for name, facts in self.ftp.mlsd(path, facts=["type", "size", "modify", "unix.mode"]):
            kind = facts.get("type", "").lower()
            if kind in ("cdir", "pdir"):
                continue
            mode = facts.get("unix.mode")
            rows.append(RemoteStat(
                name=name,
                is_dir=kind == "dir",
                size=int(facts.get("size", 0) or 0),
                mtime=parse_mlsd_time(facts.get("modify")),
                mode=int(mode, 8) if mode else None,
            ))
        return rows

    def _download(self, remote_path: str, local_path: str, callback: Callable[[int, int], None]) -> None:
        try:
            total = self.ftp.size(remote_path) or 0
        except ftplib.error_perm:
            total = 0
        received = 0
        with open(local_path, "wb") as fh:
            def write(block: bytes) -> None:
                nonlocal received
                fh.write(block)
                received += len(block)
                callback(received, total)
            self.ftp.retrbinary(f"RETR {remote_path}", write, blocksize=BLOCK_SIZE)

    def _upload(self, local_path: str, remote_path: str, callback: Callable[[int, int], None]) -> None:
        sent = 0
        with open(local_path, "rb") as fh:
            fh.seek(0, 2)
            total = fh.tell()
            fh.seek(0)

            def tick(block: bytes) -> None:
                nonlocal sent
                sent += len(block)
                callback(sent, total)
            self.ftp.storbinary(f"STOR {remote_path}", fh, blocksize=BLOCK_SIZE, callback=tick)

    def _remove(self, remote_path: str) -> None:
        self.ftp.delete(remote_path)

    def _mkdir(self, remote_path: str) -> None:
        self.ftp.mkd(remote_path)

    def _rmdir(self, remote_path: str) -> None:
        self.ftp.rmd(remote_path)


__all__ = [
    "FTPTransport",
    "ImplicitFTP_TLS",
    "ExplicitSSL_FTP",
    "build_ssl_context",
    "parse_list_line",
    "parse_mlsd_time",
]

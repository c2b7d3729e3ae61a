"""SFTP and SCP transports on top of paramiko (and scp for the SCP data channel)."""

from __future__ import annotations

import base64
import hashlib
import logging
import shlex
import stat
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import paramiko
from scp import SCPClient

from .config import SessionConfig
from .masks import leaf_name
from .models import Direction, RemoteStat, TrustOverrides
from .transport import BaseTransport, mode_from_permissions


def key_fingerprints(key: paramiko.PKey) -> Dict[str, str]:
    raw = key.asbytes()
    sha256 = base64.b64encode(hashlib.sha256(raw).digest()).decode("ascii").rstrip("=")
    md5 = hashlib.md5(raw).hexdigest()
    return {
        "sha256": f"SHA256:{sha256}",
        "md5": ":".join(md5[i:i + 2] for i in range(0, len(md5), 2)),
    }


def fingerprint_matches(key: paramiko.PKey, expected: str) -> bool:
    """Accepts 'SHA256:...', bare MD5 'aa:bb:..', or the 'ssh-ed25519 255 <fp>' form."""
    token = expected.strip().split()[-1] if expected.strip() else ""
    actual = key_fingerprints(key)
    if token.upper().startswith("SHA256:"):
        return token[7:].rstrip("=") == actual["sha256"][7:]
    if token.upper().startswith("MD5:"):
        token = token[4:]
    return token.lower() == actual["md5"]


class FingerprintPolicy(paramiko.MissingHostKeyPolicy):
    def __init__(self, expected: str):
        self.expected = expected

    def missing_host_key(self, client, hostname, key):
        if not fingerprint_matches(key, self.expected):
            raise paramiko.SSHException(
                f"host key for {hostname} does not match the configured fingerprint "
                f"(server offered {key_fingerprints(key)['sha256']})"
            )


def connect_ssh(config: SessionConfig, trust: TrustOverrides) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    if trust.host_key:
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    elif config.host_key_fingerprint:
        client.set_missing_host_key_policy(FingerprintPolicy(config.host_key_fingerprint))
    else:
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

    kwargs: Dict[str, Any] = dict(
        hostname=config.host,
        port=config.effective_port(),
        username=config.username or None,
        timeout=config.timeout,
        banner_timeout=config.timeout,
        auth_timeout=config.timeout,
        allow_agent=True,
        look_for_keys=True,
    )
    if config.password:
        kwargs["password"] = config.password
    if config.key_path and Path(config.key_path).expanduser().exists():
        kwargs["key_filename"] = str(Path(config.key_path).expanduser())
    try:
        client.connect(**kwargs)
    except Exception:
        client.close()
        raise
    return client


class SFTPTransport(BaseTransport):
    def __init__(self, config: SessionConfig, trust: TrustOverrides,
                 logger: Optional[logging.Logger] = None):
        super().__init__(config, trust, logger)
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def connect(self) -> None:
        self._client = connect_ssh(self.config, self.trust)
        self._sftp = self._client.open_sftp()

    def disconnect(self) -> None:
        if self._sftp is not None:
            try:
                self._sftp.close()
            except Exception:
                pass
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise IOError("SFTP channel is not open")
        return self._sftp

    @staticmethod
    def _to_stat(name: str, attr: paramiko.SFTPAttributes) -> RemoteStat:
        mode = attr.st_mode or 0
        return RemoteStat(
            name=name,
            is_dir=stat.S_ISDIR(mode),
            size=int(attr.st_size or 0),
            mtime=float(attr.st_mtime) if attr.st_mtime is not None else None,
            mode=stat.S_IMODE(mode) if attr.st_mode is not None else None,
        )

    def list_directory(self, path: str) -> List[RemoteStat]:
        return [self._to_stat(a.filename, a) for a in self.sftp.listdir_attr(path or ".")]

    def _stat(self, path: str) -> Optional[RemoteStat]:
        try:
            attr = self.sftp.stat(path)
        except IOError:
            return None
        return self._to_stat(leaf_name(path) or path, attr)

    def _download(self, remote_path: str, local_path: str, callback: Callable[[int, int], None]) -> None:
        self.sftp.get(remote_path, local_path, callback=callback)

    def _upload(self, local_path: str, remote_path: str, callback: Callable[[int, int], None]) -> None:
        self.sftp.put(local_path, remote_path, callback=callback, confirm=True)

    def _remove(self, remote_path: str) -> None:
        self.sftp.remove(remote_path)

    def _mkdir(self, remote_path: str) -> None:
        self.sftp.mkdir(remote_path)

    def _rmdir(self, remote_path: str) -> None:
        self.sftp.rmdir(remote_path)


def parse_ls_line(line: str) -> Optional[RemoteStat]:
    """Parse one line of ``ls -la --time-style=+%s`` output."""
    parts = line.split(None, 6)
    if len(parts) < 7 or parts[0].startswith("total"):
        return None
    perms, _links, _owner, _group, size, mtime, name = parts
    if perms.startswith("l") and " -> " in name:
        name = name.split(" -> ", 1)[0]
    try:
        size_val = int(size)
        mtime_val = float(mtime)
    except ValueError:
        return None
    return RemoteStat(
        name=name,
        is_dir=perms.startswith("d"),
        size=size_val,
        mtime=mtime_val,
        mode=mode_from_permissions(perms),
    )


class SCPTransport(BaseTransport):
    """SCP has no listing verb, so listings go through ``ls`` on the remote shell (GNU coreutils)."""

    def __init__(self, config: SessionConfig, trust: TrustOverrides,
                 logger: Optional[logging.Logger] = None):
        super().__init__(config, trust, logger)
        self._client: Optional[paramiko.SSHClient] = None
        self._scp: Optional[SCPClient] = None
        self._direction = Direction.DOWNLOAD

    def connect(self) -> None:
        self._client = connect_ssh(self.config, self.trust)
        self._scp = SCPClient(self._client.get_transport(), progress=self._scp_progress,
                              socket_timeout=float(self.config.timeout))

    def disconnect(self) -> None:
        if self._scp is not None:
            try:
                self._scp.close()
            except Exception:
                pass
            self._scp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def _scp_progress(self, filename, size, sent) -> None:
        name = filename.decode("utf-8", "replace") if isinstance(filename, bytes) else str(filename)
        self._progress_callback(self._direction, leaf_name(name))(sent, size)

    def _run(self, command: str) -> str:
        if self._client is None:
            raise IOError("SSH connection is not open")
        _stdin, stdout, stderr = self._client.exec_command(command, timeout=self.config.timeout)
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace").strip()
        if stdout.channel.recv_exit_status() != 0:
            raise IOError(err or f"remote command failed: {command}")
        return out

    def list_directory(self, path: str) -> List[RemoteStat]:
        out = self._run(f"ls -la --time-style=+%s -- {shlex.quote(path or '.')}")
        rows = [parse_ls_line(line) for line in out.splitlines()]
        return [r for r in rows if r is not None]

    def _stat(self, path: str) -> Optional[RemoteStat]:
        try:
            out = self._run(f"ls -lad --time-style=+%s -- {shlex.quote(path)}")
        except IOError:
            return None
        row = parse_ls_line(out.strip())
        if row is not None:
            row.name = leaf_name(path) or path
        return row

    @property
    def scp(self) -> SCPClient:
        if self._scp is None:
            raise IOError("SCP channel is not open")
        return self._scp

    def _download(self, remote_path: str, local_path: str, callback: Callable[[int, int], None]) -> None:
        self._direction = Direction.DOWNLOAD
        self.scp.get(remote_path, local_path)

    def _upload(self, local_path: str, remote_path: str, callback: Callable[[int, int], None]) -> None:
        self._direction = Direction.UPLOAD
        self.scp.put(local_path, remote_path)

    def _remove(self, remote_path: str) -> None:
        self._run(f"rm -f -- {shlex.quote(remote_path)}")

    def _mkdir(self, remote_path: str) -> None:
        self._run(f"mkdir -- {shlex.quote(remote_path)}")

    def _rmdir(self, remote_path: str) -> None:
        self._run(f"rmdir -- {shlex.quote(remote_path)}")


__all__ = [
    "SFTPTransport",
    "SCPTransport",
    "FingerprintPolicy",
    "connect_ssh",
    "fingerprint_matches",
    "key_fingerprints",
    "parse_ls_line",
]

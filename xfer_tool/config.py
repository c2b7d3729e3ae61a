"""Configuration loading: .env / YAML profiles, environment variables and CLI overrides."""

from __future__ import annotations

import getpass
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models import Protocol, Security, TransferMode

DEFAULT_PORTS = {
    Protocol.SFTP: 22,
    Protocol.SCP: 22,
    Protocol.FTP: 21,
}
FTP_IMPLICIT_TLS_PORT = 990


_FALSE_WORDS = {"0", "false", "no", "off"}


def _read_dotenv(path: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if line and not line.startswith("#") and "=" in line:
            key, value = line.split("=", 1)
            data[key.strip().upper()] = value.strip().strip("\"'")
    return data


class Env:
    """Setting lookup over a .env file or a YAML file of ``defaults`` plus ``profiles``.

    A YAML file without a ``profiles`` section is one anonymous profile. OS environment
    variables always win over file values.
    """

    def __init__(self, path: Path, profile: Optional[str] = None):
        self.path = path
        self.profile = profile or "default"
        self.available_profiles: List[str] = []
        self.data: Dict[str, Any] = {}
        if not path.exists():
            return
        if path.suffix.lower() in {".yaml", ".yml"}:
            self.data = self._select_profile(yaml.safe_load(path.read_text(encoding="utf-8")) or {}, profile)
        else:
            self.data = _read_dotenv(path)

    def _select_profile(self, raw: Any, profile: Optional[str]) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise ValueError(f"{self.path} root must be a mapping")
        profiles = raw.get("profiles") or {}
        settings = {k: v for k, v in raw.items() if k not in ("defaults", "profiles")}
        settings.update(raw.get("defaults") or {})
        self.available_profiles = sorted(str(name) for name in profiles)

        if profiles:
            if profile is None and len(profiles) != 1:
                raise ValueError(
                    "Profile must be specified (--profile). Available: " + ", ".join(self.available_profiles)
                )
            chosen = profile or next(iter(profiles))
            if chosen not in profiles:
                raise KeyError(f"Profile '{chosen}' not found. Available: " + ", ".join(self.available_profiles))
            settings.update(profiles[chosen] or {})
            self.profile = chosen
        return {str(k).upper(): v for k, v in settings.items()}

    def get(self, key: str, default: Any = None) -> Any:
        return os.getenv(key, self.data.get(key, default))

    def _number(self, key: str, default, kind):
        val = self.get(key)
        if val is None or val == "":
            return default
        try:
            return kind(val)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be {kind.__name__}, got {val!r}") from None

    def get_int(self, key: str, default: int) -> int:
        return self._number(key, default, int)

    def get_float(self, key: str, default: float) -> float:
        return self._number(key, default, float)

    def get_bool(self, key: str, default: bool) -> bool:
        val = self.get(key)
        if val is None or val == "":
            return default
        if isinstance(val, (bool, int, float)):
            return bool(val)
        return str(val).strip().lower() not in _FALSE_WORDS

    def get_list(self, key: str) -> List[str]:
        """YAML list, or a string split on ';' and ','."""
        val = self.get(key) or []
        if isinstance(val, str):
            val = val.replace(";", ",").split(",")
        return [str(item).strip() for item in val if item is not None and str(item).strip()]


@dataclass
class SessionConfig:
    host: str
    port: int = 0
    protocol: Protocol = Protocol.SFTP
    security: Security = Security.NONE
    username: str = ""
    password: Optional[str] = None
    host_key_fingerprint: Optional[str] = None
    key_path: Optional[str] = None
    transfer_mode: TransferMode = TransferMode.PASSIVE
    ignore_host_security: bool = False
    timeout: int = 15

    def effective_port(self) -> int:
        if self.port:
            return self.port
        if self.protocol is Protocol.FTP and self.security is Security.IMPLICIT_TLS:
            return FTP_IMPLICIT_TLS_PORT
        return DEFAULT_PORTS[self.protocol]


@dataclass
class Config:
    session: SessionConfig
    log_file: Optional[str] = None
    progress: bool = True
    progress_print_interval: float = 0.5
    include_globs: List[str] = field(default_factory=list)
    exclude_globs: List[str] = field(default_factory=list)
    profile_name: str = ""
    config_path: str = ""


def _override(args: Any, name: str, current: Any) -> Any:
    value = getattr(args, name, None)
    return current if value is None else value


def load_config(env_path: Path, args: Any) -> Config:
    env = Env(env_path, profile=getattr(args, "profile", None))

    session = SessionConfig(
        host=str(_override(args, "host", env.get("XFER_HOST", "")) or ""),
        port=int(_override(args, "port", env.get_int("XFER_PORT", 0))),
        protocol=Protocol.parse(_override(args, "protocol", env.get("XFER_PROTOCOL", "sftp"))),
        security=Security.parse(_override(args, "security", env.get("XFER_SECURITY", "none"))),
        username=str(_override(args, "user", env.get("XFER_USERNAME", "")) or ""),
        password=env.get("XFER_PASSWORD", None),
        host_key_fingerprint=_override(args, "host_key_fingerprint", env.get("XFER_HOST_KEY_FINGERPRINT", None)),
        key_path=_override(args, "key_path", env.get("XFER_KEY_PATH", None)),
        transfer_mode=TransferMode.ACTIVE if (
            getattr(args, "active", False) or env.get_bool("XFER_ACTIVE_MODE", False)
        ) else TransferMode.PASSIVE,
        ignore_host_security=bool(
            getattr(args, "ignore_host_security", False) or env.get_bool("XFER_IGNORE_HOST_SECURITY", False)
        ),
        timeout=int(_override(args, "timeout", env.get_int("XFER_TIMEOUT", 15))),
    )

    password_arg = getattr(args, "password", None)
    if password_arg == "__PROMPT__":
        session.password = getpass.getpass(f"Password for {session.username or 'user'}@{session.host}: ")
    elif password_arg is not None:
        session.password = password_arg

    return Config(
        session=session,
        log_file=_override(args, "log_file", env.get("LOG_FILE", None)),
        progress=env.get_bool("PROGRESS", True),
        progress_print_interval=env.get_float("PROGRESS_PRINT_INTERVAL", 0.5),
        include_globs=env.get_list("INCLUDE_GLOBS"),
        exclude_globs=env.get_list("EXCLUDE_GLOBS"),
        profile_name=env.profile or (getattr(args, "profile", None) or "default"),
        config_path=str(env_path),
    )


def printable_config(cfg: Config) -> str:
    """JSON dump with secrets masked, for --show-config."""
    data = {
        "session": {
            "host": cfg.session.host,
            "port": cfg.session.effective_port(),
            "protocol": cfg.session.protocol.value,
            "security": cfg.session.security.value,
            "username": cfg.session.username,
            "password": "***" if cfg.session.password else None,
            "host_key_fingerprint": cfg.session.host_key_fingerprint,
            "key_path": cfg.session.key_path,
            "transfer_mode": cfg.session.transfer_mode.value,
            "ignore_host_security": cfg.session.ignore_host_security,
            "timeout": cfg.session.timeout,
        },
        "log_file": cfg.log_file,
        "progress": cfg.progress,
        "progress_print_interval": cfg.progress_print_interval,
        "include_globs": cfg.include_globs,
        "exclude_globs": cfg.exclude_globs,
        "profile_name": cfg.profile_name,
        "config_path": cfg.config_path,
    }
    return json.dumps(data, ensure_ascii=False, indent=2)


__all__ = [
    "Env",
    "SessionConfig",
    "Config",
    "DEFAULT_PORTS",
    "FTP_IMPLICIT_TLS_PORT",
    "load_config",
    "printable_config",
]

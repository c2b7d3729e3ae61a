"""Session lifecycle: validation, trust overrides, open/close and the default-session registry."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional

from .config import SessionConfig
from .errors import AlreadyOpenError, ConnectionError, NoActiveSessionError, SessionNotOpenError
from .models import Protocol, Security, TransferMode, TrustOverrides
from .transport import ProgressCallback, TransportProvider, create_transport

TransportFactory = Callable[[SessionConfig, TrustOverrides, Optional[logging.Logger]], TransportProvider]


class SessionState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


def validate_config(config: SessionConfig) -> None:
    if not config.host or not str(config.host).strip():
        raise ValueError("host is required to open a session")
    if config.port < 0 or config.port > 65535:
        raise ValueError(f"port out of range: {config.port}")
    if config.timeout <= 0:
        raise ValueError(f"timeout must be positive: {config.timeout}")
    if config.protocol is not Protocol.FTP:
        if config.security is not Security.NONE:
            raise ValueError(f"security mode '{config.security.value}' only applies to FTP")
        if config.transfer_mode is TransferMode.ACTIVE:
            raise ValueError("active transfer mode only applies to FTP")


def compute_trust_overrides(config: SessionConfig) -> TrustOverrides:
    """Only the verification mechanism actually in use is ever overridden."""
    if not config.ignore_host_security:
        return TrustOverrides()
    if config.protocol in (Protocol.SFTP, Protocol.SCP):
        return TrustOverrides(host_key=True)
    if config.security is Security.IMPLICIT_TLS:
        return TrustOverrides(ssl_cert=True, tls_cert=True)
    if config.security is Security.EXPLICIT_SSL:
        return TrustOverrides(ssl_cert=True)
    if config.security is Security.EXPLICIT_TLS:
        return TrustOverrides(tls_cert=True)
    return TrustOverrides()


class Session:
    """One authenticated connection. Use :meth:`exclusive` around every remote operation."""

    def __init__(self, config: SessionConfig, transport: TransportProvider, trust: TrustOverrides,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.transport = transport
        self.trust = trust
        self.logger = logger or logging.getLogger("xfer_tool")
        self.state = SessionState.CLOSED
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (f"<Session {self.config.protocol.value}://{self.config.username}@"
                f"{self.config.host}:{self.config.effective_port()} {self.state.value}>")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def require_open(self) -> None:
        if not self.is_open:
            raise SessionNotOpenError(self.state.value)

    @contextmanager
    def exclusive(self) -> Iterator[TransportProvider]:
        self.require_open()
        with self._lock:
            # the session may have been closed while we waited
            self.require_open()
            yield self.transport

    def close(self) -> None:
        with self._lock:
            if self.state is SessionState.CLOSED:
                return
            self.state = SessionState.CLOSING
            try:
                self.transport.disconnect()
            finally:
                self.state = SessionState.CLOSED
                self.logger.info(f"[CLOSE] {self.config.host}")


class SessionManager:
    """Opens sessions and keeps the optional process-wide default one."""

    def __init__(self, transport_factory: TransportFactory = create_transport,
                 logger: Optional[logging.Logger] = None):
        self.transport_factory = transport_factory
        self.logger = logger or logging.getLogger("xfer_tool")
        self._default: Optional[Session] = None
        self._lock = threading.Lock()

    @property
    def default(self) -> Optional[Session]:
        if self._default is not None and not self._default.is_open:
            return None
        return self._default

    def current(self) -> Session:
        session = self.default
        if session is None:
            raise SessionNotOpenError()
        return session

    def open(self, config: SessionConfig, progress: Optional[ProgressCallback] = None,
             make_default: bool = True) -> Session:
        validate_config(config)
        with self._lock:
            if make_default and self.default is not None:
                raise AlreadyOpenError(self._default.config.host)

            trust = compute_trust_overrides(config)
            transport = self.transport_factory(config, trust, self.logger)
            session = Session(config, transport, trust, self.logger)
            if progress is not None:
                # subscribe before connecting so no event is missed
                transport.on_progress(progress)

            session.state = SessionState.OPENING
            self.logger.info(
                f"[OPEN] {config.protocol.value}://{config.username or '-'}@{config.host}:{config.effective_port()}"
                + (" (host security ignored)" if trust.any else "")
            )
            try:
                transport.connect()
            except Exception as exc:
                try:
                    transport.disconnect()
                except Exception as cleanup_exc:
                    self.logger.debug("[OPEN] teardown after failure raised: %r", cleanup_exc)
                session.state = SessionState.CLOSED
                raise ConnectionError(config.host, str(exc) or exc.__class__.__name__) from exc

            session.state = SessionState.OPEN
            if make_default:
                self._default = session
            return session

    def close(self, session: Optional[Session] = None) -> None:
        if session is not None:
            with self._lock:
                if session is self._default:
                    self._default = None
            session.close()
            return
        with self._lock:
            target = self.default
            self._default = None
        if target is None:
            raise NoActiveSessionError()
        target.close()


_manager = SessionManager()


def default_manager() -> SessionManager:
    return _manager


def open_session(config: SessionConfig, progress: Optional[ProgressCallback] = None) -> Session:
    return _manager.open(config, progress=progress, make_default=True)


def close_session(session: Optional[Session] = None) -> None:
    _manager.close(session)


def current_session() -> Session:
    return _manager.current()


__all__ = [
    "SessionState",
    "Session",
    "SessionManager",
    "validate_config",
    "compute_trust_overrides",
    "default_manager",
    "open_session",
    "close_session",
    "current_session",
]

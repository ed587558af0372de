"""Paramiko session handling: connect, verify the host key, authenticate."""

from __future__ import annotations

import hashlib
import logging
import os
import socket
from concurrent.futures import ThreadPoolExecutor
from enum import Enum, auto
from typing import Iterator, Optional, Tuple

import paramiko

from .config import SessionConfig
from .messages import ErrorCode, get_detailed_error, get_error

logger = logging.getLogger(__name__)

# Key classes tried for identity files, in order.
_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


class SessionError(Exception):
    """Raised when the connection cannot be set up or is lost."""


class SessionState(Enum):
    DISCONNECTED = auto()
    CONNECTED = auto()
    AUTHENTICATED = auto()
    READY = auto()


class AuthAction(Enum):
    """Authentication outcomes and the user's trust decision."""

    OK = auto()
    CANCEL = auto()
    ERROR = auto()
    ASK_TRUST = auto()
    ACCEPT = auto()
    DECLINE = auto()
    PASSWORD_NEEDED = auto()


def _known_hosts_name(host: str, port: int) -> str:
    return host if port == 22 else f"[{host}]:{port}"


class RemoteSession:
    """One connection to a remote host.

    Walks DISCONNECTED -> CONNECTED -> AUTHENTICATED -> READY.  Every ERROR
    or CANCEL outcome closes the transport again; :attr:`message` keeps the
    most recent diagnostic for display.
    """

    def __init__(self, username: str, host: str, config: Optional[SessionConfig] = None) -> None:
        self.username = username
        self.host = host
        self.config = config or SessionConfig()
        self.message = ""
        self.state = SessionState.DISCONNECTED
        self.home_dir: Optional[str] = None
        self._transport: Optional[paramiko.Transport] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._server_key: Optional[paramiko.PKey] = None
        self._fingerprint: Optional[bytes] = None

    # -- lifecycle ------------------------------------------------------

    @classmethod
    def connect(cls, username: str, host: str,
                config: Optional[SessionConfig] = None) -> "RemoteSession":
        """Open the transport and run the key exchange.

        Raises :class:`SessionError` when the host cannot be reached or the
        handshake fails; nothing is left open in that case.
        """
        session = cls(username, host, config)
        session._open()
        return session

    def _open(self) -> None:
        logger.info(f"Connecting to {self.username}@{self.host}:{self.config.port}")
        transport: Optional[paramiko.Transport] = None
        try:
            transport = paramiko.Transport((self.host, self.config.port))
            transport.start_client(timeout=self.config.timeout)
        except (socket.error, paramiko.SSHException, EOFError) as e:
            if transport is not None:
                transport.close()
            self.message = get_error(ErrorCode.SSH_CONNECT_ERROR) + str(e)
            logger.error(f"Connection to {self.host} failed: {e}")
            raise SessionError(self.message) from e
        self._transport = transport
        self.state = SessionState.CONNECTED

    def disconnect(self) -> None:
        """Close SFTP and transport.  Safe to call more than once."""
        if self._sftp is not None:
            try:
                self._sftp.close()
            except (OSError, paramiko.SSHException) as e:
                logger.warning(f"Error closing SFTP client: {e}")
            finally:
                self._sftp = None
        if self._transport is not None:
            try:
                self._transport.close()
            except (OSError, paramiko.SSHException) as e:
                logger.warning(f"Error closing SSH transport: {e}")
            finally:
                self._transport = None
        if self.state is not SessionState.DISCONNECTED:
            logger.info(f"Disconnected from {self.host}")
        self._server_key = None
        self._fingerprint = None
        self.home_dir = None
        self.state = SessionState.DISCONNECTED

    close = disconnect

    def __enter__(self) -> "RemoteSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        return self._transport

    @property
    def sftp(self) -> Optional[paramiko.SFTPClient]:
        return self._sftp

    @property
    def fingerprint(self) -> Optional[bytes]:
        """Raw fingerprint of a server key awaiting a trust decision."""
        return self._fingerprint

    def _fail(self, code: ErrorCode, detail: str = "") -> AuthAction:
        self.message = get_error(code) + detail
        logger.error(f"Authentication with {self.host} failed: {self.message.strip()}")
        self.disconnect()
        return AuthAction.ERROR

    def _require(self, state: SessionState) -> paramiko.Transport:
        if self.state is not state or self._transport is None:
            raise SessionError(f"Session is {self.state.name.lower()}, expected {state.name.lower()}")
        return self._transport

    # -- authentication -------------------------------------------------

    def authenticate_init(self) -> AuthAction:
        """Check the server key against the trust store, then try key auth."""
        transport = self._require(SessionState.CONNECTED)
        try:
            key = transport.get_remote_server_key()
        except paramiko.SSHException:
            return self._fail(ErrorCode.PUB_KEY_NOT_FOUND)
        try:
            fingerprint = hashlib.sha1(key.asbytes()).digest()
        except (ValueError, TypeError):
            return self._fail(ErrorCode.PUB_KEY_HASH_FAILED)

        path = self.config.known_hosts_path
        name = _known_hosts_name(self.host, self.config.port)
        if not os.path.isfile(path):
            return self._ask_trust(key, fingerprint, ErrorCode.KNOWN_HOSTS_NOT_FOUND)

        host_keys = paramiko.HostKeys()
        try:
            host_keys.load(path)
        except paramiko.hostkeys.InvalidHostKey as e:
            return self._fail(ErrorCode.KNOWN_HOSTS_INVALID, f"{path}: {e.line.strip()}")
        except (IOError, paramiko.SSHException) as e:
            logger.warning(f"Cannot read {path}: {e}")
            return self._ask_trust(key, fingerprint, ErrorCode.KNOWN_HOSTS_NOT_FOUND)

        known = host_keys.lookup(name)
        if known is None:
            return self._ask_trust(key, fingerprint, ErrorCode.SERVER_UNKNOWN)
        trusted = known.get(key.get_name())
        if trusted is None:
            return self._fail(ErrorCode.PUB_KEY_NOT_APPROPRIATE)
        if trusted.asbytes() != key.asbytes():
            return self._fail(ErrorCode.PUB_KEY_CHANGED)

        logger.debug(f"Host key for {name} matches the trust store")
        return self._authenticate_with_keys()

    def _ask_trust(self, key: paramiko.PKey, fingerprint: bytes, code: ErrorCode) -> AuthAction:
        self._server_key = key
        self._fingerprint = fingerprint
        self.message = get_detailed_error(code, fingerprint)
        logger.info(f"Host {self.host} is not trusted yet, asking the user")
        return AuthAction.ASK_TRUST

    def authenticate_key(self, action: AuthAction) -> AuthAction:
        """Apply the user's decision about an unknown host key."""
        self._require(SessionState.CONNECTED)
        if self._server_key is None:
            raise SessionError("No host key is awaiting a trust decision")
        if action is AuthAction.DECLINE:
            self.message = get_error(ErrorCode.HOST_KEY_DECLINED)
            logger.warning(f"Host key of {self.host} declined")
            self.disconnect()
            return AuthAction.CANCEL
        if action is not AuthAction.ACCEPT:
            raise ValueError(f"Expected ACCEPT or DECLINE, got {action}")

        try:
            self._store_host_key(self._server_key)
        except (IOError, OSError, paramiko.hostkeys.InvalidHostKey) as e:
            return self._fail(ErrorCode.KNOWN_HOSTS_WRITE_FAILED, str(e))
        self._server_key = None
        self._fingerprint = None
        return self._authenticate_with_keys()

    def _store_host_key(self, key: paramiko.PKey) -> None:
        path = self.config.known_hosts_path
        directory = os.path.dirname(path)
        if directory and not os.path.isdir(directory):
            os.makedirs(directory, mode=0o700)
        host_keys = paramiko.HostKeys()
        if os.path.isfile(path):
            host_keys.load(path)
        host_keys.add(_known_hosts_name(self.host, self.config.port), key.get_name(), key)
        host_keys.save(path)
        logger.info(f"Added {key.get_name()} key for {self.host} to {path}")

    def _candidate_keys(self) -> Iterator[Tuple[str, paramiko.PKey]]:
        if self.config.allow_agent:
            try:
                for key in paramiko.Agent().get_keys():
                    yield "agent", key
            except paramiko.SSHException as e:
                logger.warning(f"SSH agent unavailable: {e}")
        for filename in self.config.identity_files():
            if not os.path.isfile(filename):
                continue
            for key_class in _KEY_CLASSES:
                try:
                    yield filename, key_class.from_private_key_file(filename)
                    break
                except paramiko.PasswordRequiredException:
                    logger.warning(f"Skipping encrypted key {filename}")
                    break
                except (paramiko.SSHException, ValueError):
                    continue
                except IOError as e:
                    logger.warning(f"Cannot read key {filename}: {e}")
                    break

    def _authenticate_with_keys(self) -> AuthAction:
        transport = self._transport
        for origin, key in self._candidate_keys():
            try:
                transport.auth_publickey(self.username, key)
            except paramiko.BadAuthenticationType:
                logger.debug(f"{self.host} does not accept public keys")
                break
            except paramiko.AuthenticationException:
                logger.debug(f"Key from {origin} rejected by {self.host}")
                continue
            except paramiko.SSHException as e:
                logger.warning(f"Key authentication error: {e}")
                continue
            if transport.is_authenticated():
                logger.info(f"Authenticated to {self.host} with key from {origin}")
                self.state = SessionState.AUTHENTICATED
                self.message = ""
                return AuthAction.OK
        self.message = ""
        return AuthAction.PASSWORD_NEEDED

    def authenticate_password(self, password: str) -> AuthAction:
        """Single password attempt; a failure closes the session."""
        transport = self._require(SessionState.CONNECTED)
        if self._server_key is not None:
            raise SessionError("Host key has not been trusted yet")
        try:
            transport.auth_password(self.username, password)
        except paramiko.SSHException as e:
            return self._fail(ErrorCode.PASSWORD_AUTHENTICATION, str(e))
        if not transport.is_authenticated():
            return self._fail(ErrorCode.PASSWORD_AUTHENTICATION)
        logger.info(f"Authenticated to {self.host} with password")
        self.state = SessionState.AUTHENTICATED
        self.message = ""
        return AuthAction.OK

    # -- after authentication -------------------------------------------

    def exec_command(self, command: str) -> Tuple[int, str, str]:
        """Run ``command`` in a remote shell; return status, stdout, stderr."""
        if self._transport is None or not self._transport.is_authenticated():
            raise SessionError("Session is not authenticated")
        channel = self._transport.open_session()
        try:
            channel.exec_command(command)
            # both streams share one window: drain stderr while stdout is read
            with ThreadPoolExecutor(max_workers=1) as pool:
                stderr_future = pool.submit(channel.makefile_stderr("rb").read)
                stdout = channel.makefile("rb").read()
                stderr = stderr_future.result()
            status = channel.recv_exit_status()
        finally:
            channel.close()
        logger.debug(f"Remote command {command!r} exited with {status}")
        return (
            status,
            stdout.decode("utf-8", "replace"),
            stderr.decode("utf-8", "replace"),
        )

    def get_remote_home_dir(self) -> str:
        """Resolve the remote home directory once and cache it."""
        if self.home_dir is not None:
            return self.home_dir
        if self.state not in (SessionState.AUTHENTICATED, SessionState.READY):
            raise SessionError("Home directory needs an authenticated session")
        try:
            status, out, err = self.exec_command(self.config.home_command)
        except (paramiko.SSHException, OSError) as e:
            self.message = get_error(ErrorCode.HOME_DIR_FAILED) + str(e)
            self.disconnect()
            raise SessionError(self.message) from e
        home = out.strip().splitlines()[-1].strip() if out.strip() else ""
        if status != 0 or not home.startswith("/"):
            self.message = get_error(ErrorCode.HOME_DIR_FAILED) + (err.strip() or home)
            self.disconnect()
            raise SessionError(self.message)
        self.home_dir = home
        logger.info(f"Remote home directory: {home}")
        return home

    def init_transfer_subsystem(self) -> paramiko.SFTPClient:
        """Start SFTP on the authenticated transport."""
        transport = self._require(SessionState.AUTHENTICATED)
        try:
            sftp = paramiko.SFTPClient.from_transport(transport)
        except (paramiko.SSHException, OSError, EOFError) as e:
            sftp = None
            reason = str(e)
        else:
            reason = ""
        if sftp is None:
            self.message = get_error(ErrorCode.SFTP_INIT_FAILED) + reason
            logger.error(f"SFTP initialization failed: {reason}")
            self.disconnect()
            raise SessionError(self.message)
        self._sftp = sftp
        self.state = SessionState.READY
        logger.info("SFTP connection established successfully")
        return sftp

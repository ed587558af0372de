"""Connection and transfer settings.

Every field has a usable default; ``SessionConfig.from_env()`` lets the
environment override them:

- TWINSFTP_PORT: ssh port (default: 22)
- TWINSFTP_KNOWN_HOSTS: trust store path (default: ~/.ssh/known_hosts)
- TWINSFTP_ALLOW_AGENT: 0/1, offer ssh-agent keys (default: 1)
- TWINSFTP_LOOK_FOR_KEYS: 0/1, try ~/.ssh/id_* files (default: 1)
- TWINSFTP_KEY_FILES: extra private key files, os.pathsep separated
- TWINSFTP_CHUNK_SIZE: bytes per read/write frame (default: 32768)
- TWINSFTP_TIMEOUT: handshake timeout in seconds (default: none)
- TWINSFTP_HOME_COMMAND: command printing the remote home (default: pwd)
"""

from __future__ import annotations

import dataclasses
import os
from typing import Mapping, Optional, Tuple

DEFAULT_PORT = 22
DEFAULT_KNOWN_HOSTS = "~/.ssh/known_hosts"
DEFAULT_CHUNK_SIZE = 32768
DEFAULT_HOME_COMMAND = "pwd"
DEFAULT_IDENTITY_FILES = ("~/.ssh/id_ed25519", "~/.ssh/id_ecdsa", "~/.ssh/id_rsa")


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    v = env.get(name)
    if v is None:
        return default
    s = str(v).strip().lower()
    if s in ("1", "true", "yes", "on", "y"):
        return True
    if s in ("0", "false", "no", "off", "n"):
        return False
    return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    v = env.get(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    v = env.get(name)
    if v is None or not str(v).strip():
        return default
    try:
        return float(str(v).strip())
    except ValueError:
        return default


@dataclasses.dataclass(frozen=True)
class SessionConfig:
    """Settings for one remote session and its transfers."""

    port: int = DEFAULT_PORT
    known_hosts: str = DEFAULT_KNOWN_HOSTS
    allow_agent: bool = True
    look_for_keys: bool = True
    key_filenames: Tuple[str, ...] = ()
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout: Optional[float] = None
    home_command: str = DEFAULT_HOME_COMMAND

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")

    @property
    def known_hosts_path(self) -> str:
        return os.path.expanduser(self.known_hosts)

    def identity_files(self) -> Tuple[str, ...]:
        """Private key files to try, configured ones first."""
        files = [os.path.expanduser(f) for f in self.key_filenames]
        if self.look_for_keys:
            files.extend(os.path.expanduser(f) for f in DEFAULT_IDENTITY_FILES)
        return tuple(dict.fromkeys(files))

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SessionConfig":
        env = os.environ if env is None else env
        key_files = tuple(
            f for f in env.get("TWINSFTP_KEY_FILES", "").split(os.pathsep) if f
        )
        chunk_size = _env_int(env, "TWINSFTP_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)
        port = _env_int(env, "TWINSFTP_PORT", DEFAULT_PORT)
        return cls(
            port=port if 0 < port < 65536 else DEFAULT_PORT,
            known_hosts=env.get("TWINSFTP_KNOWN_HOSTS") or DEFAULT_KNOWN_HOSTS,
            allow_agent=_env_bool(env, "TWINSFTP_ALLOW_AGENT", True),
            look_for_keys=_env_bool(env, "TWINSFTP_LOOK_FOR_KEYS", True),
            key_filenames=key_files,
            chunk_size=chunk_size if chunk_size > 0 else DEFAULT_CHUNK_SIZE,
            timeout=_env_float(env, "TWINSFTP_TIMEOUT", None),
            home_command=env.get("TWINSFTP_HOME_COMMAND") or DEFAULT_HOME_COMMAND,
        )

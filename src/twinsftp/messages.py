"""Human readable diagnostics shown by the presentation layer."""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Diagnostic message table."""

    SSH_CONNECT_ERROR = "Error: cannot connect remote (username/address)\n"
    PUB_KEY_NOT_FOUND = "Error: cannot get server public key\n"
    PUB_KEY_HASH_FAILED = "Error: public key hashing failed\n"
    PUB_KEY_CHANGED = (
        "Error: server public key changed, disconnected by security reasons\n"
    )
    PUB_KEY_NOT_APPROPRIATE = "Error: cannot find appropriate public key for server\n"
    KNOWN_HOSTS_NOT_FOUND = (
        "Info: cannot find ~/.ssh/known_hosts\n"
        "(created if the server key is accepted).\n"
        "The server provided the following SHA1 public key:\n"
    )
    SERVER_UNKNOWN = (
        "Info: server is unknown.\n"
        "Do you trust the server?\n"
        "The server provided the following SHA1 public key:\n"
    )
    PASSWORD_AUTHENTICATION = "Error: password authentication\n"
    KNOWN_HOSTS_WRITE_FAILED = "Error: cannot update known hosts file\n"
    KNOWN_HOSTS_INVALID = "Error: cannot parse known hosts file\n"
    HOST_KEY_DECLINED = "Info: server key declined, connection closed\n"
    SFTP_INIT_FAILED = "Error: cannot initialize sftp session\n"
    HOME_DIR_FAILED = "Error: cannot resolve remote home directory\n"
    FILE_COPY_FAILED = "Error: file copy failed\n"
    MKDIR_FAILED = "Error: cannot create directory\n"
    RENAME_FAILED = "Error: cannot rename file\n"
    DELETE_FAILED = "Error: cannot delete file\n"
    LIST_LOCAL_FAILED = "Error: cannot display local files\n"
    LIST_REMOTE_FAILED = "Error: cannot display remote files\n"
    STOP_REQUESTED = "Info: operation stopped\n"


OVERWRITE_PROMPT = "Overwrite existing files?\nTarget directory:\n"
DELETE_PROMPT = "Are you sure?\nOperation will permanently erase contents of:\n"


def get_error(code: ErrorCode) -> str:
    return code.value


def fingerprint_hex(raw: bytes) -> str:
    """Render each byte as two lowercase hex digits."""
    return "".join(f"{byte:02x}" for byte in raw)


def get_detailed_error(code: ErrorCode, raw: bytes) -> str:
    """Message for ``code`` followed by the hex rendering of ``raw``."""
    return get_error(code) + fingerprint_hex(raw)


def overwrite_prompt(directory: str) -> str:
    return OVERWRITE_PROMPT + directory


def delete_prompt(path: str) -> str:
    return DELETE_PROMPT + path

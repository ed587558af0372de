"""Public interface for the twinsftp package."""

from .config import SessionConfig
from .connection import AuthAction, RemoteSession, SessionError, SessionState
from .fileops import (
    DirectoryOpenError,
    DirectoryReadError,
    DirEntry,
    EntryType,
    FileOperationError,
    FileStatus,
    LocalBackend,
    Outcome,
    normalize_local_path,
)
from .logging_setup import setup_logging
from .paths import PathModel, cd_back, cd_enter, join_path
from .remote import RemoteBackend
from .transfer import (
    CopyIntent,
    DeleteJob,
    JobKind,
    PasteJob,
    TransferEngine,
    TransferResult,
)
from .worker import WorkerBusyError, WorkerRunner

__all__ = [
    "AuthAction",
    "CopyIntent",
    "DeleteJob",
    "DirEntry",
    "DirectoryOpenError",
    "DirectoryReadError",
    "EntryType",
    "FileOperationError",
    "FileStatus",
    "JobKind",
    "LocalBackend",
    "Outcome",
    "PasteJob",
    "PathModel",
    "RemoteBackend",
    "RemoteSession",
    "SessionConfig",
    "SessionError",
    "SessionState",
    "TransferEngine",
    "TransferResult",
    "WorkerBusyError",
    "WorkerRunner",
    "cd_back",
    "cd_enter",
    "join_path",
    "normalize_local_path",
    "setup_logging",
]

"""Copy/paste and delete orchestration across the local and remote backends."""

from __future__ import annotations

import dataclasses
import logging
import os
import posixpath
import threading
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

from .fileops import (
    SUCCESS,
    Backend,
    DirEntry,
    FileOperationError,
    FileStatus,
    LocalBackend,
    Outcome,
)
from .messages import ErrorCode, delete_prompt, get_error, overwrite_prompt
from .paths import PathModel
from .remote import RemoteBackend

logger = logging.getLogger(__name__)


class JobKind(Enum):
    PASTE = "paste"
    DELETE = "delete"


@dataclasses.dataclass(frozen=True)
class CopyIntent:
    """A file or directory selected with copy (or cut), waiting for paste."""

    name: str
    path: str
    remote: bool
    cut: bool = False

    @property
    def directory(self) -> str:
        pathmod = posixpath if self.remote else os.path
        return pathmod.dirname(self.path) or pathmod.sep


@dataclasses.dataclass(frozen=True)
class PasteJob:
    sources: Tuple[CopyIntent, ...]
    target_dir: str
    target_remote: bool
    overwrite: bool = False

    kind = JobKind.PASTE

    @property
    def directory(self) -> str:
        return self.target_dir

    @property
    def remote(self) -> bool:
        return self.target_remote


@dataclasses.dataclass(frozen=True)
class DeleteJob:
    target: str
    remote: bool

    kind = JobKind.DELETE

    @property
    def directory(self) -> str:
        pathmod = posixpath if self.remote else os.path
        return pathmod.dirname(self.target.rstrip(pathmod.sep)) or pathmod.sep


TransferJob = Union[PasteJob, DeleteJob]


@dataclasses.dataclass(frozen=True)
class TransferResult:
    """What a finished job reports back to the interactive thread."""

    status: FileStatus
    kind: JobKind
    directory: str
    remote: bool
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is FileStatus.WRITTEN_SUCCESSFULLY

    @property
    def conflict(self) -> bool:
        return self.status.is_conflict

    @property
    def prompt(self) -> Optional[str]:
        """Overwrite question for a paste that hit an existing target."""
        if self.kind is JobKind.PASTE and self.conflict:
            return overwrite_prompt(self.directory)
        return None


class TransferEngine:
    """Context shared by every operation of one file manager window.

    Holds both backends, the working directory of each pane, the copy
    clipboard and the cancellation flag.  The flag is the only state a
    worker thread touches; it is set and cleared from the interactive
    thread and only read by the worker.
    """

    def __init__(self, local: Optional[LocalBackend] = None,
                 remote: Optional[RemoteBackend] = None) -> None:
        self.cancel_event = threading.Event()
        self.local = local if local is not None else LocalBackend()
        self.local.cancel_event = self.cancel_event
        self.local_cwd = PathModel(self.local.home())
        self.remote_cwd = PathModel("/")
        self.remote: Optional[RemoteBackend] = None
        self._clipboard: List[CopyIntent] = []
        if remote is not None:
            self.attach_remote(remote)

    # -- context --------------------------------------------------------

    def attach_remote(self, remote: RemoteBackend) -> None:
        remote.cancel_event = self.cancel_event
        self.remote = remote
        self.remote_cwd.path = remote.home()

    def detach_remote(self) -> None:
        self.remote = None
        self.remote_cwd.path = "/"
        self._clipboard = [intent for intent in self._clipboard if not intent.remote]

    def backend(self, remote: bool) -> Backend:
        if not remote:
            return self.local
        if self.remote is None:
            raise FileOperationError("remote", "Not connected to a remote host")
        return self.remote

    def cwd(self, remote: bool) -> PathModel:
        return self.remote_cwd if remote else self.local_cwd

    def request_cancel(self) -> None:
        logger.info("Cancellation requested")
        self.cancel_event.set()

    def reset_cancel(self) -> None:
        self.cancel_event.clear()

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def list_directory(self, remote: bool) -> Tuple[List[DirEntry], str]:
        """List the current directory of one pane.

        Returns the entries and an empty message, or no entries and the
        pane's listing diagnostic.
        """
        path = self.cwd(remote).path
        try:
            backend = self.backend(remote)
            return backend.list(path), ""
        except FileOperationError as e:
            code = RemoteBackend.list_error if remote else LocalBackend.list_error
            logger.error(f"Cannot list {path}: {e}")
            return [], get_error(code) + str(e)

    # -- clipboard ------------------------------------------------------

    @property
    def clipboard(self) -> Tuple[CopyIntent, ...]:
        return tuple(self._clipboard)

    def copy(self, names: Union[str, Iterable[str]], directory: str, remote: bool,
             cut: bool = False) -> Tuple[CopyIntent, ...]:
        """Remember ``names`` in ``directory``; replaces the previous selection."""
        if isinstance(names, str):
            names = [names]
        backend = self.backend(remote)
        self._clipboard = [
            CopyIntent(name=name, path=backend.join(directory, name), remote=remote, cut=cut)
            for name in names
        ]
        logger.debug(f"Clipboard holds {len(self._clipboard)} item(s) from {directory}")
        return self.clipboard

    def clear_clipboard(self) -> None:
        self._clipboard = []

    def paste_job(self, target_dir: str, target_remote: bool, overwrite: bool = False) -> PasteJob:
        if not self._clipboard:
            raise ValueError("Nothing to paste")
        return PasteJob(tuple(self._clipboard), target_dir, target_remote, overwrite)

    def delete_job(self, target: str, remote: bool) -> DeleteJob:
        return DeleteJob(target, remote)

    # -- operations -----------------------------------------------------

    def _conflict(self, sources: Iterable[CopyIntent], target: Backend, target_dir: str) -> Outcome:
        for intent in sources:
            dst_path = target.join(target_dir, intent.name)
            try:
                existing = target.check_existing(dst_path)
            except OSError as e:
                return Outcome(FileStatus.COPY_FAILED, f"Cannot inspect '{dst_path}': {e}")
            if not existing.ok:
                return existing
        return SUCCESS

    def paste(self, sources: Iterable[CopyIntent], target_dir: str, target_remote: bool,
              overwrite: bool = False) -> Outcome:
        """Copy every intent into ``target_dir``, stopping at the first failure.

        Without ``overwrite`` nothing is copied when any target already
        exists; the conflict code is returned so the caller can ask and
        retry with ``overwrite=True``.
        """
        sources = tuple(sources)
        try:
            target = self.backend(target_remote)
            for intent in sources:
                self.backend(intent.remote)
        except FileOperationError as e:
            return Outcome(FileStatus.COPY_FAILED, get_error(ErrorCode.FILE_COPY_FAILED) + str(e))

        if not overwrite:
            conflict = self._conflict(sources, target, target_dir)
            if not conflict.ok:
                logger.info(f"Paste into {target_dir} needs confirmation: {conflict.message}")
                return conflict

        for intent in sources:
            if self.cancel_requested:
                logger.info(f"Paste into {target_dir} stopped")
                return Outcome(FileStatus.STOP_REQUESTED, get_error(ErrorCode.STOP_REQUESTED))
            outcome = self._paste_one(intent, target, target_dir, overwrite)
            if not outcome.ok:
                logger.warning(f"Paste of {intent.path} failed: {outcome.status.name}")
                if outcome.conflict or outcome.status is FileStatus.STOP_REQUESTED:
                    return outcome
                return Outcome(outcome.status, get_error(ErrorCode.FILE_COPY_FAILED) + outcome.message)
        logger.info(f"Pasted {len(sources)} item(s) into {target_dir}")
        return SUCCESS

    def _paste_one(self, intent: CopyIntent, target: Backend, target_dir: str,
                   overwrite: bool) -> Outcome:
        source = self.backend(intent.remote)
        if isinstance(source, RemoteBackend) and target is source:
            if intent.cut:
                return source.server_move(intent.directory, intent.name, target_dir, overwrite)
            return source.server_copy(intent.directory, intent.name, target_dir, overwrite)

        outcome = target.copy_files(intent.directory, intent.name, target_dir, overwrite, source)
        if not outcome.ok or not intent.cut:
            return outcome
        if source is target and source.same_path(intent.path, target.join(target_dir, intent.name)):
            return outcome
        return source.remove_recursive(intent.path)

    def delete(self, target: str, remote: bool, finalize: bool = False) -> Outcome:
        """Without ``finalize`` only build the confirmation prompt."""
        if not finalize:
            return Outcome(None, delete_prompt(target))
        try:
            backend = self.backend(remote)
        except FileOperationError as e:
            return Outcome(FileStatus.REMOVE_FAILED, str(e))
        outcome = backend.remove_recursive(target)
        if outcome.status is FileStatus.REMOVE_FAILED:
            outcome = Outcome(outcome.status, get_error(ErrorCode.DELETE_FAILED) + outcome.message)
        logger.info(f"Delete of {backend.label} {target}: {outcome.status.name}")
        return outcome

    def execute(self, job: TransferJob) -> TransferResult:
        """Run one job to completion on the calling thread."""
        if isinstance(job, PasteJob):
            outcome = self.paste(job.sources, job.target_dir, job.target_remote, job.overwrite)
        elif isinstance(job, DeleteJob):
            outcome = self.delete(job.target, job.remote, finalize=True)
        else:
            raise TypeError(f"Unknown job: {job!r}")
        return TransferResult(outcome.status, job.kind, job.directory, job.remote, outcome.message)

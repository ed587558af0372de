"""Remote filesystem backend on top of a paramiko SFTP client."""

from __future__ import annotations

import errno
import logging
import posixpath
import shlex
import stat
import threading
from typing import TYPE_CHECKING, BinaryIO, List, Optional, Tuple

import paramiko

from .config import DEFAULT_CHUNK_SIZE
from .fileops import (
    SUCCESS,
    Backend,
    DirEntry,
    DirectoryOpenError,
    DirectoryReadError,
    FileStatus,
    Outcome,
)
from .messages import ErrorCode

if TYPE_CHECKING:
    from .connection import RemoteSession

logger = logging.getLogger(__name__)


def stat_isdir(attr: paramiko.SFTPAttributes) -> bool:
    """Return ``True`` when the attribute represents a directory."""
    return bool(attr.st_mode and stat.S_ISDIR(attr.st_mode))


def _owner_group(attr: paramiko.SFTPAttributes) -> Tuple[Optional[str], Optional[str]]:
    """Owner and group names from the ``ls -l`` style long name, if any."""
    longname = getattr(attr, "longname", None)
    if not longname:
        return None, None
    if isinstance(longname, bytes):
        longname = longname.decode("utf-8", "replace")
    fields = longname.split()
    if len(fields) < 4:
        return None, None
    return fields[2], fields[3]


class RemoteBackend(Backend):
    """Filesystem of the connected host, reached through SFTP.

    Paths are POSIX paths on the server.  Commands for the same-host fast
    path run through the session's remote shell.
    """

    is_remote = True
    label = "remote"
    list_error = ErrorCode.LIST_REMOTE_FAILED
    pathmod = posixpath

    def __init__(self, session: "RemoteSession", cancel_event: Optional[threading.Event] = None,
                 chunk_size: Optional[int] = None) -> None:
        if chunk_size is None:
            config = getattr(session, "config", None)
            chunk_size = config.chunk_size if config is not None else DEFAULT_CHUNK_SIZE
        super().__init__(cancel_event, chunk_size)
        self._session = session

    @property
    def session(self) -> "RemoteSession":
        return self._session

    @property
    def sftp(self) -> paramiko.SFTPClient:
        sftp = self._session.sftp
        if sftp is None:
            raise IOError(errno.ENOTCONN, "SFTP session is not initialized")
        return sftp

    def home(self) -> str:
        return self._session.home_dir or "/"

    # -- primitives -----------------------------------------------------

    def join(self, directory: str, name: str) -> str:
        return posixpath.join(directory, name)

    def stat(self, path: str) -> Optional[int]:
        try:
            return self.sftp.stat(path).st_mode
        except FileNotFoundError:
            return None

    def lstat(self, path: str) -> Optional[int]:
        try:
            return self.sftp.lstat(path).st_mode
        except FileNotFoundError:
            return None

    def list(self, directory: str) -> List[DirEntry]:
        try:
            attr = self.sftp.stat(directory)
        except IOError as e:
            raise DirectoryOpenError(directory, str(e)) from e
        if not stat_isdir(attr):
            raise DirectoryOpenError(directory, "Not a directory")

        try:
            attrs = self.sftp.listdir_attr(directory)
        except IOError as e:
            raise DirectoryReadError(directory, str(e)) from e

        entries: List[DirEntry] = []
        for attr in attrs:
            if not attr.filename or attr.filename in (".", ".."):
                continue
            owner, group = _owner_group(attr)
            entries.append(DirEntry.from_stat(attr.filename, attr, owner, group))
        entries.sort(key=lambda entry: entry.name)
        logger.debug(f"Listed {len(entries)} entries in {directory}")
        return entries

    def open_read(self, path: str) -> BinaryIO:
        return self.sftp.open(path, "rb")

    def open_write(self, path: str, overwrite: bool) -> BinaryIO:
        if overwrite:
            return self.sftp.open(path, "wb")
        try:
            return self.sftp.open(path, "xb")
        except IOError as e:
            # SFTPv3 servers report a failed exclusive create as a generic
            # failure, so classify it after the fact.
            if self.lstat(path) is not None:
                raise FileExistsError(errno.EEXIST, f"File exists: {path}") from e
            raise

    def make_dir(self, path: str) -> None:
        self.sftp.mkdir(path)

    def remove_file(self, path: str) -> None:
        self.sftp.remove(path)

    def remove_dir(self, path: str) -> None:
        self.sftp.rmdir(path)

    def rename_path(self, old: str, new: str) -> None:
        self.sftp.rename(old, new)

    # -- same-host fast path --------------------------------------------

    def _run(self, command: str) -> Tuple[int, str]:
        status, out, err = self._session.exec_command(command)
        return status, (err or out).strip()

    @staticmethod
    def _kind_mismatch(src_mode: int, existing: Outcome, dst_path: str) -> Optional[Outcome]:
        target_is_dir = existing.status is FileStatus.DIR_ALREADY_EXISTS
        if existing.ok or target_is_dir == stat.S_ISDIR(src_mode):
            return None
        kind = "a directory" if target_is_dir else "not a directory"
        return Outcome(FileStatus.WRITE_FAILED, f"'{dst_path}' exists and is {kind}")

    def server_copy(self, src_dir: str, name: str, dst_dir: str, overwrite: bool = False) -> Outcome:
        """Copy ``name`` between two directories of this host with a remote ``cp``."""
        src_path = self.join(src_dir, name)
        dst_path = self.join(dst_dir, name)
        try:
            src_mode = self.stat(src_path)
            if src_mode is None:
                return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': no such file")
            existing = self.check_existing(dst_path)
        except IOError as e:
            return Outcome(FileStatus.COPY_FAILED, f"Cannot copy '{src_path}': {e}")
        if self.same_path(src_path, dst_path):
            return existing if not overwrite else SUCCESS
        if stat.S_ISDIR(src_mode) and self.is_inside(dst_path, src_path):
            return Outcome(FileStatus.COPY_FAILED, f"Cannot copy '{src_path}' into itself")
        if not existing.ok and not overwrite:
            return existing
        mismatch = self._kind_mismatch(src_mode, existing, dst_path)
        if mismatch is not None:
            return mismatch
        if self.cancel_requested():
            return Outcome(FileStatus.STOP_REQUESTED, f"Stopped before copying '{src_path}'")

        src, dst = shlex.quote(src_path), shlex.quote(dst_path)
        if stat.S_ISDIR(src_mode):
            # "src/." merges into an existing target instead of nesting below it
            command = f"mkdir -p -- {dst} && cp -R -- {shlex.quote(src_path + '/.')} {dst}"
        else:
            command = f"cp -- {src} {dst}"

        try:
            status, output = self._run(command)
        except (paramiko.SSHException, OSError) as e:
            return Outcome(FileStatus.COPY_FAILED, f"Cannot copy '{src_path}': {e}")
        if status != 0:
            logger.error(f"Remote copy failed ({status}): {output}")
            return Outcome(FileStatus.COPY_FAILED, f"Cannot copy '{src_path}': {output or status}")
        logger.info(f"Copied on server: {src_path} -> {dst_path}")
        return SUCCESS

    def server_move(self, src_dir: str, name: str, dst_dir: str, overwrite: bool = False) -> Outcome:
        """Move ``name`` between two directories of this host with a remote ``mv``."""
        src_path = self.join(src_dir, name)
        dst_path = self.join(dst_dir, name)
        if self.same_path(src_path, dst_path):
            return SUCCESS
        try:
            src_mode = self.lstat(src_path)
            if src_mode is None:
                return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': no such file")
            existing = self.check_existing(dst_path)
        except IOError as e:
            return Outcome(FileStatus.COPY_FAILED, f"Cannot move '{src_path}': {e}")
        if stat.S_ISDIR(src_mode) and self.is_inside(dst_path, src_path):
            return Outcome(FileStatus.COPY_FAILED, f"Cannot move '{src_path}' into itself")
        if not existing.ok:
            if not overwrite:
                return existing
            mismatch = self._kind_mismatch(src_mode, existing, dst_path)
            if mismatch is not None:
                return mismatch
            if stat.S_ISDIR(src_mode):
                # mv cannot replace a non-empty directory: merge, then drop the source
                outcome = self.server_copy(src_dir, name, dst_dir, overwrite=True)
                if not outcome.ok:
                    return outcome
                return self.remove_recursive(src_path)

        command = f"mv -f -- {shlex.quote(src_path)} {shlex.quote(dst_path)}"
        try:
            status, output = self._run(command)
        except (paramiko.SSHException, OSError) as e:
            return Outcome(FileStatus.COPY_FAILED, f"Cannot move '{src_path}': {e}")
        if status != 0:
            logger.error(f"Remote move failed ({status}): {output}")
            return Outcome(FileStatus.COPY_FAILED, f"Cannot move '{src_path}': {output or status}")
        logger.info(f"Moved on server: {src_path} -> {dst_path}")
        return SUCCESS

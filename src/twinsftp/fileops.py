"""Filesystem backends shared by the local and the remote pane.

Every copy and removal algorithm lives once in :class:`Backend` and is
written against a small set of primitives.  :class:`LocalBackend` provides
them with :mod:`os`; :class:`twinsftp.remote.RemoteBackend` provides them
over SFTP.  Passing another backend as ``source`` to the copy operations
streams bytes between the two through this process.
"""

from __future__ import annotations

import abc
import dataclasses
import functools
import grp
import io
import logging
import os
import pwd
import stat
import threading
from datetime import datetime
from enum import Enum
from typing import BinaryIO, List, NamedTuple, Optional

from .config import DEFAULT_CHUNK_SIZE
from .messages import ErrorCode, get_error

logger = logging.getLogger(__name__)


class FileStatus(Enum):
    """Outcome vocabulary shared verbatim by both backends."""

    WRITTEN_SUCCESSFULLY = 0
    ALREADY_EXISTS = -1
    DIR_ALREADY_EXISTS = -2
    WRITE_FAILED = -3
    READ_FAILED = -4
    MKDIR_FAILED = -5
    COPY_FAILED = -6
    REMOVE_FAILED = -7
    STOP_REQUESTED = -8

    @property
    def is_conflict(self) -> bool:
        return self in (FileStatus.ALREADY_EXISTS, FileStatus.DIR_ALREADY_EXISTS)


class Outcome(NamedTuple):
    """Status code plus a human readable message.

    ``status`` is ``None`` only for results that changed nothing, such as a
    delete confirmation prompt.
    """

    status: Optional[FileStatus]
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is FileStatus.WRITTEN_SUCCESSFULLY

    @property
    def conflict(self) -> bool:
        return self.status is not None and self.status.is_conflict


SUCCESS = Outcome(FileStatus.WRITTEN_SUCCESSFULLY)


class FileOperationError(Exception):
    """Exception raised for file operation errors."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}" if reason else path)


class DirectoryOpenError(FileOperationError):
    """The directory could not be opened."""


class DirectoryReadError(FileOperationError):
    """The directory was opened but enumerating it failed."""


class StreamReadError(FileOperationError):
    """Reading the source stream of a copy failed."""


class StreamWriteError(FileOperationError):
    """Writing the target stream of a copy failed."""


class EntryType(Enum):
    REGULAR = "regular"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"

    @classmethod
    def from_mode(cls, mode: int) -> "EntryType":
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISREG(mode):
            return cls.REGULAR
        return cls.OTHER


def _human_size(n: float) -> str:
    """Convert bytes to human readable format."""
    for unit in ("B", "KB", "MB", "GB", "TB", "PB"):
        if n < 1024 or unit == "PB":
            return f"{n:.0f} {unit}" if n >= 10 or unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return "0 B"


def _human_time(ts: float) -> str:
    """Convert timestamp to human readable format."""
    try:
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")
    except (OverflowError, OSError, ValueError):
        return "—"


def _mode_to_str(mode: int) -> str:
    """Convert file mode to string representation like -rw-r--r--."""
    if stat.S_ISLNK(mode):
        kind = "l"
    elif stat.S_ISDIR(mode):
        kind = "d"
    else:
        kind = "-"
    perm = ""
    for shift in (6, 3, 0):
        perm += "r" if mode & (4 << shift) else "-"
        perm += "w" if mode & (2 << shift) else "-"
        perm += "x" if mode & (1 << shift) else "-"
    return kind + perm


@dataclasses.dataclass(frozen=True)
class DirEntry:
    """One listed object.  Built fresh on every listing."""

    name: str
    type: EntryType
    size: int
    uid: int
    gid: int
    owner: str
    group: str
    permissions: int
    modified: float

    @classmethod
    def from_stat(cls, name: str, st, owner: Optional[str] = None,
                  group: Optional[str] = None) -> "DirEntry":
        mode = st.st_mode or 0
        uid = st.st_uid or 0
        gid = st.st_gid or 0
        return cls(
            name=name,
            type=EntryType.from_mode(mode),
            size=max(st.st_size or 0, 0),
            uid=uid,
            gid=gid,
            owner=owner if owner is not None else str(uid),
            group=group if group is not None else str(gid),
            permissions=stat.S_IMODE(mode),
            modified=max(float(st.st_mtime or 0), 0.0),
        )

    @property
    def is_dir(self) -> bool:
        return self.type is EntryType.DIRECTORY

    @property
    def size_text(self) -> str:
        return _human_size(self.size)

    @property
    def modified_text(self) -> str:
        return _human_time(self.modified)

    @property
    def mode_text(self) -> str:
        kind = {
            EntryType.DIRECTORY: stat.S_IFDIR,
            EntryType.SYMLINK: stat.S_IFLNK,
        }.get(self.type, stat.S_IFREG)
        return _mode_to_str(kind | self.permissions)


def copy_stream(reader: BinaryIO, writer: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Copy ``reader`` into ``writer`` in frames of at most ``chunk_size`` bytes."""
    total = 0
    while True:
        try:
            chunk = reader.read(chunk_size)
        except OSError as e:
            raise StreamReadError(getattr(reader, "name", "<source>"), str(e)) from e
        if not chunk:
            return total
        try:
            writer.write(chunk)
        except OSError as e:
            raise StreamWriteError(getattr(writer, "name", "<target>"), str(e)) from e
        total += len(chunk)


class Backend(abc.ABC):
    """Operation set common to the local and the remote filesystem."""

    is_remote = False
    label = "backend"
    list_error = ErrorCode.LIST_LOCAL_FAILED
    pathmod = os.path

    def __init__(self, cancel_event: Optional[threading.Event] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.chunk_size = chunk_size

    # -- primitives -----------------------------------------------------

    @abc.abstractmethod
    def join(self, directory: str, name: str) -> str:
        """Join a directory and an entry name."""

    @abc.abstractmethod
    def stat(self, path: str) -> Optional[int]:
        """Return the mode of ``path`` following symlinks, ``None`` if absent."""

    @abc.abstractmethod
    def lstat(self, path: str) -> Optional[int]:
        """Return the mode of ``path`` itself, ``None`` if absent."""

    @abc.abstractmethod
    def list(self, directory: str) -> List[DirEntry]:
        """List ``directory`` sorted by name, without ``.`` and ``..``."""

    @abc.abstractmethod
    def open_read(self, path: str) -> BinaryIO:
        pass

    @abc.abstractmethod
    def open_write(self, path: str, overwrite: bool) -> BinaryIO:
        """Open ``path`` for writing.

        Without ``overwrite`` the file is created exclusively and
        :class:`FileExistsError` is raised when it is already present.
        """

    @abc.abstractmethod
    def make_dir(self, path: str) -> None:
        pass

    @abc.abstractmethod
    def remove_file(self, path: str) -> None:
        pass

    @abc.abstractmethod
    def remove_dir(self, path: str) -> None:
        pass

    @abc.abstractmethod
    def rename_path(self, old: str, new: str) -> None:
        pass

    def same_path(self, first: str, second: str) -> bool:
        return self.pathmod.normpath(first) == self.pathmod.normpath(second)

    def is_inside(self, path: str, parent: str) -> bool:
        """True when ``path`` lies strictly below ``parent``."""
        sep = self.pathmod.sep
        prefix = self.pathmod.normpath(parent).rstrip(sep) + sep
        return self.pathmod.normpath(path).startswith(prefix)

    # -- helpers --------------------------------------------------------

    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def exists(self, path: str) -> bool:
        try:
            return self.lstat(path) is not None
        except OSError:
            return False

    def is_dir(self, path: str) -> bool:
        try:
            mode = self.stat(path)
        except OSError:
            return False
        return mode is not None and stat.S_ISDIR(mode)

    def read_file(self, path: str) -> bytes:
        """Return the whole content of ``path``."""
        try:
            with self.open_read(path) as reader:
                return reader.read()
        except OSError as e:
            raise FileOperationError(path, str(e)) from e

    def check_existing(self, path: str) -> Outcome:
        mode = self.lstat(path)
        if mode is None:
            return SUCCESS
        if stat.S_ISDIR(mode):
            return Outcome(FileStatus.DIR_ALREADY_EXISTS, f"Directory '{path}' already exists")
        return Outcome(FileStatus.ALREADY_EXISTS, f"'{path}' already exists")

    # -- operations -----------------------------------------------------

    def mkdir(self, path: str) -> Outcome:
        """Create a directory after checking that nothing occupies ``path``."""
        try:
            existing = self.check_existing(path)
        except OSError as e:
            return Outcome(FileStatus.MKDIR_FAILED, get_error(ErrorCode.MKDIR_FAILED) + f"'{path}': {e}")
        if not existing.ok:
            return existing
        try:
            self.make_dir(path)
        except OSError as e:
            return Outcome(FileStatus.MKDIR_FAILED, get_error(ErrorCode.MKDIR_FAILED) + f"'{path}': {e}")
        logger.info(f"Created {self.label} directory: {path}")
        return SUCCESS

    def rename(self, old: str, new: str) -> Outcome:
        """Rename ``old`` to ``new``; an existing ``new`` is never replaced."""
        try:
            if self.lstat(new) is not None:
                return Outcome(FileStatus.ALREADY_EXISTS, f"'{new}' already exists")
            self.rename_path(old, new)
        except OSError as e:
            return Outcome(FileStatus.WRITE_FAILED,
                           get_error(ErrorCode.RENAME_FAILED) + f"'{old}' -> '{new}': {e}")
        logger.info(f"Renamed {self.label}: {old} -> {new}")
        return SUCCESS

    def remove_recursive(self, path: str) -> Outcome:
        """Remove a file or a whole tree, children before their directory.

        The cancellation flag is checked before each entry; a stop leaves
        whatever was not yet removed in place.
        """
        if self.cancel_requested():
            logger.info(f"Stop requested before removing {path}")
            return Outcome(FileStatus.STOP_REQUESTED, f"Stopped before removing '{path}'")
        try:
            mode = self.lstat(path)
        except OSError as e:
            return Outcome(FileStatus.REMOVE_FAILED, f"Cannot remove '{path}': {e}")
        if mode is None:
            return Outcome(FileStatus.REMOVE_FAILED, f"Cannot remove '{path}': no such file")

        if not stat.S_ISDIR(mode):
            try:
                self.remove_file(path)
            except OSError as e:
                return Outcome(FileStatus.REMOVE_FAILED, f"Cannot remove '{path}': {e}")
            logger.debug(f"Removed {self.label} file: {path}")
            return SUCCESS

        try:
            entries = self.list(path)
        except FileOperationError as e:
            return Outcome(FileStatus.REMOVE_FAILED, f"Cannot remove '{path}': {e}")

        for entry in entries:
            if self.cancel_requested():
                logger.info(f"Stop requested while removing {path}")
                return Outcome(FileStatus.STOP_REQUESTED, f"Stopped while removing '{path}'")
            outcome = self.remove_recursive(self.join(path, entry.name))
            if not outcome.ok:
                return outcome

        try:
            self.remove_dir(path)
        except OSError as e:
            return Outcome(FileStatus.REMOVE_FAILED, f"Cannot remove directory '{path}': {e}")
        logger.info(f"Removed {self.label} directory: {path}")
        return SUCCESS

    def copy_file(self, src_dir: str, name: str, dst_dir: str, overwrite: bool = False,
                  source: Optional["Backend"] = None) -> Outcome:
        """Copy file ``name`` from ``src_dir`` on ``source`` into ``dst_dir`` here."""
        source = source if source is not None else self
        src_path = source.join(src_dir, name)
        dst_path = self.join(dst_dir, name)

        try:
            reader = source.open_read(src_path)
        except OSError as e:
            return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': {e}")

        with reader:
            if overwrite and source is self and self.same_path(src_path, dst_path):
                # Truncating the target would empty the source first.
                try:
                    reader = io.BytesIO(reader.read())
                except OSError as e:
                    return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': {e}")
            try:
                writer = self.open_write(dst_path, overwrite)
            except FileExistsError:
                return Outcome(FileStatus.ALREADY_EXISTS, f"'{dst_path}' already exists")
            except OSError as e:
                return Outcome(FileStatus.WRITE_FAILED, f"Cannot write '{dst_path}': {e}")
            with writer:
                try:
                    copied = copy_stream(reader, writer, self.chunk_size)
                except StreamReadError as e:
                    return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': {e.reason}")
                except StreamWriteError as e:
                    return Outcome(FileStatus.WRITE_FAILED, f"Cannot write '{dst_path}': {e.reason}")

        logger.debug(f"Copied {copied} bytes: {source.label}:{src_path} -> {self.label}:{dst_path}")
        return SUCCESS

    def copy_dir(self, src_dir: str, name: str, dst_dir: str, recursive: bool = True,
                 overwrite: bool = False, source: Optional["Backend"] = None) -> Outcome:
        """Copy directory ``name`` from ``src_dir`` on ``source`` into ``dst_dir`` here."""
        source = source if source is not None else self
        src_path = source.join(src_dir, name)
        dst_path = self.join(dst_dir, name)

        if source is self and self.is_inside(dst_path, src_path):
            return Outcome(FileStatus.COPY_FAILED, f"Cannot copy '{src_path}' into itself")

        try:
            mode = self.lstat(dst_path)
        except OSError as e:
            return Outcome(FileStatus.MKDIR_FAILED, get_error(ErrorCode.MKDIR_FAILED) + f"'{dst_path}': {e}")
        if mode is not None:
            if not overwrite:
                if stat.S_ISDIR(mode):
                    return Outcome(FileStatus.DIR_ALREADY_EXISTS, f"Directory '{dst_path}' already exists")
                return Outcome(FileStatus.ALREADY_EXISTS, f"'{dst_path}' already exists")
            if not stat.S_ISDIR(mode):
                return Outcome(FileStatus.WRITE_FAILED, f"'{dst_path}' exists and is not a directory")
            if source is self and self.same_path(src_path, dst_path):
                return SUCCESS
        else:
            try:
                self.make_dir(dst_path)
            except OSError as e:
                return Outcome(FileStatus.MKDIR_FAILED, get_error(ErrorCode.MKDIR_FAILED) + f"'{dst_path}': {e}")

        if not recursive:
            return SUCCESS

        try:
            entries = source.list(src_path)
        except FileOperationError as e:
            return Outcome(FileStatus.READ_FAILED, f"Cannot read directory '{src_path}': {e}")

        for entry in entries:
            if self.cancel_requested():
                logger.info(f"Stop requested while copying {src_path}")
                return Outcome(FileStatus.STOP_REQUESTED, f"Stopped while copying '{src_path}'")
            # listings are lstat based; copy_files stats again so links are followed
            outcome = self.copy_files(src_path, entry.name, dst_path, overwrite, source)
            if not outcome.ok:
                return outcome

        logger.info(f"Copied directory: {source.label}:{src_path} -> {self.label}:{dst_path}")
        return SUCCESS

    def copy_files(self, src_dir: str, name: str, dst_dir: str, overwrite: bool = False,
                   source: Optional["Backend"] = None, recursive: bool = True) -> Outcome:
        """Copy ``name`` as a file or a directory depending on what it is."""
        source = source if source is not None else self
        src_path = source.join(src_dir, name)
        try:
            mode = source.stat(src_path)
        except OSError as e:
            return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': {e}")
        if mode is None:
            return Outcome(FileStatus.READ_FAILED, f"Cannot read '{src_path}': no such file")
        if stat.S_ISDIR(mode):
            return self.copy_dir(src_dir, name, dst_dir, recursive, overwrite, source)
        return self.copy_file(src_dir, name, dst_dir, overwrite, source)


@functools.lru_cache(maxsize=256)
def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


@functools.lru_cache(maxsize=256)
def _group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


def normalize_local_path(path: Optional[str]) -> str:
    """Expand user and resolve an absolute local filesystem path."""
    expanded = os.path.expanduser(path or "/")
    return os.path.abspath(expanded)


class LocalBackend(Backend):
    """The local filesystem."""

    label = "local"

    def home(self) -> str:
        return normalize_local_path("~")

    def join(self, directory: str, name: str) -> str:
        return os.path.join(directory, name)

    def stat(self, path: str) -> Optional[int]:
        try:
            return os.stat(path).st_mode
        except FileNotFoundError:
            return None

    def lstat(self, path: str) -> Optional[int]:
        try:
            return os.lstat(path).st_mode
        except FileNotFoundError:
            return None

    def same_path(self, first: str, second: str) -> bool:
        try:
            return os.path.samefile(first, second)
        except OSError:
            return super().same_path(first, second)

    def list(self, directory: str) -> List[DirEntry]:
        try:
            it = os.scandir(directory)
        except OSError as e:
            raise DirectoryOpenError(directory, str(e)) from e

        entries: List[DirEntry] = []
        with it:
            try:
                for dirent in it:
                    try:
                        st = dirent.stat(follow_symlinks=False)
                    except FileNotFoundError:
                        logger.debug(f"Skipping vanished entry {dirent.path}")
                        continue
                    entries.append(DirEntry.from_stat(
                        dirent.name, st, _user_name(st.st_uid), _group_name(st.st_gid)
                    ))
            except OSError as e:
                raise DirectoryReadError(directory, str(e)) from e

        entries.sort(key=lambda entry: entry.name)
        logger.debug(f"Listed {len(entries)} entries in {directory}")
        return entries

    def open_read(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def open_write(self, path: str, overwrite: bool) -> BinaryIO:
        return open(path, "wb" if overwrite else "xb")

    def make_dir(self, path: str) -> None:
        os.mkdir(path)

    def remove_file(self, path: str) -> None:
        os.unlink(path)

    def remove_dir(self, path: str) -> None:
        os.rmdir(path)

    def rename_path(self, old: str, new: str) -> None:
        os.rename(old, new)

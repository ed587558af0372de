"""Shared fixtures for twinsftp tests.

The remote side is a fake SFTP client that serves the real local
filesystem, so :class:`RemoteBackend` runs its actual code against
``tmp_path``.
"""

import io
import os
import subprocess

import paramiko
import pytest

from twinsftp.config import SessionConfig
from twinsftp.fileops import LocalBackend
from twinsftp.remote import RemoteBackend
from twinsftp.transfer import TransferEngine


class FakeSFTPFile:
    """File handle that records the size of every write."""

    def __init__(self, path, mode, writes):
        self.name = path
        self._fh = open(path, mode)
        self._writes = writes

    def read(self, size=-1):
        return self._fh.read(size)

    def write(self, data):
        self._writes.append(len(data))
        return self._fh.write(data)

    def close(self):
        self._fh.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FakeSFTP:
    """Subset of :class:`paramiko.SFTPClient` backed by the local disk."""

    def __init__(self):
        self.writes = []
        self.closed = False

    def stat(self, path):
        return paramiko.SFTPAttributes.from_stat(os.stat(path), os.path.basename(path))

    def lstat(self, path):
        return paramiko.SFTPAttributes.from_stat(os.lstat(path), os.path.basename(path))

    def listdir_attr(self, path="."):
        return [
            paramiko.SFTPAttributes.from_stat(os.lstat(os.path.join(path, name)), name)
            for name in os.listdir(path)
        ]

    def open(self, filename, mode="r", bufsize=-1):
        try:
            return FakeSFTPFile(filename, mode, self.writes)
        except FileExistsError:
            # SFTPv3 has no "exists" status code
            raise IOError("Failure")

    def mkdir(self, path, mode=0o777):
        os.mkdir(path, mode)

    def rmdir(self, path):
        os.rmdir(path)

    def remove(self, path):
        os.remove(path)

    def rename(self, oldpath, newpath):
        if os.path.lexists(newpath):
            raise IOError("Failure")
        os.rename(oldpath, newpath)

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for an authenticated :class:`RemoteSession`."""

    def __init__(self, home, chunk_size=7):
        self.config = SessionConfig(chunk_size=chunk_size)
        self.sftp = FakeSFTP()
        self.home_dir = home
        self.commands = []

    def exec_command(self, command):
        self.commands.append(command)
        proc = subprocess.run(command, shell=True, capture_output=True, text=True)
        return proc.returncode, proc.stdout, proc.stderr


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "local"
    root.mkdir()
    return root


@pytest.fixture
def remote_root(tmp_path):
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def local():
    return LocalBackend()


@pytest.fixture
def fake_session(remote_root):
    return FakeSession(str(remote_root))


@pytest.fixture
def remote(fake_session):
    return RemoteBackend(fake_session)


@pytest.fixture
def engine(local, remote):
    return TransferEngine(local, remote)


@pytest.fixture
def tree(local_root):
    """Directory A with a.txt, sub/b.txt and sub/deeper/c.bin."""
    a = local_root / "A"
    (a / "sub" / "deeper").mkdir(parents=True)
    (a / "a.txt").write_bytes(b"alpha contents")
    (a / "sub" / "b.txt").write_bytes(b"bravo")
    (a / "sub" / "deeper" / "c.bin").write_bytes(bytes(range(256)) * 3)
    return a


def snapshot(root):
    """Map of relative path -> bytes (None for directories)."""
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            result[os.path.relpath(os.path.join(dirpath, name), root)] = None
        for name in filenames:
            path = os.path.join(dirpath, name)
            with open(path, "rb") as fh:
                result[os.path.relpath(path, root)] = fh.read()
    return result


class RecordingWriter(io.BytesIO):
    def __init__(self):
        super().__init__()
        self.sizes = []

    def write(self, data):
        self.sizes.append(len(data))
        return super().write(data)

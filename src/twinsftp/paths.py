"""String-only working directory tracking for the local and remote panes."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

SEPARATOR = "/"


def join_path(directory: str, name: str, sep: str = SEPARATOR) -> str:
    """Join ``directory`` and ``name`` with exactly one separator between them."""
    if not directory:
        return name
    if directory.endswith(sep):
        return directory + name
    return directory + sep + name


def cd_enter(directory: str, name: str, sep: str = SEPARATOR) -> str:
    """Return the path of subdirectory ``name`` inside ``directory``."""
    return join_path(directory, name.strip(sep), sep)


def cd_back(directory: str, sep: str = SEPARATOR) -> str:
    """Return the parent of ``directory``; the root is its own parent."""
    stripped = directory.rstrip(sep)
    if not stripped:
        return sep
    index = stripped.rfind(sep)
    if index <= 0:
        return sep
    return stripped[:index]


class PathModel:
    """Current directory of one pane.

    No filesystem access happens here; callers list the directory through a
    backend after every change.
    """

    def __init__(self, path: str = SEPARATOR, sep: str = SEPARATOR) -> None:
        self._sep = sep
        self._path = path or sep

    @property
    def path(self) -> str:
        return self._path

    @path.setter
    def path(self, value: str) -> None:
        self._path = value or self._sep

    @property
    def sep(self) -> str:
        return self._sep

    def enter(self, name: str) -> str:
        self._path = cd_enter(self._path, name, self._sep)
        logger.debug(f"Entered {self._path}")
        return self._path

    def back(self) -> str:
        self._path = cd_back(self._path, self._sep)
        logger.debug(f"Moved up to {self._path}")
        return self._path

    def join(self, name: str) -> str:
        return join_path(self._path, name, self._sep)

    def __repr__(self) -> str:
        return f"PathModel({self._path!r})"

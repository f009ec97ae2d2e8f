"""Backend capability shared by the storage adapters."""

from __future__ import annotations

import posixpath
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from blob_mount.errors import InvalidHandle


class FileType(str, Enum):
    CONFIG = "config"
    DATA = "data"
    SNAPSHOT = "snapshot"
    INDEX = "index"
    LOCK = "lock"
    KEY = "key"


# Subdirectory of the repository base path that holds each file type.
PATHS = {
    FileType.DATA: "data",
    FileType.SNAPSHOT: "snapshots",
    FileType.INDEX: "index",
    FileType.LOCK: "locks",
    FileType.KEY: "keys",
}

CONFIG_NAME = "config"


def validate_type(file_type) -> FileType:
    """
    Raises:
        InvalidHandle: If ``file_type`` is not a known FileType.
    """
    try:
        return FileType(file_type)
    except ValueError:
        raise InvalidHandle("invalid file type", {"type": file_type}) from None


@dataclass(frozen=True)
class Handle:
    """Addresses one stored object by type and name."""

    type: FileType
    name: str = ""

    def validate(self) -> None:
        """
        Check that the handle can address an object.

        Raises:
            InvalidHandle: If the type is unknown or a non-config handle has
                no name.
        """
        if validate_type(self.type) is not FileType.CONFIG and not self.name:
            raise InvalidHandle("invalid name", {"type": FileType(self.type).value})


@dataclass(frozen=True)
class FileInfo:
    size: int


def object_path(base: str, handle: Handle) -> str:
    """
    Join the per-type subdirectory and the handle name onto a base path.

    The config object lives directly under the base path as ``config``.
    """
    file_type = FileType(handle.type)
    if file_type is FileType.CONFIG:
        return posixpath.join(base, CONFIG_NAME)
    return posixpath.join(base, PATHS[file_type], handle.name)


def collection_path(base: str, file_type: FileType) -> str:
    """Directory holding all objects of ``file_type``, with a trailing slash."""
    file_type = validate_type(file_type)
    if file_type is FileType.CONFIG:
        path = base
    else:
        path = posixpath.join(base, PATHS[file_type])
    if not path.endswith("/"):
        path += "/"
    return path


class Backend(ABC):
    """Storage for repository objects addressed by Handle."""

    @abstractmethod
    def location(self) -> str:
        """Human-readable location of the backend."""

    @abstractmethod
    def load(self, handle: Handle, length: Optional[int] = None, offset: int = 0) -> bytes:
        """
        Read part of a stored object.

        Args:
            handle: Object to read.
            length: Number of bytes to read. None reads to the end.
            offset: Start offset. Negative values count back from the end.

        Returns:
            The bytes read; shorter than ``length`` at end of object.
        """

    @abstractmethod
    def save(self, handle: Handle, data: bytes) -> None:
        """Store ``data`` as the full content of ``handle``."""

    @abstractmethod
    def stat(self, handle: Handle) -> FileInfo:
        """Return the size of a stored object."""

    @abstractmethod
    def test(self, file_type: FileType, name: str) -> bool:
        """Return True if the object exists."""

    @abstractmethod
    def remove(self, file_type: FileType, name: str) -> None:
        """Delete a stored object."""

    @abstractmethod
    def list(
        self, file_type: FileType, done: Optional[threading.Event] = None
    ) -> Iterator[str]:
        """
        Yield the names of all objects of ``file_type``.

        Iteration stops early once ``done`` is set; the event is checked
        between items.
        """

    def close(self) -> None:
        pass


def resolve_offset(offset: int, size: int) -> int:
    """Turn a negative offset into one counted from the start of an object."""
    if offset >= 0:
        return offset
    if -offset > size:
        return 0
    return size + offset

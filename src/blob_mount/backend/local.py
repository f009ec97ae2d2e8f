"""Backend over any fsspec filesystem."""

import logging
import threading
from typing import Iterator, Optional

import fsspec

from blob_mount.backend.base import (
    Backend,
    FileInfo,
    FileType,
    Handle,
    collection_path,
    object_path,
    resolve_offset,
)

logger = logging.getLogger(__name__)


class FsspecBackend(Backend):
    """Stores repository objects through fsspec."""

    def __init__(self, url: str):
        """
        Initialize the backend.

        Args:
            url: fsspec URL (e.g., 'file:///path', 's3://bucket/prefix', 'memory://repo').
        """
        self.url = url
        self.fs, self.root = fsspec.core.url_to_fs(url)
        self.root = self.root.rstrip("/") or "/"

    def location(self) -> str:
        return self.url

    def _path(self, handle: Handle) -> str:
        handle.validate()
        return object_path(self.root, handle)

    def load(self, handle: Handle, length: Optional[int] = None, offset: int = 0) -> bytes:
        path = self._path(handle)
        if not self.fs.exists(path):
            raise FileNotFoundError(f"{handle.type.value} {handle.name} not found")
        if offset < 0:
            offset = resolve_offset(offset, self.fs.size(path))
        end = None if length is None else offset + length
        return self.fs.cat_file(path, start=offset, end=end)

    def save(self, handle: Handle, data: bytes) -> None:
        path = self._path(handle)
        parent = path.rsplit("/", 1)[0]
        if parent:
            self.fs.makedirs(parent, exist_ok=True)
        with self.fs.open(path, "wb") as f:
            f.write(data)

    def stat(self, handle: Handle) -> FileInfo:
        path = self._path(handle)
        if not self.fs.exists(path):
            raise FileNotFoundError(f"{handle.type.value} {handle.name} not found")
        return FileInfo(size=int(self.fs.size(path)))

    def test(self, file_type: FileType, name: str) -> bool:
        return self.fs.exists(self._path(Handle(file_type, name)))

    def remove(self, file_type: FileType, name: str) -> None:
        path = self._path(Handle(file_type, name))
        if not self.fs.exists(path):
            raise FileNotFoundError(f"{FileType(file_type).value} {name} not found")
        self.fs.rm(path)

    def list(
        self, file_type: FileType, done: Optional[threading.Event] = None
    ) -> Iterator[str]:
        directory = collection_path(self.root, file_type).rstrip("/")
        if not self.fs.exists(directory):
            return
        for item in self.fs.listdir(directory, detail=False):
            if done is not None and done.is_set():
                return
            # item may be full path, keep only the object name
            yield item.rstrip("/").split("/")[-1]

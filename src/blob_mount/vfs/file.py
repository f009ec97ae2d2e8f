"""
Read-only view of a file stored as an ordered list of blobs.

A VirtualFile looks up every blob size once when it is created, so offset
math during reads needs no further size queries. Blob bytes are loaded on
first access into buffers borrowed from a BufferPool and stay cached until
release().
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from blob_mount.errors import ChunkLoadError, ChunkSizeLookupError, OffsetOutOfRangeError
from blob_mount.node import BlobType, Node
from blob_mount.vfs.pool import BufferPool, blob_pool

logger = logging.getLogger(__name__)

# Block size reported in stat
BLOCK_SIZE = 512


class BlobLoader(ABC):
    """The two repository operations a VirtualFile needs."""

    @abstractmethod
    def lookup_blob_size(self, blob_id: str, blob_type: BlobType) -> int:
        """Return the plaintext size of a blob."""

    @abstractmethod
    def load_blob(self, blob_type: BlobType, blob_id: str, buf: bytearray) -> int:
        """
        Load a blob into ``buf`` starting at blob offset 0.

        Args:
            blob_type: Type of the blob.
            blob_id: Blob identifier.
            buf: Destination; at most ``len(buf)`` bytes are written.

        Returns:
            Number of bytes written.
        """


@dataclass
class Attr:
    inode: int
    mode: int
    size: int
    blocks: int
    blksize: int
    atime_ns: int
    ctime_ns: int
    mtime_ns: int
    uid: Optional[int] = None
    gid: Optional[int] = None

    def to_stat(self) -> Dict[str, Any]:
        """Render as the stat dict fusepy expects from getattr()."""
        st = {
            "st_ino": self.inode,
            "st_mode": self.mode,
            "st_nlink": 1,
            "st_size": self.size,
            "st_blocks": self.blocks,
            "st_blksize": self.blksize,
            "st_atime": self.atime_ns / 1e9,
            "st_ctime": self.ctime_ns / 1e9,
            "st_mtime": self.mtime_ns / 1e9,
        }
        if self.uid is not None:
            st["st_uid"] = self.uid
        if self.gid is not None:
            st["st_gid"] = self.gid
        return st


class VirtualFile:
    def __init__(
        self,
        repo: BlobLoader,
        node: Node,
        owner_is_root: bool = False,
        pool: BufferPool = blob_pool,
    ):
        """
        Look up the size of every blob of ``node``.

        If the sizes do not add up to ``node.size`` the node is corrected in
        place to the real total.

        Raises:
            ChunkSizeLookupError: If any size lookup fails.
        """
        logger.debug("create new file for %s with %d blobs", node.name, len(node.content))
        sizes: List[int] = []
        for blob_id in node.content:
            try:
                sizes.append(repo.lookup_blob_size(blob_id, BlobType.DATA))
            except ChunkSizeLookupError:
                raise
            except Exception as e:
                raise ChunkSizeLookupError(
                    f"size lookup failed: {e}", {"file": node.name, "blob": blob_id}
                ) from e

        total = sum(sizes)
        if total != node.size:
            logger.debug(
                "sizes do not match: node.size %d != size %d, using real size",
                node.size,
                total,
            )
            node.size = total

        self.repo = repo
        self.node = node
        self.owner_is_root = owner_is_root
        self._pool = pool
        self._sizes = sizes
        self._buffers: List[Optional[bytearray]] = [None] * len(sizes)
        self._blobs: List[Optional[memoryview]] = [None] * len(sizes)
        self._locks = [threading.Lock() for _ in sizes]

    @property
    def sizes(self) -> List[int]:
        return list(self._sizes)

    def attributes(self) -> Attr:
        logger.debug("Attr(%s)", self.node.name)
        node = self.node
        attr = Attr(
            inode=node.inode,
            mode=node.mode,
            size=node.size,
            # one block more than needed for exact multiples, kept for compatibility
            blocks=node.size // BLOCK_SIZE + 1,
            blksize=BLOCK_SIZE,
            atime_ns=node.atime_ns,
            ctime_ns=node.ctime_ns,
            mtime_ns=node.mtime_ns,
        )
        if not self.owner_is_root:
            attr.uid = node.uid
            attr.gid = node.gid
        return attr

    def get_chunk(self, i: int) -> memoryview:
        """
        Return the bytes of blob ``i``, loading and caching them on first use.

        Raises:
            ChunkLoadError: If the blob cannot be loaded. Nothing is cached.
        """
        with self._locks[i]:
            cached = self._blobs[i]
            if cached is not None:
                return cached

            logger.debug("getBlobAt(%s, %d)", self.node.name, i)
            buf = self._pool.acquire()
            if len(buf) < self._sizes[i]:
                self._pool.release(buf)
                buf = bytearray(self._sizes[i])

            blob_id = self.node.content[i]
            try:
                n = self.repo.load_blob(BlobType.DATA, blob_id, buf)
            except Exception as e:
                self._pool.release(buf)
                logger.debug("LoadBlob(%s, %s) failed: %s", self.node.name, blob_id, e)
                if isinstance(e, ChunkLoadError):
                    raise
                raise ChunkLoadError(
                    f"loading blob failed: {e}", {"file": self.node.name, "blob": blob_id}
                ) from e

            self._buffers[i] = buf
            self._blobs[i] = memoryview(buf)[:n]
            return self._blobs[i]

    def read(self, offset: int, size: int) -> bytes:
        """
        Read up to ``size`` bytes starting at ``offset``.

        The result is shorter than ``size`` only when the blobs run out.

        Raises:
            OffsetOutOfRangeError: If ``offset`` is past the end of the file.
            ChunkLoadError: If a blob needed for the read cannot be loaded.
        """
        logger.debug(
            "Read(%s, %d, %d), file size %d", self.node.name, size, offset, self.node.size
        )
        if offset > self.node.size:
            logger.debug(
                "Read(%s): offset is greater than file size: %d > %d",
                self.node.name,
                offset,
                self.node.size,
            )
            raise OffsetOutOfRangeError(
                "offset greater than file size",
                {"file": self.node.name, "offset": offset, "size": self.node.size},
            )

        if self.node.size == 0:
            return b""

        # skip blobs before the offset
        start = 0
        while start < len(self._sizes) and offset > self._sizes[start]:
            offset -= self._sizes[start]
            start += 1

        parts: List[bytes] = []
        remaining = size
        for i in range(start, len(self._sizes)):
            if remaining <= 0:
                break
            blob = self.get_chunk(i)
            if offset > 0:
                blob = blob[offset:]
                offset = 0
            piece = bytes(blob[:remaining])
            parts.append(piece)
            remaining -= len(piece)

        return b"".join(parts)

    def release(self) -> None:
        """Hand every cached blob buffer back to the pool."""
        for i in range(len(self._blobs)):
            with self._locks[i]:
                view = self._blobs[i]
                buf = self._buffers[i]
                if view is not None:
                    view.release()
                    self._blobs[i] = None
                if buf is not None:
                    self._pool.release(buf)
                    self._buffers[i] = None

    def cached_chunks(self) -> int:
        return sum(1 for b in self._blobs if b is not None)

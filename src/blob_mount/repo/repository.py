"""Backup repository stored through a Backend."""

import json
import logging
import stat
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Any, Union

from blob_mount.backend.base import Backend, FileType, Handle
from blob_mount.backend.local import FsspecBackend
from blob_mount.backend.webdav import PREFIX as WEBDAV_PREFIX, WebDAVBackend, parse_config
from blob_mount.config import DEFAULT_CONN_LIMIT
from blob_mount.errors import ChunkLoadError, ChunkSizeLookupError
from blob_mount.node import BlobType, Node
from blob_mount.pipeline.chunking import ChunkingStrategy, FixedSizeChunker
from blob_mount.typing_ import BlobRef, IndexPayload
from blob_mount.vfs.file import BlobLoader

logger = logging.getLogger(__name__)

REPO_VERSION = "1"


def open_backend(url: str, conn_limit: int = DEFAULT_CONN_LIMIT) -> Backend:
    """
    Pick a backend for a repository URL.

    ``webdav:<http-url>`` selects the WebDAV backend; anything else is
    handed to fsspec (e.g., 'file:///path', 'memory://repo').
    """
    if url.startswith(WEBDAV_PREFIX):
        return WebDAVBackend(parse_config(url), conn_limit=conn_limit)
    return FsspecBackend(url)


@dataclass
class FileEntry:
    """Represents a file in a snapshot."""
    path: str
    size: int
    mode: int
    mtime_ns: int
    blobs: list[BlobRef]
    uid: int = 0
    gid: int = 0
    atime_ns: int = 0
    ctime_ns: int = 0

    def to_node(self, inode: int = 0) -> Node:
        return Node(
            name=self.path,
            size=self.size,
            mode=self.mode,
            content=[b["hash"] for b in self.blobs],
            inode=inode,
            uid=self.uid,
            gid=self.gid,
            atime_ns=self.atime_ns,
            ctime_ns=self.ctime_ns,
            mtime_ns=self.mtime_ns,
        )


@dataclass
class Snapshot:
    """Represents a snapshot manifest."""
    snapshot_id: str
    created_at: float
    hostname: str
    sources: list[str]
    files: list[FileEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "created_at": self.created_at,
            "hostname": self.hostname,
            "sources": self.sources,
            "files": [
                {
                    "path": f.path,
                    "size": f.size,
                    "mode": f.mode,
                    "uid": f.uid,
                    "gid": f.gid,
                    "atime_ns": f.atime_ns,
                    "ctime_ns": f.ctime_ns,
                    "mtime_ns": f.mtime_ns,
                    "blobs": f.blobs,
                }
                for f in self.files
            ],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Snapshot":
        files = [
            FileEntry(
                path=f["path"],
                size=f["size"],
                mode=f.get("mode", stat.S_IFREG | 0o644),
                mtime_ns=f.get("mtime_ns", 0),
                blobs=f["blobs"],
                uid=f.get("uid", 0),
                gid=f.get("gid", 0),
                atime_ns=f.get("atime_ns", 0),
                ctime_ns=f.get("ctime_ns", 0),
            )
            for f in data["files"]
        ]
        return Snapshot(
            snapshot_id=data["snapshot_id"],
            created_at=data["created_at"],
            hostname=data["hostname"],
            sources=data["sources"],
            files=files,
        )

    def find(self, path: str) -> Optional[FileEntry]:
        wanted = path.strip("/")
        for entry in self.files:
            if entry.path.strip("/") == wanted:
                return entry
        return None


def _object_name(item: str) -> str:
    # listings may return full paths or hrefs; a trailing slash names the collection
    if item.endswith("/"):
        return ""
    return item.split("/")[-1]


class Repository(BlobLoader):
    """Backup repository; also the blob source for mounted files."""

    def __init__(
        self,
        url: Union[str, Backend],
        chunker: Optional[ChunkingStrategy] = None,
        conn_limit: int = DEFAULT_CONN_LIMIT,
    ):
        """
        Initialize a repository.

        Args:
            url: Repository URL (fsspec URL or 'webdav:<http-url>'), or a
                ready Backend.
            chunker: ChunkingStrategy instance. Defaults to FixedSizeChunker.
            conn_limit: Maximum concurrent requests for remote backends.
        """
        if isinstance(url, Backend):
            self.backend = url
        else:
            self.backend = open_backend(url, conn_limit=conn_limit)
        self.url = self.backend.location()
        self.chunker = chunker or FixedSizeChunker()
        self._index: Optional[dict[str, int]] = None
        self._index_lock = threading.Lock()

    def _ensure_initialized(self) -> None:
        """Check if repository is initialized; raise if not."""
        if not self.exists():
            raise RuntimeError(
                f"Repository not initialized at {self.url}. Run init first."
            )

    def init(self) -> None:
        config = {
            "version": REPO_VERSION,
            "chunk_size": getattr(self.chunker, "chunk_size", None),
            "created_at": int(datetime.now(timezone.utc).timestamp()),
        }
        self.backend.save(Handle(FileType.CONFIG), json.dumps(config, indent=2).encode())
        logger.info("initialized repository at %s", self.url)

    def exists(self) -> bool:
        return self.backend.test(FileType.CONFIG, "")

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def put_blob(self, data: bytes, hash_hex: str) -> bool:
        """
        Store a blob by hash.

        Returns:
            True if the blob was written, False if it was already present.
        """
        if self.backend.test(FileType.DATA, hash_hex):
            return False
        self.backend.save(Handle(FileType.DATA, hash_hex), data)
        return True

    def get_blob(self, hash_hex: str) -> bytes:
        """
        Raises:
            FileNotFoundError: If blob does not exist.
        """
        if not self.backend.test(FileType.DATA, hash_hex):
            raise FileNotFoundError(f"Blob {hash_hex} not found")
        return self.backend.load(Handle(FileType.DATA, hash_hex))

    def write_snapshot(self, snapshot: Snapshot) -> str:
        self._ensure_initialized()
        name = snapshot.snapshot_id
        self.backend.save(
            Handle(FileType.SNAPSHOT, name),
            json.dumps(snapshot.to_dict(), indent=2).encode(),
        )
        return name

    def list_snapshots(self) -> list[Snapshot]:
        """
        List all snapshots, newest first.

        Manifests that cannot be read are logged and skipped.
        """
        self._ensure_initialized()

        snapshots = []
        for item in self.backend.list(FileType.SNAPSHOT):
            name = _object_name(item)
            if not name:
                continue
            try:
                raw = self.backend.load(Handle(FileType.SNAPSHOT, name))
                snapshots.append(Snapshot.from_dict(json.loads(raw)))
            except Exception as e:
                logger.warning("could not load snapshot %s: %s", name, e)

        snapshots.sort(key=lambda s: s.created_at, reverse=True)
        return snapshots

    def get_snapshot_by_id(self, snapshot_id: str) -> Optional[Snapshot]:
        """Find a snapshot by full ID or unique-enough prefix."""
        for snap in self.list_snapshots():
            if snap.snapshot_id.startswith(snapshot_id):
                return snap
        return None

    def latest_snapshot(self) -> Optional[Snapshot]:
        snapshots = self.list_snapshots()
        return snapshots[0] if snapshots else None

    def write_index(self, snapshot_id: str, blobs: dict[str, int]) -> str:
        """Write the blob->size index produced by one backup."""
        self._ensure_initialized()
        payload: IndexPayload = {"blobs": blobs}
        self.backend.save(
            Handle(FileType.INDEX, snapshot_id), json.dumps(payload, indent=2).encode()
        )
        with self._index_lock:
            if self._index is not None:
                self._index.update(blobs)
        return snapshot_id

    def load_index(self) -> dict[str, int]:
        """Merge every index file into the in-memory blob->size index."""
        index: dict[str, int] = {}
        for item in self.backend.list(FileType.INDEX):
            name = _object_name(item)
            if not name:
                continue
            try:
                raw = self.backend.load(Handle(FileType.INDEX, name))
                payload: IndexPayload = json.loads(raw)
                index.update(payload["blobs"])
            except Exception as e:
                logger.warning("could not load index %s: %s", name, e)
        with self._index_lock:
            self._index = index
        logger.debug("loaded index with %d blobs", len(index))
        return index

    def lookup_blob_size(self, blob_id: str, blob_type: BlobType) -> int:
        if BlobType(blob_type) is not BlobType.DATA:
            raise ChunkSizeLookupError(
                "unsupported blob type", {"blob": blob_id, "type": str(blob_type)}
            )
        with self._index_lock:
            index = self._index
        if index is None:
            index = self.load_index()
        try:
            return index[blob_id]
        except KeyError:
            raise ChunkSizeLookupError("blob not in index", {"blob": blob_id}) from None

    def load_blob(self, blob_type: BlobType, blob_id: str, buf: bytearray) -> int:
        if BlobType(blob_type) is not BlobType.DATA:
            raise ChunkLoadError(
                "unsupported blob type", {"blob": blob_id, "type": str(blob_type)}
            )
        data = self.backend.load(Handle(FileType.DATA, blob_id), length=len(buf))
        n = len(data)
        buf[:n] = data
        return n

from blob_mount.errors import (
    BlobMountError,
    InvalidHandle,
    ChunkSizeLookupError,
    ChunkLoadError,
    OffsetOutOfRangeError,
    RemoteProtocolError,
    SizeMismatchError,
)
from blob_mount.node import Node, BlobType
from blob_mount.vfs import BufferPool, blob_pool, BlobLoader, VirtualFile, Attr
from blob_mount.backend import (
    Backend,
    FileType,
    Handle,
    FileInfo,
    FsspecBackend,
    WebDAVBackend,
    WebDAVConfig,
    parse_config,
)
from blob_mount.repo import Repository, Snapshot, FileEntry, open_backend
from blob_mount.pipeline import ChunkingStrategy, FixedSizeChunker
from blob_mount.runtime import (
    init_repo,
    run_backup,
    list_snapshots,
    dump_file,
    mount_snapshot,
)

__all__ = [
    # errors
    "BlobMountError",
    "InvalidHandle",
    "ChunkSizeLookupError",
    "ChunkLoadError",
    "OffsetOutOfRangeError",
    "RemoteProtocolError",
    "SizeMismatchError",
    # virtual files
    "Node",
    "BlobType",
    "BufferPool",
    "blob_pool",
    "BlobLoader",
    "VirtualFile",
    "Attr",
    # backends
    "Backend",
    "FileType",
    "Handle",
    "FileInfo",
    "FsspecBackend",
    "WebDAVBackend",
    "WebDAVConfig",
    "parse_config",
    # repository
    "Repository",
    "Snapshot",
    "FileEntry",
    "open_backend",
    "ChunkingStrategy",
    "FixedSizeChunker",
    # runtime
    "init_repo",
    "run_backup",
    "list_snapshots",
    "dump_file",
    "mount_snapshot",
]

__version__ = "0.1.0"

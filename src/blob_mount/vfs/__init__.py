"""Virtual files backed by repository blobs.

``blob_mount.vfs.fs`` (the FUSE operations) is not imported here because
fusepy needs libfuse at import time.
"""

from .pool import BufferPool, blob_pool, DEFAULT_BLOB_SIZE
from .file import BlobLoader, VirtualFile, Attr, BLOCK_SIZE

__all__ = [
    "BufferPool",
    "blob_pool",
    "DEFAULT_BLOB_SIZE",
    "BlobLoader",
    "VirtualFile",
    "Attr",
    "BLOCK_SIZE",
]

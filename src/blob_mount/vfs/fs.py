"""Read-only FUSE view of one snapshot."""

import errno
import logging
import os
import stat
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional

from fuse import FUSE, FuseOSError, Operations

from blob_mount.errors import BlobMountError
from blob_mount.repo.repository import FileEntry, Repository, Snapshot
from blob_mount.vfs.file import VirtualFile
from blob_mount.vfs.pool import BufferPool, blob_pool

logger = logging.getLogger(__name__)

_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_CREAT | os.O_TRUNC


@dataclass
class _Dir:
    inode: int
    children: Dict[str, str] = field(default_factory=dict)  # name -> full path


class SnapshotFS(Operations):
    """
    Exposes the files of a snapshot as a read-only tree.

    Every open() creates its own VirtualFile; release() returns its cached
    blob buffers to the pool.
    """

    def __init__(
        self,
        repo: Repository,
        snapshot: Snapshot,
        owner_is_root: bool = False,
        pool: BufferPool = blob_pool,
    ):
        self.repo = repo
        self.snapshot = snapshot
        self.owner_is_root = owner_is_root
        self._pool = pool
        self._dirs: Dict[str, _Dir] = {}
        self._files: Dict[str, tuple[FileEntry, int]] = {}
        self._handles: Dict[int, VirtualFile] = {}
        self._next_fh = 1
        self._fh_lock = threading.Lock()
        self._build_tree()

    def _build_tree(self) -> None:
        next_inode = 1
        self._dirs["/"] = _Dir(inode=next_inode)
        for entry in sorted(self.snapshot.files, key=lambda e: e.path):
            parts = [p for p in entry.path.split("/") if p and p != "."]
            if not parts:
                continue
            parent = "/"
            for name in parts[:-1]:
                path = parent.rstrip("/") + "/" + name
                if path not in self._dirs:
                    next_inode += 1
                    self._dirs[path] = _Dir(inode=next_inode)
                    self._dirs[parent].children[name] = path
                parent = path
            path = parent.rstrip("/") + "/" + parts[-1]
            if path in self._files or path in self._dirs:
                logger.warning("duplicate path %s in snapshot, keeping first", path)
                continue
            next_inode += 1
            self._files[path] = (entry, next_inode)
            self._dirs[parent].children[parts[-1]] = path
        logger.debug(
            "snapshot %s: %d dirs, %d files",
            self.snapshot.snapshot_id[:8],
            len(self._dirs),
            len(self._files),
        )

    def _new_file(self, path: str) -> VirtualFile:
        try:
            entry, inode = self._files[path]
        except KeyError:
            raise FuseOSError(errno.ENOENT) from None
        try:
            return VirtualFile(
                self.repo, entry.to_node(inode), self.owner_is_root, pool=self._pool
            )
        except BlobMountError as e:
            logger.error("open %s: %s", path, e)
            raise FuseOSError(errno.EIO) from e

    def _dir_stat(self, d: _Dir) -> dict:
        ts = float(self.snapshot.created_at)
        st = {
            "st_ino": d.inode,
            "st_mode": stat.S_IFDIR | 0o555,
            "st_nlink": 2 + sum(1 for p in d.children.values() if p in self._dirs),
            "st_size": 0,
            "st_atime": ts,
            "st_ctime": ts,
            "st_mtime": ts,
        }
        if not self.owner_is_root:
            st["st_uid"] = os.getuid()
            st["st_gid"] = os.getgid()
        return st

    def getattr(self, path, fh=None):
        if path in self._dirs:
            return self._dir_stat(self._dirs[path])
        handle = self._handles.get(fh) if fh else None
        if handle is not None:
            return handle.attributes().to_stat()
        vf = self._new_file(path)
        try:
            return vf.attributes().to_stat()
        finally:
            vf.release()

    def readdir(self, path, fh):
        d = self._dirs.get(path)
        if d is None:
            raise FuseOSError(errno.ENOENT)
        return [".", ".."] + sorted(d.children)

    def open(self, path, flags):
        if flags & _WRITE_FLAGS:
            raise FuseOSError(errno.EROFS)
        vf = self._new_file(path)
        with self._fh_lock:
            fh = self._next_fh
            self._next_fh += 1
            self._handles[fh] = vf
        return fh

    def read(self, path, size, offset, fh):
        vf = self._handles.get(fh)
        if vf is None:
            raise FuseOSError(errno.EBADF)
        try:
            return vf.read(offset, size)
        except BlobMountError as e:
            logger.error("read %s at %d: %s", path, offset, e)
            raise FuseOSError(errno.EIO) from e

    def release(self, path, fh):
        with self._fh_lock:
            vf = self._handles.pop(fh, None)
        if vf is not None:
            vf.release()
        return 0

    def statfs(self, path):
        return {"f_bsize": 512, "f_frsize": 512, "f_namemax": 255}

    def open_handles(self) -> int:
        with self._fh_lock:
            return len(self._handles)


def mount(
    repo: Repository,
    snapshot: Snapshot,
    mountpoint: str,
    owner_is_root: bool = False,
    foreground: bool = True,
    allow_other: bool = False,
) -> None:
    """Mount ``snapshot`` read-only at ``mountpoint``; blocks until unmounted."""
    ops = SnapshotFS(repo, snapshot, owner_is_root=owner_is_root)
    logger.info("mounting snapshot %s at %s", snapshot.snapshot_id[:8], mountpoint)
    options = {"ro": True, "nothreads": False, "foreground": foreground}
    if allow_other:
        options["allow_other"] = True
    FUSE(ops, mountpoint, fsname="blob-mount", **options)

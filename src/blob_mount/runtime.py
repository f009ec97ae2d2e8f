"""Runtime functions behind the CLI commands."""

import logging
import os
import socket
import time
import uuid
from datetime import datetime, timezone
from typing import BinaryIO, Optional

from blob_mount.config import DEFAULT_CONN_LIMIT
from blob_mount.pipeline.chunking import ChunkingStrategy
from blob_mount.repo.repository import FileEntry, Repository, Snapshot
from blob_mount.typing_ import BlobRef
from blob_mount.vfs.file import VirtualFile
from blob_mount.vfs.pool import blob_pool

logger = logging.getLogger(__name__)


def init_repo(url: str) -> None:
    """
    Initialize a new backup repository.

    Raises:
        RuntimeError: If repository already exists.
    """
    with Repository(url) as repo:
        if repo.exists():
            raise RuntimeError(f"Repository already exists at {url}")
        repo.init()
    print(f"Initialized repository at {url}")


def _entry_for(repo: Repository, filepath: str, rel_path: str, index: dict[str, int]) -> FileEntry:
    st = os.stat(filepath)
    blobs: list[BlobRef] = []
    with open(filepath, "rb") as f:
        for chunk in repo.chunker.chunk(f):
            repo.put_blob(chunk.data, chunk.blob_id)
            blobs.append({"hash": chunk.blob_id, "size": len(chunk.data)})
            index[chunk.blob_id] = len(chunk.data)
    return FileEntry(
        path=rel_path,
        size=st.st_size,
        mode=st.st_mode,
        mtime_ns=st.st_mtime_ns,
        blobs=blobs,
        uid=st.st_uid,
        gid=st.st_gid,
        atime_ns=st.st_atime_ns,
        ctime_ns=st.st_ctime_ns,
    )


def _files_to_back_up(sources: list[str]) -> list[tuple[str, str]]:
    """Pair every file under ``sources`` with the root its path is relative to."""
    to_process = []
    for source_root in sources:
        if os.path.isfile(source_root):
            to_process.append((source_root, os.path.dirname(source_root)))
        else:
            to_process.extend(
                (os.path.join(dirpath, filename), source_root)
                for dirpath, _, filenames in os.walk(source_root)
                for filename in filenames
            )
    return to_process


def run_backup(
    repo_url: str,
    sources: list[str],
    snapshot_id: Optional[str] = None,
    chunker: Optional[ChunkingStrategy] = None,
) -> str:
    """
    Back up local files and directories into a new snapshot.

    Files are stored relative to their source root (a single file is stored
    under its basename). Unreadable files are logged and skipped.

    Returns:
        The snapshot ID.

    Raises:
        RuntimeError: If repository doesn't exist or a source is missing.
    """
    with Repository(repo_url, chunker=chunker) as repo:
        repo._ensure_initialized()

        for source in sources:
            if not os.path.exists(source):
                raise RuntimeError(f"Source does not exist: {source}")

        snapshot_id = snapshot_id or uuid.uuid4().hex
        files: list[FileEntry] = []
        index: dict[str, int] = {}

        for filepath, root in _files_to_back_up(sources):
            rel_path = os.path.relpath(filepath, root)
            try:
                files.append(_entry_for(repo, filepath, rel_path, index))
            except OSError as e:
                logger.warning("skipped %s: %s", filepath, e)

        snapshot = Snapshot(
            snapshot_id=snapshot_id,
            created_at=time.time(),
            hostname=socket.gethostname(),
            sources=sources,
            files=files,
        )
        repo.write_index(snapshot_id, index)
        repo.write_snapshot(snapshot)

    print(f"Snapshot {snapshot_id[:8]} created with {len(files)} files")
    return snapshot_id


def list_snapshots(repo_url: str) -> None:
    with Repository(repo_url) as repo:
        repo._ensure_initialized()
        snapshots = repo.list_snapshots()

    if not snapshots:
        print("No snapshots found.")
        return

    print(f"{'Snapshot ID':<12} {'Created At':<26} {'Hostname':<15} {'Files':<6}")
    print("-" * 60)
    for snap in snapshots:
        created = datetime.fromtimestamp(snap.created_at, tz=timezone.utc)
        print(
            f"{snap.snapshot_id[:8]:<12} {created.strftime('%Y-%m-%dT%H:%M:%S'):<26} "
            f"{snap.hostname:<15} {len(snap.files):<6}"
        )


def _resolve_snapshot(repo: Repository, snapshot_id: Optional[str]) -> Snapshot:
    if snapshot_id:
        snapshot = repo.get_snapshot_by_id(snapshot_id)
        if not snapshot:
            raise RuntimeError(f"Snapshot not found: {snapshot_id}")
        return snapshot
    snapshot = repo.latest_snapshot()
    if not snapshot:
        raise RuntimeError("No snapshots found")
    return snapshot


def dump_file(
    repo_url: str,
    path: str,
    out: BinaryIO,
    snapshot_id: Optional[str] = None,
) -> int:
    """
    Write one file of a snapshot to ``out``, reading it the way a mount would.

    Args:
        repo_url: Repository URL.
        path: Path of the file inside the snapshot.
        out: Binary stream to write to.
        snapshot_id: Snapshot ID or prefix. Defaults to the latest snapshot.

    Returns:
        Number of bytes written.
    """
    with Repository(repo_url) as repo:
        repo._ensure_initialized()
        snapshot = _resolve_snapshot(repo, snapshot_id)

        entry = snapshot.find(path)
        if entry is None:
            raise RuntimeError(f"{path} not found in snapshot {snapshot.snapshot_id[:8]}")

        vf = VirtualFile(repo, entry.to_node())
        written = 0
        try:
            while written < vf.node.size:
                data = vf.read(written, blob_pool.default_size)
                if not data:
                    break
                out.write(data)
                written += len(data)
        finally:
            vf.release()
    return written


def mount_snapshot(
    repo_url: str,
    mountpoint: str,
    snapshot_id: Optional[str] = None,
    owner_is_root: bool = False,
    allow_other: bool = False,
    conn_limit: int = DEFAULT_CONN_LIMIT,
) -> None:
    """Mount a snapshot read-only; blocks until the filesystem is unmounted."""
    # fusepy needs libfuse at import time
    from blob_mount.vfs.fs import mount

    with Repository(repo_url, conn_limit=conn_limit) as repo:
        repo._ensure_initialized()
        snapshot = _resolve_snapshot(repo, snapshot_id)
        repo.load_index()

        if not os.path.isdir(mountpoint):
            raise RuntimeError(f"Mountpoint is not a directory: {mountpoint}")
        mount(repo, snapshot, mountpoint, owner_is_root=owner_is_root, allow_other=allow_other)

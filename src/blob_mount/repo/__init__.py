from .repository import Repository, Snapshot, FileEntry, open_backend

__all__ = ["Repository", "Snapshot", "FileEntry", "open_backend"]

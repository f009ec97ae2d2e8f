"""
Example: back up a directory, then read a file back through a VirtualFile.

This is what a mounted snapshot does for every open/read/release, without
needing libfuse. Run from the project root after `pip install -e .`:
  python examples/example_virtual_file.py
"""

import os
import tempfile

from blob_mount import (
    Repository,
    VirtualFile,
    init_repo,
    list_snapshots,
    run_backup,
)


def main():
    repo_url = "memory://example_repo"

    with tempfile.TemporaryDirectory() as tmpdir:
        source_dir = os.path.join(tmpdir, "source")
        os.makedirs(os.path.join(source_dir, "subdir"))

        with open(os.path.join(source_dir, "doc1.txt"), "w") as f:
            f.write("Important document 1\n" * 20000)
        with open(os.path.join(source_dir, "subdir", "nested.txt"), "w") as f:
            f.write("Nested document\n" * 75)

        print("[1] Initializing repository...")
        init_repo(repo_url)

        print("[2] Creating a backup...")
        run_backup(repo_url, [source_dir])

        print("[3] Listing snapshots...")
        list_snapshots(repo_url)

        print("[4] Reading doc1.txt through a VirtualFile...")
        repo = Repository(repo_url)
        snapshot = repo.latest_snapshot()
        entry = snapshot.find("doc1.txt")
        vf = VirtualFile(repo, entry.to_node())
        try:
            attr = vf.attributes()
            print(f"    size={attr.size} blocks={attr.blocks} blobs={len(vf.sizes)}")
            middle = vf.read(attr.size // 2, 42)
            print(f"    42 bytes from the middle: {middle!r}")
        finally:
            vf.release()


if __name__ == "__main__":
    main()

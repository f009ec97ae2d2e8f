import argparse
import sys

from blob_mount.config import DEFAULT_CONFIG_PATH, load_config, save_config
from blob_mount.log import setup_logging
from blob_mount.runtime import (
    init_repo,
    run_backup,
    list_snapshots,
    dump_file,
    mount_snapshot,
)


def _repo_url(args: argparse.Namespace) -> str:
    url = args.repo or args.config.repository
    if not url:
        raise RuntimeError(
            "Provide a repository via --repo or the BLOB_MOUNT_REPOSITORY env var."
        )
    return url


def cmd_init(args: argparse.Namespace) -> int:
    try:
        url = _repo_url(args)
        init_repo(url)
        if args.remember:
            args.config.repository = url
            save_config(args.config, args.config_path)
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def cmd_backup(args: argparse.Namespace) -> int:
    try:
        run_backup(_repo_url(args), args.sources)
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def cmd_snapshots(args: argparse.Namespace) -> int:
    try:
        list_snapshots(_repo_url(args))
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def cmd_dump(args: argparse.Namespace) -> int:
    try:
        dump_file(_repo_url(args), args.path, sys.stdout.buffer, args.snapshot_id)
        sys.stdout.buffer.flush()
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_mount(args: argparse.Namespace) -> int:
    try:
        mount_snapshot(
            _repo_url(args),
            args.mountpoint,
            snapshot_id=args.snapshot_id,
            owner_is_root=args.owner_root or args.config.owner_is_root,
            allow_other=args.allow_other,
            conn_limit=args.config.conn_limit,
        )
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blob-mount", description="Mount backup snapshots as read-only filesystems"
    )
    parser.add_argument(
        "--repo",
        "-r",
        default=None,
        help="Repository URL (fsspec URL such as file:///path or memory://repo, "
        "or webdav:https://host/path)",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--config-path", default=None, help="JSON config file (default ~/.blob_mount/config.json)"
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="Initialize a repository")
    p_init.add_argument(
        "--remember",
        action="store_true",
        help="Save the repository URL to the config file",
    )
    p_init.set_defaults(func=cmd_init)

    p_backup = sub.add_parser("backup", help="Create a snapshot")
    p_backup.add_argument(
        "sources",
        nargs="+",
        help="One or more local file/directory paths to back up",
    )
    p_backup.set_defaults(func=cmd_backup)

    p_snapshots = sub.add_parser("snapshots", help="List snapshots")
    p_snapshots.set_defaults(func=cmd_snapshots)

    p_dump = sub.add_parser("dump", help="Write one file of a snapshot to stdout")
    p_dump.add_argument("path", help="Path of the file inside the snapshot")
    p_dump.add_argument(
        "--snapshot-id",
        "-s",
        dest="snapshot_id",
        default=None,
        help="Snapshot ID or prefix (defaults to latest)",
    )
    p_dump.set_defaults(func=cmd_dump)

    p_mount = sub.add_parser("mount", help="Mount a snapshot read-only")
    p_mount.add_argument("mountpoint", help="Existing empty directory")
    p_mount.add_argument(
        "--snapshot-id",
        "-s",
        dest="snapshot_id",
        default=None,
        help="Snapshot ID or prefix (defaults to latest)",
    )
    p_mount.add_argument(
        "--owner-root",
        action="store_true",
        help="Do not report file owners; the kernel shows the mounting user",
    )
    p_mount.add_argument(
        "--allow-other", action="store_true", help="Allow other users to access the mount"
    )
    p_mount.set_defaults(func=cmd_mount)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    args.config_path = args.config_path or DEFAULT_CONFIG_PATH
    args.config = load_config(args.config_path)
    setup_logging(args.log_level or args.config.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())

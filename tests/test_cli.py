"""Tests for the command line and the configuration layer."""

import json
import logging

import pytest

from blob_mount.cli import build_parser, main
from blob_mount.config import DEFAULT_CONN_LIMIT, MountConfig, load_config, save_config
from blob_mount.log import setup_logging

ENV_VARS = (
    "BLOB_MOUNT_REPOSITORY",
    "BLOB_MOUNT_OWNER_IS_ROOT",
    "BLOB_MOUNT_LOG_LEVEL",
    "BLOB_MOUNT_CONN_LIMIT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "cfg" / "config.json")


class TestConfig:
    def test_defaults_without_file(self, config_path):
        cfg = load_config(config_path)
        assert cfg == MountConfig()
        assert cfg.conn_limit == DEFAULT_CONN_LIMIT == 10

    def test_values_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "repository": "memory://from-file",
                    "owner_is_root": True,
                    "log_level": "debug",
                    "conn_limit": 4,
                }
            )
        )
        cfg = load_config(str(path))
        assert cfg.repository == "memory://from-file"
        assert cfg.owner_is_root is True
        assert cfg.log_level == "DEBUG"
        assert cfg.conn_limit == 4

    def test_env_overrides_file(self, config_path, monkeypatch):
        save_config(MountConfig(repository="memory://from-file", conn_limit=4), config_path)
        monkeypatch.setenv("BLOB_MOUNT_REPOSITORY", "memory://from-env")
        monkeypatch.setenv("BLOB_MOUNT_OWNER_IS_ROOT", "yes")
        monkeypatch.setenv("BLOB_MOUNT_CONN_LIMIT", "2")
        cfg = load_config(config_path)
        assert cfg.repository == "memory://from-env"
        assert cfg.owner_is_root is True
        assert cfg.conn_limit == 2

    def test_save_round_trip(self, config_path):
        cfg = MountConfig(repository="webdav:https://dav.example/r", log_level="WARNING")
        save_config(cfg, config_path)
        assert load_config(config_path) == cfg


class TestLogging:
    def test_level_from_argument(self):
        logger = setup_logging("debug")
        assert logger.name == "blob_mount"
        assert logger.level == logging.DEBUG

    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("BLOB_MOUNT_LOG_LEVEL", "WARNING")
        assert setup_logging().level == logging.WARNING

    def test_single_handler(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1
        assert logger.propagate is False


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_mount_options(self):
        args = build_parser().parse_args(
            ["-r", "memory://x", "mount", "/mnt/snap", "-s", "abc", "--owner-root"]
        )
        assert args.repo == "memory://x"
        assert args.mountpoint == "/mnt/snap"
        assert args.snapshot_id == "abc"
        assert args.owner_root is True
        assert args.allow_other is False


class TestCommands:
    def test_init_backup_snapshots_dump(self, unique_memory_url, config_path, tmp_path, capsysbinary):
        source = tmp_path / "notes.txt"
        source.write_bytes(b"remember the milk\n")
        base = ["--repo", unique_memory_url, "--config-path", config_path]

        assert main(base + ["init"]) == 0
        assert main(base + ["backup", str(source)]) == 0
        assert main(base + ["snapshots"]) == 0
        assert b"Snapshot ID" in capsysbinary.readouterr().out

        assert main(base + ["dump", "notes.txt"]) == 0
        assert capsysbinary.readouterr().out.endswith(b"remember the milk\n")

    def test_missing_repository(self, config_path, capsys):
        assert main(["--config-path", config_path, "snapshots"]) == 1
        assert "Provide a repository" in capsys.readouterr().out

    def test_repository_from_env(self, unique_memory_url, config_path, monkeypatch, capsys):
        monkeypatch.setenv("BLOB_MOUNT_REPOSITORY", unique_memory_url)
        assert main(["--config-path", config_path, "init"]) == 0
        assert unique_memory_url in capsys.readouterr().out

    def test_init_remember_saves_config(self, unique_memory_url, config_path):
        assert main(["--repo", unique_memory_url, "--config-path", config_path, "init", "--remember"]) == 0
        assert load_config(config_path).repository == unique_memory_url

    def test_init_existing_fails(self, unique_memory_url, config_path, capsys):
        base = ["--repo", unique_memory_url, "--config-path", config_path]
        assert main(base + ["init"]) == 0
        assert main(base + ["init"]) == 1
        assert "already exists" in capsys.readouterr().out

    def test_dump_missing_file_reports_on_stderr(self, unique_memory_url, config_path, tmp_path, capsys):
        source = tmp_path / "a.txt"
        source.write_bytes(b"a")
        base = ["--repo", unique_memory_url, "--config-path", config_path]
        main(base + ["init"])
        main(base + ["backup", str(source)])
        capsys.readouterr()

        assert main(base + ["dump", "b.txt"]) == 1
        assert "not found in snapshot" in capsys.readouterr().err

    def test_mount_missing_mountpoint(self, unique_memory_url, config_path, tmp_path, capsys):
        try:
            import fuse  # noqa: F401
        except (ImportError, OSError, EnvironmentError):
            pytest.skip("fusepy or libfuse not available")
        source = tmp_path / "a.txt"
        source.write_bytes(b"a")
        base = ["--repo", unique_memory_url, "--config-path", config_path]
        main(base + ["init"])
        main(base + ["backup", str(source)])
        capsys.readouterr()

        assert main(base + ["mount", str(tmp_path / "nope")]) == 1
        assert "Mountpoint is not a directory" in capsys.readouterr().out

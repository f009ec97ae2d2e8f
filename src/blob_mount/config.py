import json
import os
from dataclasses import dataclass, asdict
from typing import Optional

DEFAULT_CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".blob_mount")
DEFAULT_CONFIG_PATH = os.path.join(DEFAULT_CONFIG_DIR, "config.json")

DEFAULT_CONN_LIMIT = 10

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class MountConfig:
    repository: Optional[str] = None
    owner_is_root: bool = False
    log_level: str = "INFO"
    conn_limit: int = DEFAULT_CONN_LIMIT


def _apply_env(cfg: MountConfig) -> MountConfig:
    repo = os.environ.get("BLOB_MOUNT_REPOSITORY")
    if repo:
        cfg.repository = repo
    owner = os.environ.get("BLOB_MOUNT_OWNER_IS_ROOT")
    if owner is not None:
        cfg.owner_is_root = owner.strip().lower() in _TRUTHY
    level = os.environ.get("BLOB_MOUNT_LOG_LEVEL")
    if level:
        cfg.log_level = level.upper()
    limit = os.environ.get("BLOB_MOUNT_CONN_LIMIT")
    if limit:
        cfg.conn_limit = int(limit)
    return cfg


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> MountConfig:
    """
    Load settings from an optional JSON file, then apply environment overrides.

    Args:
        config_path: Path to the JSON config file. A missing file is fine.

    Returns:
        The merged MountConfig.
    """
    cfg = MountConfig()
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        cfg = MountConfig(
            repository=data.get("repository"),
            owner_is_root=bool(data.get("owner_is_root", False)),
            log_level=str(data.get("log_level", "INFO")).upper(),
            conn_limit=int(data.get("conn_limit", DEFAULT_CONN_LIMIT)),
        )
    return _apply_env(cfg)


def save_config(cfg: MountConfig, config_path: str = DEFAULT_CONFIG_PATH) -> None:
    os.makedirs(os.path.dirname(config_path), exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(asdict(cfg), f, indent=2)

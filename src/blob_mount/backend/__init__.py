from .base import Backend, FileType, Handle, FileInfo
from .local import FsspecBackend
from .webdav import WebDAVBackend, WebDAVConfig, parse_config, parse_multistatus

__all__ = [
    "Backend",
    "FileType",
    "Handle",
    "FileInfo",
    "FsspecBackend",
    "WebDAVBackend",
    "WebDAVConfig",
    "parse_config",
    "parse_multistatus",
]

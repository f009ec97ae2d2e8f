"""
Exception hierarchy for blob-mount.

Every error carries a human-readable message and an optional context dict
that is rendered into ``str()`` for log lines.
"""

from __future__ import annotations

from typing import Any


class BlobMountError(Exception):
    """Base exception for all blob-mount errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class InvalidHandle(BlobMountError):
    """Raised when a backend handle has an unknown type or an empty name."""


class ChunkSizeLookupError(BlobMountError):
    """Raised when the size of a content chunk cannot be determined."""


class ChunkLoadError(BlobMountError):
    """Raised when the bytes of a content chunk cannot be loaded."""


class OffsetOutOfRangeError(BlobMountError):
    """Raised when a read starts beyond the end of the file."""


class RemoteProtocolError(BlobMountError):
    """Raised on an unexpected HTTP status, a transport failure or a
    malformed response from a remote backend.

    Context may include:
        - status_code: The HTTP status the server answered with
        - url: The resource that was requested
    """

    @property
    def status_code(self) -> int | None:
        return self.context.get("status_code")


class SizeMismatchError(RemoteProtocolError):
    """Raised when a remote backend reports a negative content length."""

"""Split file content into content-addressed blobs."""

import hashlib
from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator, NamedTuple

DEFAULT_CHUNK_SIZE = 1024 * 1024


class Chunk(NamedTuple):
    data: bytes
    blob_id: str


def blob_id_for(data: bytes) -> str:
    """Content address of a blob: lowercase SHA-256 hex."""
    return hashlib.sha256(data).hexdigest()


class ChunkingStrategy(ABC):
    """Base class for chunking strategies."""

    @abstractmethod
    def chunk(self, file_obj: BinaryIO) -> Iterator[Chunk]:
        """
        Split a binary stream into blobs.

        Args:
            file_obj: Open file object in binary mode.

        Yields:
            Chunk(data, blob_id) in file order.
        """


class FixedSizeChunker(ChunkingStrategy):
    """Cuts a stream every ``chunk_size`` bytes; the last blob may be shorter."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def chunk(self, file_obj: BinaryIO) -> Iterator[Chunk]:
        while True:
            data = file_obj.read(self.chunk_size)
            if not data:
                break
            yield Chunk(data, blob_id_for(data))

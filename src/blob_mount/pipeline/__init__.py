from .chunking import ChunkingStrategy, FixedSizeChunker, Chunk, blob_id_for

__all__ = ["ChunkingStrategy", "FixedSizeChunker", "Chunk", "blob_id_for"]

"""Object storage interface and key naming.

This package consolidates the chunk store protocol, its in-memory and S3
implementations, and the key naming convention for source chunks and
published tilesets. It provides a stable import location for chunk store
dependency injection throughout the pipeline.

Example:
    Build the production store from settings:
        >>> from tilebuild.storage import get_chunk_store
        >>> store = get_chunk_store(settings)
"""

from tilebuild.storage.chunk_store import (
    ChunkStoreProtocol,
    InMemoryChunkStore,
    S3ChunkStore,
    get_chunk_store,
)

__all__ = [
    "ChunkStoreProtocol",
    "InMemoryChunkStore",
    "S3ChunkStore",
    "get_chunk_store",
]

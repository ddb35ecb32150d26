"""Memory package."""

from blob_mirror.memory.content_store import ContentStore, InMemoryContentStore
from blob_mirror.memory.redis_connection import RedisConnection
from blob_mirror.memory.redis_store import RedisContentStore

__all__ = [
    "ContentStore",
    "InMemoryContentStore",
    "RedisConnection",
    "RedisContentStore",
]

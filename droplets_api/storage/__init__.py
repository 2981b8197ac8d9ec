"""Storage module with factories for the database, KV namespaces and blob store."""

from loguru import logger

from .blobs import LocalBlobStore, S3BlobStore, create_blob_store
from .kv import InMemoryKV, RedisKV
from .protocols import BlobObject, BlobStore, KVStore
from .sqlite import SQLDatabase


def create_kv(namespace: str, redis_url: str | None = None) -> KVStore:
    """Create a KV namespace.

    Args:
        namespace: Namespace name (``cache`` or ``creations``).
        redis_url: Redis URL. In-memory storage is used when not provided.

    Returns:
        KV store instance.
    """
    if redis_url:
        logger.info(f"Creating Redis KV namespace '{namespace}'")
        return RedisKV(redis_url, namespace)
    logger.info(f"Creating in-memory KV namespace '{namespace}'")
    return InMemoryKV(namespace)


def create_database(database_url: str) -> SQLDatabase:
    """Create the relational database wrapper."""
    logger.info("Creating SQL database")
    return SQLDatabase(database_url)


__all__ = [
    "BlobObject",
    "BlobStore",
    "InMemoryKV",
    "KVStore",
    "LocalBlobStore",
    "RedisKV",
    "S3BlobStore",
    "SQLDatabase",
    "create_blob_store",
    "create_database",
    "create_kv",
]

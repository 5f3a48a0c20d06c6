"""Result store factory."""

import logging

from ..config import StorageBackend, StorageConfig
from .base import ResultStore
from .memory_store import MemoryResultStore
from .redis_store import RedisResultStore

logger = logging.getLogger(__name__)


def create_result_store(config: StorageConfig) -> ResultStore:
    """Create result store instance based on configuration.

    Raises:
        ValueError: If the storage backend is not supported
    """
    if config.backend == StorageBackend.MEMORY:
        logger.info("Creating in-memory result store")
        return MemoryResultStore()

    elif config.backend == StorageBackend.REDIS:
        logger.info("Creating Redis result store")
        return RedisResultStore(
            redis_url=config.redis_url,
            password=config.redis_password,
            key_prefix=config.key_prefix,
        )

    else:
        raise ValueError(f"Unsupported storage backend: {config.backend}")

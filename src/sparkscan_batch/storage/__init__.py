"""Storage package for the Sparkscan Batch Analyzer.

This package holds the job and address result records and the result store
backends that persist them (in-memory and Redis).
"""

from .base import ResultStore
from .memory_store import MemoryResultStore
from .records import (
    AddressResult,
    AddressStatus,
    Job,
    JobSpec,
    JobStatus,
    ResultOrder,
    can_transition_address,
    can_transition_job,
)
from .redis_store import RedisResultStore
from .store_factory import create_result_store

__all__ = [
    # Store interface and implementations
    "ResultStore",
    "MemoryResultStore",
    "RedisResultStore",
    "create_result_store",
    # Records
    "Job",
    "JobSpec",
    "JobStatus",
    "AddressResult",
    "AddressStatus",
    "ResultOrder",
    # Utility functions
    "can_transition_job",
    "can_transition_address",
]

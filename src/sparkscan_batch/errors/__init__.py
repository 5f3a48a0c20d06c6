"""Error package for the Sparkscan Batch Analyzer.

Every error raised by the package derives from ``SparkBatchError`` and carries
an error code, severity, category and context for logging and display:

    from sparkscan_batch.errors import JobNotFoundError

    try:
        job = await controller.get_job(job_id)
    except JobNotFoundError as e:
        print(e.user_message)
"""

from .exceptions import (
    AddressResultNotFoundError,
    BatchRunnerError,
    ConfigurationError,
    ErrorCategory,
    ErrorSeverity,
    InvalidJobStateError,
    JobNotFoundError,
    SparkBatchError,
    StoreConnectionError,
    StoreError,
    StoreOperationError,
)

__all__ = [
    # Base error classes
    "SparkBatchError",
    "ErrorSeverity",
    "ErrorCategory",
    # Configuration errors
    "ConfigurationError",
    # Storage errors
    "StoreError",
    "StoreConnectionError",
    "StoreOperationError",
    # Job lifecycle errors
    "JobNotFoundError",
    "AddressResultNotFoundError",
    "InvalidJobStateError",
    "BatchRunnerError",
]

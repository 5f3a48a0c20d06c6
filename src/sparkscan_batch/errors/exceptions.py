"""Custom exception hierarchy for structured error handling."""

import re
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification."""

    CONFIGURATION = "configuration"
    STORAGE = "storage"
    USER_INPUT = "user_input"
    BUSINESS_LOGIC = "business_logic"
    SYSTEM_RESOURCE = "system_resource"
    UNKNOWN = "unknown"


class SparkBatchError(Exception):
    """
    Base exception class for all Sparkscan batch errors.

    Carries structured error information:
    - Error code and message
    - Severity and category classification
    - Additional context data
    """

    def __init__(
            self,
            message: str,
            error_code: Optional[str] = None,
            severity: ErrorSeverity = ErrorSeverity.MEDIUM,
            category: ErrorCategory = ErrorCategory.UNKNOWN,
            context: Optional[Dict[str, Any]] = None,
            original_error: Optional[Exception] = None,
            user_message: Optional[str] = None
    ):
        """Initialize error with structured information.

        Args:
            message: Technical error message
            error_code: Unique error code for identification
            severity: Error severity level
            category: Error category
            context: Additional context data
            original_error: Original exception that caused this error
            user_message: User-friendly error message
        """
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.original_error = original_error
        self.user_message = user_message or self._generate_user_message()

        if original_error:
            self.context['original_error_type'] = type(original_error).__name__
            self.context['original_error_message'] = str(original_error)

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class."""
        class_name = self.__class__.__name__
        # CamelCase -> UPPER_SNAKE_CASE
        error_code = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', class_name)
        error_code = re.sub('([a-z0-9])([A-Z])', r'\1_\2', error_code).upper()
        return error_code

    def _generate_user_message(self) -> str:
        """Generate user-friendly message."""
        return f"An error occurred: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            'error_code': self.error_code,
            'message': self.message,
            'user_message': self.user_message,
            'severity': self.severity.value,
            'category': self.category.value,
            'context': self.context,
            'exception_type': self.__class__.__name__
        }

    def is_critical(self) -> bool:
        """Check if error is critical."""
        return self.severity == ErrorSeverity.CRITICAL


class ConfigurationError(SparkBatchError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            context={'config_key': config_key} if config_key else None,
            **kwargs
        )

    def _generate_user_message(self) -> str:
        if 'config_key' in self.context:
            return f"Configuration error with '{self.context['config_key']}': {self.message}"
        return f"Configuration error: {self.message}"


# Storage errors

class StoreError(SparkBatchError):
    """Result store errors."""

    def __init__(self, message: str, backend: Optional[str] = None, **kwargs):
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            context={'backend': backend} if backend else None,
            **kwargs
        )

    def _generate_user_message(self) -> str:
        return "Job storage is unavailable. Progress may not have been saved."


class StoreConnectionError(StoreError):
    """Store backend could not be reached."""

    def __init__(self, message: str, backend: Optional[str] = None, **kwargs):
        super().__init__(message, backend=backend, severity=ErrorSeverity.CRITICAL, **kwargs)


class StoreOperationError(StoreError):
    """A single store read or write failed."""

    pass


# Job lifecycle errors

class JobNotFoundError(SparkBatchError):
    """Requested batch job does not exist."""

    def __init__(self, job_id: str, **kwargs):
        super().__init__(
            message=f"Batch job not found: {job_id}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.USER_INPUT,
            context={'job_id': job_id},
            **kwargs
        )
        self.job_id = job_id

    def _generate_user_message(self) -> str:
        return f"Batch job '{self.context['job_id']}' was not found."


class AddressResultNotFoundError(SparkBatchError):
    """Address is not part of the given batch job."""

    def __init__(self, job_id: str, address: str, **kwargs):
        super().__init__(
            message=f"Address result not found: {address} (job {job_id})",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.USER_INPUT,
            context={'job_id': job_id, 'address': address},
            **kwargs
        )


class InvalidJobStateError(SparkBatchError):
    """Operation is not allowed in the job's (or result's) current state."""

    def __init__(self, message: str, job_id: Optional[str] = None, status: Optional[str] = None, **kwargs):
        context = {}
        if job_id:
            context['job_id'] = job_id
        if status:
            context['status'] = status

        super().__init__(
            message=message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.BUSINESS_LOGIC,
            context=context,
            **kwargs
        )


class BatchRunnerError(SparkBatchError):
    """Batch run aborted before the address list was completed."""

    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.SYSTEM_RESOURCE,
            context={'job_id': job_id} if job_id else None,
            **kwargs
        )

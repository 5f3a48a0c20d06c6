"""Job and address result records kept by the result store."""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Batch job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class AddressStatus(str, Enum):
    """Per-address lookup states."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AddressStatus.SUCCESS, AddressStatus.FAILED)


_JOB_ORDER = [JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.COMPLETED]
_ADDRESS_ORDER = [AddressStatus.PENDING, AddressStatus.PROCESSING, AddressStatus.SUCCESS]


def can_transition_job(current: JobStatus, new: JobStatus) -> bool:
    """Statuses only move forward; terminal states are final."""
    if current.is_terminal:
        return current == new
    if new == JobStatus.FAILED:
        return True
    return _JOB_ORDER.index(new) >= _JOB_ORDER.index(current)


def can_transition_address(current: AddressStatus, new: AddressStatus) -> bool:
    if current.is_terminal:
        return current == new
    if new == AddressStatus.FAILED:
        return True
    return _ADDRESS_ORDER.index(new) >= _ADDRESS_ORDER.index(current)


class ResultOrder(str, Enum):
    """Ordering of address result listings."""

    INSERTION = "insertion"
    PROCESSED = "processed"


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_str(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class JobSpec:
    """Parameters of a new batch job."""

    name: str
    rate_limit: int = 5
    target_token_address: str | None = None
    total_addresses: int = 0

    def __post_init__(self):
        if self.rate_limit < 1:
            raise ValueError("rate_limit must be at least 1")
        if self.total_addresses < 0:
            raise ValueError("total_addresses must not be negative")


@dataclass
class Job:
    """One batch request covering a fixed address list."""

    id: str
    name: str
    rate_limit: int = 5
    target_token_address: str | None = None
    status: JobStatus = JobStatus.PENDING
    total_addresses: int = 0
    processed_addresses: int = 0
    successful_lookups: int = 0
    failed_lookups: int = 0
    created_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None

    @classmethod
    def from_spec(cls, spec: JobSpec) -> "Job":
        return cls(
            id=new_id(),
            name=spec.name,
            rate_limit=spec.rate_limit,
            target_token_address=spec.target_token_address,
            total_addresses=spec.total_addresses,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percentage(self) -> int:
        if self.total_addresses == 0:
            return 0
        return round(self.processed_addresses / self.total_addresses * 100)

    def counters_consistent(self) -> bool:
        return (
            self.processed_addresses == self.successful_lookups + self.failed_lookups
            and self.processed_addresses <= self.total_addresses
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = _dt_to_str(self.created_at)
        data["completed_at"] = _dt_to_str(self.completed_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        values = {f.name: data[f.name] for f in fields(cls) if f.name in data}
        values["status"] = JobStatus(values.get("status", JobStatus.PENDING))
        values["created_at"] = _dt_from_str(values.get("created_at")) or utc_now()
        values["completed_at"] = _dt_from_str(values.get("completed_at"))
        return cls(**values)


@dataclass
class AddressResult:
    """Per-address outcome record within a job."""

    id: str
    job_id: str
    address: str
    sequence: int = 0
    status: AddressStatus = AddressStatus.PENDING
    data: Any = None
    error_message: str | None = None
    processed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["processed_at"] = _dt_to_str(self.processed_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AddressResult":
        values = {f.name: data[f.name] for f in fields(cls) if f.name in data}
        values["status"] = AddressStatus(values.get("status", AddressStatus.PENDING))
        values["processed_at"] = _dt_from_str(values.get("processed_at"))
        return cls(**values)


JOB_FIELDS = frozenset(f.name for f in fields(Job)) - {"id", "created_at"}
ADDRESS_RESULT_FIELDS = frozenset(f.name for f in fields(AddressResult)) - {"id", "job_id", "address", "sequence"}

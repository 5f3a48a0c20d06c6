"""Abstract result store interface for job and address result persistence."""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..errors import InvalidJobStateError, StoreOperationError
from .records import (
    ADDRESS_RESULT_FIELDS,
    JOB_FIELDS,
    AddressResult,
    AddressStatus,
    Job,
    JobSpec,
    JobStatus,
    ResultOrder,
    can_transition_address,
    can_transition_job,
    utc_now,
)


class ResultStore(ABC):
    """Abstract interface for result store implementations.

    Every write is visible to the next read of the same key. No operation
    spans several keys transactionally.
    """

    backend_name = "abstract"

    @abstractmethod
    async def create_job(self, spec: JobSpec) -> Job:
        """Create and persist a new job in ``pending`` state."""
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        """Get a job by id, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_jobs(self) -> list[Job]:
        """List all jobs, newest first."""
        pass

    @abstractmethod
    async def update_job(self, job_id: str, **fields: Any) -> Job | None:
        """Apply a partial update to a job.

        Returns:
            The updated job, or None if it does not exist
        """
        pass

    @abstractmethod
    async def create_address_result(self, job_id: str, address: str) -> AddressResult:
        """Create a ``pending`` result row for one address of a job."""
        pass

    @abstractmethod
    async def list_address_results(
        self, job_id: str, order: ResultOrder = ResultOrder.INSERTION
    ) -> list[AddressResult]:
        """List the result rows of a job.

        Args:
            job_id: Owning job
            order: ``INSERTION`` for input order, ``PROCESSED`` for processing time
        """
        pass

    @abstractmethod
    async def update_address_result(self, result_id: str, **fields: Any) -> AddressResult | None:
        """Apply a partial update to a result row.

        Returns:
            The updated row, or None if it does not exist
        """
        pass

    async def health_check(self) -> bool:
        """Check that the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None


def apply_job_update(job: Job, updates: dict[str, Any]) -> Job:
    """Return ``job`` with ``updates`` applied, enforcing forward-only status."""
    unknown = set(updates) - JOB_FIELDS
    if unknown:
        raise StoreOperationError(f"Unknown job fields: {sorted(unknown)}")

    if job.status.is_terminal:
        raise InvalidJobStateError(
            f"Job {job.id} is {job.status.value} and can no longer be modified",
            job_id=job.id,
            status=job.status.value,
        )

    if "status" in updates:
        new_status = JobStatus(updates["status"])
        if not can_transition_job(job.status, new_status):
            raise InvalidJobStateError(
                f"Job {job.id} cannot move from {job.status.value} to {new_status.value}",
                job_id=job.id,
                status=job.status.value,
            )
        updates = {**updates, "status": new_status}

    return replace(job, **updates)


def apply_address_update(result: AddressResult, updates: dict[str, Any]) -> AddressResult:
    """Return ``result`` with ``updates`` applied, stamping ``processed_at``."""
    unknown = set(updates) - ADDRESS_RESULT_FIELDS
    if unknown:
        raise StoreOperationError(f"Unknown address result fields: {sorted(unknown)}")

    if result.status.is_terminal:
        raise InvalidJobStateError(
            f"Address {result.address} is already {result.status.value}",
            job_id=result.job_id,
            status=result.status.value,
        )

    updates = dict(updates)
    if "status" in updates:
        new_status = AddressStatus(updates["status"])
        if not can_transition_address(result.status, new_status):
            raise InvalidJobStateError(
                f"Address {result.address} cannot move from {result.status.value} to {new_status.value}",
                job_id=result.job_id,
                status=result.status.value,
            )
        updates["status"] = new_status

    updates.setdefault("processed_at", utc_now())
    return replace(result, **updates)


def sort_results(results: list[AddressResult], order: ResultOrder) -> list[AddressResult]:
    if order == ResultOrder.PROCESSED:
        # Rows not processed yet go last, in input order
        return sorted(
            results,
            key=lambda r: (r.processed_at is None, r.processed_at or datetime.min, r.sequence),
        )
    return sorted(results, key=lambda r: r.sequence)

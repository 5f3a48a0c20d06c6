"""In-process result store."""

import copy
import logging
from typing import Any

from .base import ResultStore, apply_address_update, apply_job_update, sort_results
from .records import AddressResult, Job, JobSpec, ResultOrder, new_id

logger = logging.getLogger(__name__)


class MemoryResultStore(ResultStore):
    """Dictionary-backed store; state lives as long as the process.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    backend_name = "memory"

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._results: dict[str, AddressResult] = {}
        self._job_results: dict[str, list[str]] = {}

    async def create_job(self, spec: JobSpec) -> Job:
        job = Job.from_spec(spec)
        self._jobs[job.id] = job
        self._job_results[job.id] = []
        logger.debug(f"Created job {job.id} ({job.name})")
        return copy.deepcopy(job)

    async def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def list_jobs(self) -> list[Job]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        return [copy.deepcopy(job) for job in jobs]

    async def update_job(self, job_id: str, **fields: Any) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None

        updated = apply_job_update(job, copy.deepcopy(fields))
        self._jobs[job_id] = updated
        return copy.deepcopy(updated)

    async def create_address_result(self, job_id: str, address: str) -> AddressResult:
        result_ids = self._job_results.setdefault(job_id, [])
        result = AddressResult(
            id=new_id(),
            job_id=job_id,
            address=address,
            sequence=len(result_ids),
        )
        self._results[result.id] = result
        result_ids.append(result.id)
        return copy.deepcopy(result)

    async def list_address_results(
        self, job_id: str, order: ResultOrder = ResultOrder.INSERTION
    ) -> list[AddressResult]:
        results = [self._results[result_id] for result_id in self._job_results.get(job_id, [])]
        return [copy.deepcopy(result) for result in sort_results(results, order)]

    async def update_address_result(self, result_id: str, **fields: Any) -> AddressResult | None:
        result = self._results.get(result_id)
        if result is None:
            return None

        updated = apply_address_update(result, copy.deepcopy(fields))
        self._results[result_id] = updated
        return copy.deepcopy(updated)

    def get_stats(self) -> dict[str, Any]:
        return {
            "backend": self.backend_name,
            "jobs": len(self._jobs),
            "address_results": len(self._results),
        }

"""Job controller: creates jobs, starts background runs and exposes job state."""

import asyncio
import functools
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from ..clients import SparkscanClient, is_valid_spark_address
from ..config import ProcessingConfig
from ..errors import AddressResultNotFoundError, InvalidJobStateError, JobNotFoundError
from ..storage import AddressResult, AddressStatus, Job, JobSpec, JobStatus, ResultOrder, ResultStore
from ..storage.records import utc_now
from ..utils import RateGate
from .batch_runner import BatchRunner
from .batch_types import ProgressCallback

logger = logging.getLogger(__name__)


def normalize_address_list(addresses: Iterable[str]) -> List[str]:
    """Strip, drop blanks and invalid addresses, collapse duplicates keeping first occurrence."""
    seen = set()
    normalized = []
    for raw in addresses:
        if not isinstance(raw, str):
            continue
        address = raw.strip()
        if not address or address in seen:
            continue
        if not is_valid_spark_address(address):
            logger.debug(f"Skipping invalid address: {address}")
            continue
        seen.add(address)
        normalized.append(address)
    return normalized


class JobController:
    """Entry point for creating, starting and observing batch jobs.

    ``start_job`` returns as soon as the address rows exist; the run itself
    continues as a background task. Every job gets its own rate gate while
    all jobs share the lookup client.
    """

    def __init__(
        self,
        store: ResultStore,
        client: SparkscanClient,
        processing: Optional[ProcessingConfig] = None,
    ):
        """Initialize job controller.

        Args:
            store: Result store
            client: Shared lookup client
            processing: Processing defaults (rate limit, first-call delay)
        """
        self.store = store
        self.client = client
        self.processing = processing or ProcessingConfig()

        self._tasks: Dict[str, asyncio.Task] = {}
        self._starting: Set[str] = set()
        self._backend_jobs: Set[str] = set()
        self._callbacks: List[ProgressCallback] = []

    def subscribe(self, callback: ProgressCallback) -> None:
        """Register a progress observer for every job started afterwards."""
        self._callbacks.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def create_job(
        self,
        name: Optional[str] = None,
        rate_limit: Optional[int] = None,
        target_token_address: Optional[str] = None,
        total_addresses: int = 0,
    ) -> Job:
        """Create a pending job.

        Args:
            name: Display name (defaults to a timestamped name)
            rate_limit: Lookups per second (defaults to configuration)
            target_token_address: Token whose balance the export reports
            total_addresses: Expected number of addresses
        """
        spec = JobSpec(
            name=name or f"Batch {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            rate_limit=rate_limit or self.processing.default_rate_limit,
            target_token_address=target_token_address or None,
            total_addresses=total_addresses,
        )
        job = await self.store.create_job(spec)
        logger.info(f"📝 Created batch job {job.id} ({job.name}), rate limit {job.rate_limit}/s")
        return job

    async def start_job(self, job_id: str, addresses: Iterable[str], run: bool = True) -> Job:
        """Create the pending address rows and launch the background run.

        Args:
            job_id: Pending job
            addresses: Raw address list; invalid and duplicate entries are dropped
            run: Launch the backend run; False leaves lookups to ``submit_result`` callers

        Returns:
            The job as it is right after initialization

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobStateError: If the job was already started
            ValueError: If no valid address remains

        A store error while the rows are being created marks the job failed
        and is re-raised.
        """
        # Claimed before the first await so overlapping calls cannot both initialize
        if job_id in self._starting or job_id in self._backend_jobs:
            raise InvalidJobStateError(f"Job {job_id} has already been started", job_id=job_id)
        self._starting.add(job_id)
        try:
            return await self._initialize_job(job_id, addresses, run)
        finally:
            self._starting.discard(job_id)

    async def _initialize_job(self, job_id: str, addresses: Iterable[str], run: bool) -> Job:
        job = await self.get_job(job_id)
        if job.status != JobStatus.PENDING:
            raise InvalidJobStateError(f"Job {job_id} has already been started", job_id=job_id, status=job.status.value)

        existing = await self.store.list_address_results(job_id)
        if existing:
            raise InvalidJobStateError(f"Job {job_id} is already initialized", job_id=job_id, status=job.status.value)

        address_list = normalize_address_list(addresses)
        if not address_list:
            raise ValueError("No valid addresses to process")

        logger.info(f"Initializing batch job {job_id} with {len(address_list)} addresses")
        try:
            for address in address_list:
                await self.store.create_address_result(job_id, address)
            job = await self.store.update_job(job_id, total_addresses=len(address_list))
        except Exception as e:
            logger.error(f"❌ Failed to initialize batch job {job_id}: {e}")
            await self._mark_failed(job_id)
            raise

        if run:
            runner = self._create_runner(job)
            task = asyncio.create_task(runner.run(), name=f"batch-run-{job_id}")
            task.add_done_callback(functools.partial(self._on_run_done, job_id))
            self._tasks[job_id] = task
            self._backend_jobs.add(job_id)
        else:
            job = await self.store.update_job(job_id, status=JobStatus.PROCESSING)

        return job

    async def _mark_failed(self, job_id: str) -> None:
        try:
            await self.store.update_job(job_id, status=JobStatus.FAILED, completed_at=utc_now())
        except Exception as e:
            logger.error(f"Could not mark batch job {job_id} as failed: {e}")

    def _create_runner(self, job: Job) -> BatchRunner:
        rate_gate = RateGate(job.rate_limit, delay_first=self.processing.delay_first_call)
        return BatchRunner(
            job_id=job.id,
            store=self.store,
            client=self.client,
            rate_gate=rate_gate,
            progress_callbacks=list(self._callbacks),
        )

    def _on_run_done(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            logger.warning(f"Batch task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Batch task {task.get_name()} failed: {error}")

    async def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Wait for the background run of a job to finish and return the job.

        Run errors are reflected in the job status rather than raised.
        """
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await self.get_job(job_id)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def run_job(
        self,
        addresses: Iterable[str],
        name: Optional[str] = None,
        rate_limit: Optional[int] = None,
        target_token_address: Optional[str] = None,
    ) -> Job:
        """Create, start and wait for a job in one call."""
        address_list = list(addresses)
        job = await self.create_job(
            name=name,
            rate_limit=rate_limit,
            target_token_address=target_token_address,
            total_addresses=len(address_list),
        )
        await self.start_job(job.id, address_list)
        return await self.wait_for_job(job.id)

    async def submit_result(
        self,
        job_id: str,
        address: str,
        success: bool,
        data: Any = None,
        error_message: Optional[str] = None,
    ) -> Job:
        """Record one lookup outcome performed by an external caller.

        Counters are recomputed from the rows and the job completes once
        every row is terminal.

        Raises:
            JobNotFoundError: If the job does not exist
            AddressResultNotFoundError: If the address is not part of the job
            InvalidJobStateError: If the job is terminal or the row already settled
        """
        job = await self.get_job(job_id)
        if job.is_terminal:
            raise InvalidJobStateError(f"Job {job_id} is {job.status.value}", job_id=job_id, status=job.status.value)
        if job_id in self._backend_jobs:
            raise InvalidJobStateError(
                f"Job {job_id} is processed by the backend and does not accept submitted results",
                job_id=job_id,
                status=job.status.value,
            )

        results = await self.store.list_address_results(job_id)
        entry = next((r for r in results if r.address == address), None)
        if entry is None:
            raise AddressResultNotFoundError(job_id, address)

        if success:
            await self.store.update_address_result(
                entry.id, status=AddressStatus.SUCCESS, data=data, error_message=None
            )
        else:
            await self.store.update_address_result(
                entry.id,
                status=AddressStatus.FAILED,
                data=None,
                error_message=error_message or "Unknown error",
            )

        results = await self.store.list_address_results(job_id)
        successful = sum(1 for r in results if r.status == AddressStatus.SUCCESS)
        failed = sum(1 for r in results if r.status == AddressStatus.FAILED)
        processed = successful + failed

        updates: Dict[str, Any] = {
            "processed_addresses": processed,
            "successful_lookups": successful,
            "failed_lookups": failed,
        }
        if job.status == JobStatus.PENDING:
            updates["status"] = JobStatus.PROCESSING
        if processed >= len(results):
            updates["status"] = JobStatus.COMPLETED
            updates["completed_at"] = utc_now()

        return await self.store.update_job(job_id, **updates)

    async def get_job(self, job_id: str) -> Job:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(self) -> List[Job]:
        return await self.store.list_jobs()

    async def get_results(self, job_id: str, order: ResultOrder = ResultOrder.INSERTION) -> List[AddressResult]:
        await self.get_job(job_id)
        return await self.store.list_address_results(job_id, order)

    async def shutdown(self) -> None:
        """Cancel outstanding runs and wait for them to wind down."""
        running = [task for task in self._tasks.values() if not task.done()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
            logger.info(f"Stopped {len(running)} running batch jobs")

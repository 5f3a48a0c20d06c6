"""Batch runner executing one job's address list against the lookup client."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..clients import SparkscanClient
from ..errors import BatchRunnerError, InvalidJobStateError, JobNotFoundError, StoreOperationError
from ..storage import AddressResult, AddressStatus, Job, JobStatus, ResultOrder, ResultStore
from ..storage.records import utc_now
from ..utils import RateGate
from .batch_types import ProgressCallback, ProgressEvent

logger = logging.getLogger(__name__)


def _short(address: str) -> str:
    return f"{address[:10]}...{address[-6:]}" if len(address) > 20 else address


class BatchRunner:
    """Sequential single-worker runner for one batch job.

    Addresses are processed in input order with at most one lookup in
    flight, paced by the job's rate gate. A fault on one address is recorded
    as that address's failure and never stops the run.
    """

    def __init__(
        self,
        job_id: str,
        store: ResultStore,
        client: SparkscanClient,
        rate_gate: RateGate,
        progress_callbacks: Optional[List[ProgressCallback]] = None,
    ):
        """Initialize batch runner.

        Args:
            job_id: Job to run; its address rows must already exist
            store: Result store holding the job and its rows
            client: Lookup client
            rate_gate: Pacing gate owned by this run
            progress_callbacks: Observers notified after every address
        """
        self.job_id = job_id
        self.store = store
        self.client = client
        self.rate_gate = rate_gate
        self._callbacks: List[ProgressCallback] = list(progress_callbacks or [])

        self._total = 0
        self._processed = 0
        self._successful = 0
        self._failed = 0

    def subscribe(self, callback: ProgressCallback) -> None:
        """Register a progress observer."""
        self._callbacks.append(callback)

    @property
    def counters(self) -> Dict[str, int]:
        return {
            "processed_addresses": self._processed,
            "successful_lookups": self._successful,
            "failed_lookups": self._failed,
        }

    async def run(self) -> Job:
        """Process every address of the job and mark the job terminal.

        Returns:
            The completed job

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobStateError: If the job is not pending
            BatchRunnerError: If the run aborted; the job is marked failed
        """
        results = await self._start()

        logger.info(f"🔄 Starting batch run {self.job_id}: {self._total} addresses at {self.rate_gate.calls_per_second}/s")

        try:
            for index, result in enumerate(results):
                await self._process_address(index, result)
        except asyncio.CancelledError:
            logger.warning(f"⏹️ Batch run {self.job_id} cancelled after {self._processed}/{self._total} addresses")
            await self._abort("cancelled")
            raise

        try:
            job = await self.store.update_job(
                self.job_id,
                status=JobStatus.COMPLETED,
                completed_at=utc_now(),
                **self.counters,
            )
        except Exception as e:
            await self._abort(str(e))
            raise BatchRunnerError(f"Failed to complete job {self.job_id}: {e}", job_id=self.job_id, original_error=e) from e

        if job is None:
            raise BatchRunnerError(f"Job {self.job_id} disappeared during the run", job_id=self.job_id)

        logger.info(
            f"✅ Batch run {self.job_id} completed: {self._successful} succeeded, "
            f"{self._failed} failed of {self._total}"
        )
        return job

    async def _start(self) -> List[AddressResult]:
        job = await self.store.get_job(self.job_id)
        if job is None:
            raise JobNotFoundError(self.job_id)
        if job.status != JobStatus.PENDING:
            raise InvalidJobStateError(
                f"Job {self.job_id} is {job.status.value}, expected pending",
                job_id=self.job_id,
                status=job.status.value,
            )

        try:
            results = await self.store.list_address_results(self.job_id, ResultOrder.INSERTION)
            self._total = len(results)
            await self.store.update_job(
                self.job_id,
                status=JobStatus.PROCESSING,
                total_addresses=self._total,
            )
        except Exception as e:
            await self._abort(str(e))
            raise BatchRunnerError(f"Failed to start job {self.job_id}: {e}", job_id=self.job_id, original_error=e) from e

        return results

    async def _update_result(self, result_id: str, **fields: Any) -> AddressResult:
        updated = await self.store.update_address_result(result_id, **fields)
        if updated is None:
            raise StoreOperationError(f"Address result {result_id} not found")
        return updated

    async def _process_address(self, index: int, result: AddressResult) -> None:
        """Run one address to a terminal state; never raises except on cancellation."""
        if result.is_terminal:
            # Already settled, e.g. reported through submit_result
            if result.status == AddressStatus.SUCCESS:
                self._successful += 1
            else:
                self._failed += 1
            self._processed += 1
            await self._persist_counters()
            self._emit(index, result.address, result.status, result.error_message)
            return

        status = AddressStatus.FAILED
        reason: Optional[str] = None

        try:
            await self._update_result(result.id, status=AddressStatus.PROCESSING)
            await self.rate_gate.acquire()
            outcome = await self.client.fetch(result.address)

            if outcome.ok:
                await self._update_result(
                    result.id,
                    status=AddressStatus.SUCCESS,
                    data=outcome.payload,
                    error_message=None,
                )
                status = AddressStatus.SUCCESS
                logger.info(f"✓ Address {index + 1}/{self._total} completed: {_short(result.address)}")
            else:
                reason = outcome.reason.describe()
                await self._update_result(
                    result.id,
                    status=AddressStatus.FAILED,
                    data=None,
                    error_message=reason,
                )
                logger.warning(f"✗ Address {index + 1}/{self._total} failed: {_short(result.address)} - {reason}")

        except asyncio.CancelledError:
            raise
        except Exception as e:
            status = AddressStatus.FAILED
            reason = f"Processing error: {e}"
            logger.error(f"❌ Address {index + 1}/{self._total} error: {_short(result.address)} - {e}")
            await self._mark_failed(result, reason)

        if status == AddressStatus.SUCCESS:
            self._successful += 1
        else:
            self._failed += 1
        self._processed += 1

        await self._persist_counters()
        self._emit(index, result.address, status, reason)

    async def _mark_failed(self, result: AddressResult, reason: str) -> None:
        try:
            await self.store.update_address_result(
                result.id,
                status=AddressStatus.FAILED,
                data=None,
                error_message=reason,
            )
        except Exception as e:
            logger.error(f"Could not record failure for {_short(result.address)}: {e}")

    async def _persist_counters(self) -> None:
        try:
            await self.store.update_job(self.job_id, **self.counters)
        except Exception as e:
            # The next address (or the final write) carries the counters again
            logger.warning(f"⚠️ Could not persist counters for job {self.job_id}: {e}")

    async def _abort(self, reason: str) -> None:
        """Mark the job failed, best effort."""
        logger.error(f"❌ Batch run {self.job_id} aborted: {reason}")
        try:
            await self.store.update_job(
                self.job_id,
                status=JobStatus.FAILED,
                completed_at=utc_now(),
                **self.counters,
            )
        except Exception as e:
            logger.error(f"Could not mark job {self.job_id} failed: {e}")

    def _emit(self, index: int, address: str, status: AddressStatus, reason: Optional[str]) -> None:
        event = ProgressEvent(
            job_id=self.job_id,
            address_index=index,
            address=address,
            status=status,
            reason=reason,
            processed=self._processed,
            total=self._total,
        )
        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "total_addresses": self._total,
            **self.counters,
            "rate_gate": self.rate_gate.get_stats(),
        }

"""Tests for the batch runner."""

import asyncio
import time
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from sparkscan_batch.clients import FailureReason, LookupFailure, LookupSuccess
from sparkscan_batch.errors import BatchRunnerError, InvalidJobStateError, JobNotFoundError
from sparkscan_batch.processors import BatchRunner, ProgressEvent
from sparkscan_batch.storage import AddressStatus, JobSpec, JobStatus, MemoryResultStore
from sparkscan_batch.utils import RateGate


class FlakyStore(MemoryResultStore):
    """Memory store that fails terminal writes for selected addresses."""

    def __init__(self, failing_addresses=()):
        super().__init__()
        self.failing_addresses = set(failing_addresses)

    async def update_address_result(self, result_id, **fields):
        address = self._results[result_id].address
        if address in self.failing_addresses and fields.get("status") == AddressStatus.SUCCESS:
            raise RuntimeError("disk full")
        return await super().update_address_result(result_id, **fields)


def make_client(outcomes: dict) -> MagicMock:
    """Lookup client answering from an address -> outcome mapping."""
    client = MagicMock()

    async def fetch(address):
        outcome = outcomes[address]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client.fetch = AsyncMock(side_effect=fetch)
    return client


async def create_job(store, addresses: List[str], rate_limit: int = 50):
    job = await store.create_job(JobSpec(name="Test Batch", rate_limit=rate_limit, total_addresses=len(addresses)))
    for address in addresses:
        await store.create_address_result(job.id, address)
    return job


@pytest.fixture
def store():
    return MemoryResultStore()


class TestBatchRunnerRun:
    """Test full runs."""

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, store):
        """Test success and failure rows are recorded and paced."""
        job = await create_job(store, ["addrA", "addrB", "addrC"], rate_limit=5)
        client = make_client({
            "addrA": LookupSuccess({"tokenCount": 1}),
            "addrB": LookupFailure(FailureReason.http_error(404, "HTTP 404: Not Found")),
            "addrC": LookupSuccess({"tokenCount": 2}),
        })
        runner = BatchRunner(job.id, store, client, RateGate(5))

        start = time.monotonic()
        final = await runner.run()
        elapsed = time.monotonic() - start

        assert final.status == JobStatus.COMPLETED
        assert final.completed_at is not None
        assert final.processed_addresses == 3
        assert final.successful_lookups == 2
        assert final.failed_lookups == 1
        assert elapsed >= 0.4

        results = await store.list_address_results(job.id)
        assert [r.status for r in results] == [AddressStatus.SUCCESS, AddressStatus.FAILED, AddressStatus.SUCCESS]
        assert results[0].data == {"tokenCount": 1}
        assert results[1].data is None
        assert results[1].error_message == "HTTP 404: Not Found"
        assert [c.args[0] for c in client.fetch.call_args_list] == ["addrA", "addrB", "addrC"]

    @pytest.mark.asyncio
    async def test_progress_events_keep_counters_consistent(self, store):
        """Test counters stay consistent at every progress event."""
        addresses = ["addrA", "addrB", "addrC", "addrD"]
        job = await create_job(store, addresses)
        client = make_client({
            "addrA": LookupSuccess({}),
            "addrB": LookupFailure(FailureReason.exhausted(FailureReason.rate_limited())),
            "addrC": LookupSuccess({}),
            "addrD": LookupFailure(FailureReason.network_error("timeout")),
        })
        events: List[ProgressEvent] = []
        snapshots = []

        def on_progress(event: ProgressEvent):
            events.append(event)
            snapshots.append(dict(runner.counters))

        runner = BatchRunner(job.id, store, client, RateGate(100), progress_callbacks=[on_progress])
        await runner.run()

        assert [e.processed for e in events] == [1, 2, 3, 4]
        assert [e.address_index for e in events] == [0, 1, 2, 3]
        assert events[-1].is_last
        assert events[1].reason == "Rate limited after multiple retries"
        for snapshot in snapshots:
            assert snapshot["processed_addresses"] == snapshot["successful_lookups"] + snapshot["failed_lookups"]

        stored = await store.get_job(job.id)
        assert stored.counters_consistent()

    @pytest.mark.asyncio
    async def test_client_exception_isolated_to_address(self, store):
        """Test an unexpected client error fails only that address."""
        job = await create_job(store, ["addrA", "addrB", "addrC"])
        client = make_client({
            "addrA": LookupSuccess({}),
            "addrB": ValueError("bad payload"),
            "addrC": LookupSuccess({}),
        })

        final = await BatchRunner(job.id, store, client, RateGate(100)).run()

        assert final.status == JobStatus.COMPLETED
        assert final.successful_lookups == 2
        assert final.failed_lookups == 1
        results = await store.list_address_results(job.id)
        assert results[1].status == AddressStatus.FAILED
        assert results[1].error_message == "Processing error: bad payload"

    @pytest.mark.asyncio
    async def test_store_write_failure_isolated_to_address(self):
        """Test a failing result write marks that address failed and the run continues."""
        store = FlakyStore(failing_addresses={"addrB"})
        job = await create_job(store, ["addrA", "addrB", "addrC"])
        client = make_client({a: LookupSuccess({"ok": True}) for a in ("addrA", "addrB", "addrC")})

        final = await BatchRunner(job.id, store, client, RateGate(100)).run()

        assert final.status == JobStatus.COMPLETED
        assert final.successful_lookups == 2
        assert final.failed_lookups == 1
        results = await store.list_address_results(job.id)
        assert [r.status for r in results] == [AddressStatus.SUCCESS, AddressStatus.FAILED, AddressStatus.SUCCESS]
        assert "disk full" in results[1].error_message

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_run(self, store):
        job = await create_job(store, ["addrA", "addrB"])
        client = make_client({"addrA": LookupSuccess({}), "addrB": LookupSuccess({})})
        runner = BatchRunner(job.id, store, client, RateGate(100))
        runner.subscribe(MagicMock(side_effect=RuntimeError("observer broke")))

        final = await runner.run()

        assert final.status == JobStatus.COMPLETED
        assert final.processed_addresses == 2

    @pytest.mark.asyncio
    async def test_settled_rows_are_counted_not_fetched(self, store):
        """Test rows already terminal are skipped."""
        job = await create_job(store, ["addrA", "addrB"])
        rows = await store.list_address_results(job.id)
        await store.update_address_result(rows[0].id, status=AddressStatus.FAILED, error_message="manual")
        client = make_client({"addrB": LookupSuccess({})})

        final = await BatchRunner(job.id, store, client, RateGate(100)).run()

        assert client.fetch.call_count == 1
        assert final.processed_addresses == 2
        assert final.failed_lookups == 1
        assert final.successful_lookups == 1

    @pytest.mark.asyncio
    async def test_empty_job_completes(self, store):
        job = await create_job(store, [])
        client = make_client({})

        final = await BatchRunner(job.id, store, client, RateGate(100)).run()

        assert final.status == JobStatus.COMPLETED
        assert final.total_addresses == 0
        client.fetch.assert_not_called()


class TestBatchRunnerStartErrors:
    """Test runs that cannot start."""

    @pytest.mark.asyncio
    async def test_missing_job(self, store):
        runner = BatchRunner("missing", store, make_client({}), RateGate(100))

        with pytest.raises(JobNotFoundError):
            await runner.run()

    @pytest.mark.asyncio
    async def test_job_not_pending(self, store):
        job = await create_job(store, ["addrA"])
        await store.update_job(job.id, status=JobStatus.PROCESSING)
        runner = BatchRunner(job.id, store, make_client({}), RateGate(100))

        with pytest.raises(InvalidJobStateError):
            await runner.run()

    @pytest.mark.asyncio
    async def test_listing_failure_marks_job_failed(self, store):
        job = await create_job(store, ["addrA"])
        store.list_address_results = AsyncMock(side_effect=RuntimeError("store offline"))
        runner = BatchRunner(job.id, store, make_client({}), RateGate(100))

        with pytest.raises(BatchRunnerError, match="Failed to start job"):
            await runner.run()

        stored = await store.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.completed_at is not None


class TestBatchRunnerAbort:
    """Test aborted runs."""

    @pytest.mark.asyncio
    async def test_final_write_failure_marks_job_failed(self, store):
        job = await create_job(store, ["addrA"])
        client = make_client({"addrA": LookupSuccess({})})
        original_update = store.update_job

        async def update_job(job_id, **fields):
            if fields.get("status") == JobStatus.COMPLETED:
                raise RuntimeError("write refused")
            return await original_update(job_id, **fields)

        store.update_job = update_job

        with pytest.raises(BatchRunnerError, match="Failed to complete job"):
            await BatchRunner(job.id, store, client, RateGate(100)).run()

        stored = await store.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.processed_addresses == 1

    @pytest.mark.asyncio
    async def test_cancellation_marks_job_failed(self, store):
        job = await create_job(store, ["addrA", "addrB", "addrC"])
        started = asyncio.Event()

        async def slow_fetch(address):
            started.set()
            await asyncio.sleep(10)

        client = MagicMock()
        client.fetch = AsyncMock(side_effect=slow_fetch)

        task = asyncio.create_task(BatchRunner(job.id, store, client, RateGate(100)).run())
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await store.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.processed_addresses == 0

    @pytest.mark.asyncio
    async def test_get_stats(self, store):
        job = await create_job(store, ["addrA"])
        runner = BatchRunner(job.id, store, make_client({"addrA": LookupSuccess({})}), RateGate(100))

        await runner.run()

        stats = runner.get_stats()
        assert stats["total_addresses"] == 1
        assert stats["successful_lookups"] == 1
        assert stats["rate_gate"]["permits_granted"] == 1


class TestProgressEvent:
    """Test ProgressEvent."""

    def test_to_dict(self):
        event = ProgressEvent(
            job_id="job-1",
            address_index=2,
            address="addrC",
            status=AddressStatus.FAILED,
            processed=3,
            total=3,
            reason="HTTP 404: Not Found",
        )

        data = event.to_dict()

        assert event.is_last is True
        assert event.is_success is False
        assert data["status"] == "failed"
        assert data["reason"] == "HTTP 404: Not Found"
        assert data["timestamp"].endswith("+00:00")

"""Tests for the job controller."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sparkscan_batch.clients import FailureReason, LookupFailure, LookupSuccess
from sparkscan_batch.config import ProcessingConfig
from sparkscan_batch.errors import AddressResultNotFoundError, InvalidJobStateError, JobNotFoundError
from sparkscan_batch.processors import JobController, ProgressEvent, normalize_address_list
from sparkscan_batch.storage import AddressStatus, JobStatus, MemoryResultStore, ResultOrder

ADDR_A = "sp1aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
ADDR_B = "sp1bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
ADDR_C = "sp1cccccccccccccccccccccccccccccccccccccc"


class YieldingStore(MemoryResultStore):
    """Memory store that gives up control on every row insert, like a network store."""

    async def create_address_result(self, job_id, address):
        await asyncio.sleep(0)
        return await super().create_address_result(job_id, address)


class BrokenInsertStore(MemoryResultStore):
    """Memory store whose row inserts start failing after a number of successes."""

    def __init__(self, successful_inserts=1):
        super().__init__()
        self.successful_inserts = successful_inserts

    async def create_address_result(self, job_id, address):
        if self.successful_inserts <= 0:
            raise RuntimeError("connection reset")
        self.successful_inserts -= 1
        return await super().create_address_result(job_id, address)


@pytest.fixture
def store():
    return MemoryResultStore()


@pytest.fixture
def client():
    client = MagicMock()
    client.fetch = AsyncMock(return_value=LookupSuccess({"tokenCount": 0}))
    return client


@pytest.fixture
def controller(store, client):
    return JobController(store, client, ProcessingConfig(default_rate_limit=50))


class TestNormalizeAddressList:
    """Test address list normalization."""

    def test_strips_dedupes_and_filters(self):
        raw = [f"  {ADDR_A} ", "", ADDR_B, ADDR_A, "not-an-address", "   ", ADDR_C, ADDR_B]

        assert normalize_address_list(raw) == [ADDR_A, ADDR_B, ADDR_C]

    def test_non_strings_skipped(self):
        assert normalize_address_list([None, 42, ADDR_A]) == [ADDR_A]


class TestJobControllerCreate:
    """Test job creation."""

    @pytest.mark.asyncio
    async def test_create_job_defaults(self, controller):
        job = await controller.create_job()

        assert job.status == JobStatus.PENDING
        assert job.name.startswith("Batch ")
        assert job.rate_limit == 50
        assert job.target_token_address is None

    @pytest.mark.asyncio
    async def test_create_job_explicit(self, controller):
        job = await controller.create_job(name="Airdrop", rate_limit=2, target_token_address="btkn1x", total_addresses=3)

        assert job.name == "Airdrop"
        assert job.rate_limit == 2
        assert job.target_token_address == "btkn1x"
        assert job.total_addresses == 3

    @pytest.mark.asyncio
    async def test_missing_job(self, controller):
        with pytest.raises(JobNotFoundError):
            await controller.get_job("missing")

        with pytest.raises(JobNotFoundError):
            await controller.get_results("missing")


class TestJobControllerStart:
    """Test starting background runs."""

    @pytest.mark.asyncio
    async def test_start_returns_before_run_finishes(self, store, controller, client):
        """Test start_job returns right after the rows are created."""
        release = asyncio.Event()

        async def fetch(address):
            await release.wait()
            return LookupSuccess({"address": address})

        client.fetch = AsyncMock(side_effect=fetch)
        job = await controller.create_job(name="Async")

        started = await controller.start_job(job.id, [ADDR_A, ADDR_B])

        assert started.total_addresses == 2
        results = await controller.get_results(job.id)
        assert [r.address for r in results] == [ADDR_A, ADDR_B]
        assert controller.is_running(job.id)

        release.set()
        final = await controller.wait_for_job(job.id, timeout=5)

        assert final.status == JobStatus.COMPLETED
        assert final.successful_lookups == 2
        assert not controller.is_running(job.id)

    @pytest.mark.asyncio
    async def test_duplicates_collapsed(self, controller):
        job = await controller.create_job(total_addresses=3)

        started = await controller.start_job(job.id, [ADDR_A, ADDR_A, ADDR_B])
        await controller.wait_for_job(job.id)

        assert started.total_addresses == 2
        assert len(await controller.get_results(job.id)) == 2

    @pytest.mark.asyncio
    async def test_no_valid_addresses(self, controller):
        job = await controller.create_job()

        with pytest.raises(ValueError, match="No valid addresses"):
            await controller.start_job(job.id, ["", "bogus"])

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, controller):
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A])

        with pytest.raises(InvalidJobStateError):
            await controller.start_job(job.id, [ADDR_B])

        await controller.wait_for_job(job.id)

    @pytest.mark.asyncio
    async def test_progress_subscribers(self, controller):
        events = []
        controller.subscribe(events.append)

        job = await controller.run_job([ADDR_A, ADDR_B, ADDR_C], name="Observed")

        assert job.status == JobStatus.COMPLETED
        assert [e.address for e in events] == [ADDR_A, ADDR_B, ADDR_C]
        assert all(isinstance(e, ProgressEvent) for e in events)

        controller.unsubscribe(events.append)
        await controller.run_job([ADDR_A])
        assert len(events) == 3

    @pytest.mark.asyncio
    async def test_run_job_mixed_outcomes(self, controller, client):
        outcomes = {
            ADDR_A: LookupSuccess({"tokenCount": 1}),
            ADDR_B: LookupFailure(FailureReason.http_error(404, "HTTP 404: Not Found")),
            ADDR_C: LookupSuccess({"tokenCount": 2}),
        }
        client.fetch = AsyncMock(side_effect=lambda address: outcomes[address])

        job = await controller.run_job([ADDR_A, ADDR_B, ADDR_C])

        assert (job.processed_addresses, job.successful_lookups, job.failed_lookups) == (3, 2, 1)
        results = await controller.get_results(job.id, ResultOrder.PROCESSED)
        assert [r.address for r in results] == [ADDR_A, ADDR_B, ADDR_C]

    @pytest.mark.asyncio
    async def test_listing_is_idempotent(self, controller):
        job = await controller.run_job([ADDR_A, ADDR_B])

        first = await controller.get_results(job.id)
        second = await controller.get_results(job.id)

        assert first == second
        assert [j.id for j in await controller.list_jobs()] == [job.id]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_runs(self, controller, client):
        async def hang(address):
            await asyncio.sleep(10)

        client.fetch = AsyncMock(side_effect=hang)
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A, ADDR_B])
        await asyncio.sleep(0.01)

        await controller.shutdown()

        assert not controller.is_running(job.id)
        assert (await controller.get_job(job.id)).status == JobStatus.FAILED


class TestJobControllerSubmitResult:
    """Test caller-driven result submission."""

    @pytest.mark.asyncio
    async def test_submit_results_completes_job(self, controller, client):
        job = await controller.create_job()
        started = await controller.start_job(job.id, [ADDR_A, ADDR_B], run=False)

        assert started.status == JobStatus.PROCESSING
        assert not controller.is_running(job.id)

        after_first = await controller.submit_result(job.id, ADDR_A, success=True, data={"tokenCount": 4})
        assert after_first.status == JobStatus.PROCESSING
        assert after_first.processed_addresses == 1

        final = await controller.submit_result(job.id, ADDR_B, success=False, error_message="HTTP 500")

        assert final.status == JobStatus.COMPLETED
        assert final.completed_at is not None
        assert (final.processed_addresses, final.successful_lookups, final.failed_lookups) == (2, 1, 1)
        results = await controller.get_results(job.id)
        assert results[0].data == {"tokenCount": 4}
        assert results[1].error_message == "HTTP 500"
        client.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_address(self, controller):
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A], run=False)

        with pytest.raises(AddressResultNotFoundError):
            await controller.submit_result(job.id, ADDR_B, success=True)

    @pytest.mark.asyncio
    async def test_resubmit_settled_address(self, controller):
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A, ADDR_B], run=False)
        await controller.submit_result(job.id, ADDR_A, success=True)

        with pytest.raises(InvalidJobStateError):
            await controller.submit_result(job.id, ADDR_A, success=False)

    @pytest.mark.asyncio
    async def test_terminal_job_rejects_submission(self, controller):
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A], run=False)
        await controller.submit_result(job.id, ADDR_A, success=True)

        with pytest.raises(InvalidJobStateError):
            await controller.submit_result(job.id, ADDR_A, success=True)

    @pytest.mark.asyncio
    async def test_backend_run_rejects_submission(self, controller):
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A])

        with pytest.raises(InvalidJobStateError, match="processed by the backend"):
            await controller.submit_result(job.id, ADDR_A, success=True)

        await controller.wait_for_job(job.id)

    @pytest.mark.asyncio
    async def test_rows_not_touched_by_failed_submission(self, controller):
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A], run=False)

        with pytest.raises(AddressResultNotFoundError):
            await controller.submit_result(job.id, ADDR_C, success=True)

        results = await controller.get_results(job.id)
        assert results[0].status == AddressStatus.PENDING


class TestJobControllerInitialization:
    """Test job initialization under overlap and store failures."""

    @pytest.mark.asyncio
    async def test_overlapping_starts_create_rows_once(self, client):
        """Test two concurrent starts of one job leave a single row per address."""
        store = YieldingStore()
        controller = JobController(store, client, ProcessingConfig(default_rate_limit=50))
        job = await controller.create_job()

        outcomes = await asyncio.gather(
            controller.start_job(job.id, [ADDR_A, ADDR_B], run=False),
            controller.start_job(job.id, [ADDR_A, ADDR_B], run=False),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidJobStateError)
        results = await store.list_address_results(job.id)
        assert [r.address for r in results] == [ADDR_A, ADDR_B]
        assert (await controller.get_job(job.id)).total_addresses == 2

    @pytest.mark.asyncio
    async def test_overlapping_backend_starts_launch_one_run(self, client):
        store = YieldingStore()
        controller = JobController(store, client, ProcessingConfig(default_rate_limit=50))
        job = await controller.create_job()

        outcomes = await asyncio.gather(
            controller.start_job(job.id, [ADDR_A, ADDR_B]),
            controller.start_job(job.id, [ADDR_A, ADDR_B]),
            return_exceptions=True,
        )
        final = await controller.wait_for_job(job.id, timeout=5)

        assert sum(isinstance(o, InvalidJobStateError) for o in outcomes) == 1
        assert final.status == JobStatus.COMPLETED
        assert (final.total_addresses, final.processed_addresses) == (2, 2)
        assert client.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_row_insert_marks_job_failed(self, client):
        """Test a store error during initialization fails the job instead of leaving it pending."""
        store = BrokenInsertStore(successful_inserts=1)
        controller = JobController(store, client, ProcessingConfig(default_rate_limit=50))
        job = await controller.create_job()

        with pytest.raises(RuntimeError, match="connection reset"):
            await controller.start_job(job.id, [ADDR_A, ADDR_B, ADDR_C])

        failed = await controller.get_job(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.completed_at is not None
        assert not controller.is_running(job.id)
        client.fetch.assert_not_called()

        with pytest.raises(InvalidJobStateError, match="already been started"):
            await controller.start_job(job.id, [ADDR_A, ADDR_B, ADDR_C])

    @pytest.mark.asyncio
    async def test_failed_job_rejects_submission(self, client):
        store = BrokenInsertStore(successful_inserts=1)
        controller = JobController(store, client, ProcessingConfig(default_rate_limit=50))
        job = await controller.create_job()

        with pytest.raises(RuntimeError):
            await controller.start_job(job.id, [ADDR_A, ADDR_B], run=False)

        with pytest.raises(InvalidJobStateError):
            await controller.submit_result(job.id, ADDR_A, success=True)


class TestJobControllerTaskTracking:
    """Test bookkeeping of background runs."""

    @pytest.mark.asyncio
    async def test_finished_runs_are_released(self, controller):
        first = await controller.run_job([ADDR_A])
        second = await controller.run_job([ADDR_B])

        assert first.status == JobStatus.COMPLETED
        assert second.status == JobStatus.COMPLETED
        assert controller._tasks == {}
        assert controller._backend_jobs == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_released_backend_job_still_cannot_restart(self, controller):
        job = await controller.run_job([ADDR_A])

        with pytest.raises(InvalidJobStateError):
            await controller.start_job(job.id, [ADDR_B])

    @pytest.mark.asyncio
    async def test_cancelled_run_is_released(self, controller, client):
        async def hang(address):
            await asyncio.sleep(10)

        client.fetch = AsyncMock(side_effect=hang)
        job = await controller.create_job()
        await controller.start_job(job.id, [ADDR_A])
        await asyncio.sleep(0.01)

        await controller.shutdown()
        await asyncio.sleep(0)

        assert job.id not in controller._tasks
        assert (await controller.wait_for_job(job.id)).status == JobStatus.FAILED

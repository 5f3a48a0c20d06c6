"""Redis result store implementation."""

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from ..errors import StoreConnectionError, StoreError, StoreOperationError
from .base import ResultStore, apply_address_update, apply_job_update, sort_results
from .records import AddressResult, Job, JobSpec, ResultOrder, new_id

logger = logging.getLogger(__name__)


class RedisResultStore(ResultStore):
    """Redis-based result store.

    Layout under ``key_prefix``:
        job:<id>            JSON job record
        jobs                sorted set of job ids scored by creation time
        job:<id>:results    list of result ids in insertion order
        result:<id>         JSON address result record
    """

    backend_name = "redis"

    def __init__(
        self,
        redis_url: str,
        password: str | None = None,
        key_prefix: str = "sparkscan_batch:",
        max_connections: int = 20,
    ):
        """Initialize Redis store.

        Args:
            redis_url: Redis connection URL
            password: Redis password (optional)
            key_prefix: Prefix for all keys
            max_connections: Maximum connection pool size
        """
        self.redis_url = redis_url
        self.password = password
        self.key_prefix = key_prefix
        self.max_connections = max_connections

        self._client: redis.Redis | None = None
        self._connection_pool: redis.ConnectionPool | None = None
        self._stats = {
            "reads": 0,
            "writes": 0,
            "errors": 0,
        }

    async def _get_client(self) -> redis.Redis:
        """Get Redis client, creating connection if needed."""
        if self._client is None:
            try:
                self._connection_pool = redis.ConnectionPool.from_url(
                    self.redis_url,
                    password=self.password,
                    max_connections=self.max_connections,
                    decode_responses=True,
                    retry_on_error=[RedisConnectionError],
                    retry_on_timeout=True,
                )
                self._client = redis.Redis(connection_pool=self._connection_pool)

                await self._client.ping()
                logger.info("Connected to Redis successfully")

            except RedisError as e:
                self._stats["errors"] += 1
                self._client = None
                logger.error(f"Failed to connect to Redis: {e}")
                raise StoreConnectionError(f"Redis connection failed: {e}", backend=self.backend_name) from e

        return self._client

    def _job_key(self, job_id: str) -> str:
        return f"{self.key_prefix}job:{job_id}"

    def _jobs_index_key(self) -> str:
        return f"{self.key_prefix}jobs"

    def _job_results_key(self, job_id: str) -> str:
        return f"{self.key_prefix}job:{job_id}:results"

    def _result_key(self, result_id: str) -> str:
        return f"{self.key_prefix}result:{result_id}"

    def _serialize(self, value: dict[str, Any]) -> str:
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            raise StoreOperationError(f"Failed to serialize record: {e}", backend=self.backend_name) from e

    def _deserialize(self, value: str) -> dict[str, Any]:
        try:
            return json.loads(value)
        except (TypeError, ValueError) as e:
            raise StoreOperationError(f"Failed to deserialize record: {e}", backend=self.backend_name) from e

    def _operation_error(self, operation: str, error: Exception) -> StoreOperationError:
        self._stats["errors"] += 1
        logger.error(f"Redis {operation} failed: {error}")
        return StoreOperationError(f"Redis {operation} failed: {error}", backend=self.backend_name, original_error=error)

    async def _read_job(self, client: redis.Redis, job_id: str) -> Job | None:
        raw = await client.get(self._job_key(job_id))
        self._stats["reads"] += 1
        return Job.from_dict(self._deserialize(raw)) if raw is not None else None

    async def _read_result(self, client: redis.Redis, result_id: str) -> AddressResult | None:
        raw = await client.get(self._result_key(result_id))
        self._stats["reads"] += 1
        return AddressResult.from_dict(self._deserialize(raw)) if raw is not None else None

    async def create_job(self, spec: JobSpec) -> Job:
        job = Job.from_spec(spec)
        try:
            client = await self._get_client()
            await client.set(self._job_key(job.id), self._serialize(job.to_dict()))
            await client.zadd(self._jobs_index_key(), {job.id: job.created_at.timestamp()})
            self._stats["writes"] += 1
            return job
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("create_job", e) from e

    async def get_job(self, job_id: str) -> Job | None:
        try:
            client = await self._get_client()
            return await self._read_job(client, job_id)
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("get_job", e) from e

    async def list_jobs(self) -> list[Job]:
        try:
            client = await self._get_client()
            job_ids = await client.zrevrange(self._jobs_index_key(), 0, -1)
            if not job_ids:
                return []
            raw_jobs = await client.mget([self._job_key(job_id) for job_id in job_ids])
            self._stats["reads"] += 1
            return [Job.from_dict(self._deserialize(raw)) for raw in raw_jobs if raw is not None]
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("list_jobs", e) from e

    async def update_job(self, job_id: str, **fields: Any) -> Job | None:
        try:
            client = await self._get_client()
            job = await self._read_job(client, job_id)
            if job is None:
                return None

            updated = apply_job_update(job, fields)
            await client.set(self._job_key(job_id), self._serialize(updated.to_dict()))
            self._stats["writes"] += 1
            return updated
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("update_job", e) from e

    async def create_address_result(self, job_id: str, address: str) -> AddressResult:
        result_id = new_id()
        try:
            client = await self._get_client()
            length = await client.rpush(self._job_results_key(job_id), result_id)
            result = AddressResult(id=result_id, job_id=job_id, address=address, sequence=length - 1)
            await client.set(self._result_key(result_id), self._serialize(result.to_dict()))
            self._stats["writes"] += 1
            return result
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("create_address_result", e) from e

    async def list_address_results(
        self, job_id: str, order: ResultOrder = ResultOrder.INSERTION
    ) -> list[AddressResult]:
        try:
            client = await self._get_client()
            result_ids = await client.lrange(self._job_results_key(job_id), 0, -1)
            if not result_ids:
                return []
            raw_results = await client.mget([self._result_key(result_id) for result_id in result_ids])
            self._stats["reads"] += 1
            # A row whose id was pushed but whose record is not written yet is skipped
            results = [AddressResult.from_dict(self._deserialize(raw)) for raw in raw_results if raw is not None]
            return sort_results(results, order)
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("list_address_results", e) from e

    async def update_address_result(self, result_id: str, **fields: Any) -> AddressResult | None:
        try:
            client = await self._get_client()
            result = await self._read_result(client, result_id)
            if result is None:
                return None

            updated = apply_address_update(result, fields)
            await client.set(self._result_key(result_id), self._serialize(updated.to_dict()))
            self._stats["writes"] += 1
            return updated
        except StoreError:
            raise
        except RedisError as e:
            raise self._operation_error("update_address_result", e) from e

    async def health_check(self) -> bool:
        try:
            client = await self._get_client()
            await client.ping()
            return True
        except (StoreError, RedisError) as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    def get_stats(self) -> dict[str, Any]:
        return {"backend": self.backend_name, **self._stats}

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._connection_pool:
            await self._connection_pool.disconnect()
            self._connection_pool = None
        logger.info("Redis store connection closed")

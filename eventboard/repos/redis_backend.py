"""Redis-backed repositories for events, DM tracking and delayed jobs.

Layout under ``<prefix>``:

- ``events`` / ``events:rev``: hash of event JSON and hash of revisions
- ``dm_messages:<event_id>``: hash of DM records keyed ``<user>_<purpose>_<ms>_<message_id>``
- ``jobs``: hash of job JSON
- ``jobs:delayed`` / ``jobs:active``: sorted sets of job ids scored by time
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import redis.asyncio as redis
import structlog

from eventboard.domain import errors
from eventboard.domain.models import DMRecord, Event, JobPayload, ReminderJob
from eventboard.repos.base import DMTrackingRepository, EventStore, JobQueue
from eventboard.repos.memory import matches

logger = structlog.get_logger(__name__)

# KEYS: events hash, revisions hash
# ARGV: event id, expected revision, new record, new revision
_COMPARE_AND_SET = """
local current = redis.call('HGET', KEYS[2], ARGV[1])
if not current then current = '0' end
if current ~= ARGV[2] then return 0 end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
redis.call('HSET', KEYS[2], ARGV[1], ARGV[4])
return 1
"""

# KEYS: delayed zset, active zset
# ARGV: now timestamp, limit
_CLAIM_DUE = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
for _, id in ipairs(ids) do
  redis.call('ZREM', KEYS[1], id)
  redis.call('ZADD', KEYS[2], ARGV[1], id)
end
return ids
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedisBackend:
    """Owns the shared Redis connection used by every repository."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "eventboard",
        client: redis.Redis | None = None,
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.client = client if client is not None else redis.from_url(redis_url, decode_responses=True)

    def key(self, *parts: str) -> str:
        return ":".join((self.key_prefix, *parts))

    async def initialize(self) -> None:
        await self.client.ping()
        logger.info("Redis backend initialized", redis_url=self.redis_url)

    async def shutdown(self) -> None:
        await self.client.aclose()
        logger.info("Redis backend shut down")


class RedisEventStore(EventStore):
    def __init__(self, backend: RedisBackend) -> None:
        self._redis = backend.client
        self._events_key = backend.key("events")
        self._revisions_key = backend.key("events", "rev")
        self._cas = self._redis.register_script(_COMPARE_AND_SET)

    async def get(self, event_id: str) -> Event | None:
        raw = await self._redis.hget(self._events_key, event_id)
        if raw is None:
            return None
        return Event.model_validate_json(raw)

    async def put(self, event: Event) -> Event:
        stored = event.model_copy(update={"revision": event.revision + 1})
        written = await self._cas(
            keys=[self._events_key, self._revisions_key],
            args=[
                event.id,
                str(event.revision),
                stored.model_dump_json(by_alias=True),
                str(stored.revision),
            ],
        )
        if not written:
            logger.warning("Revision mismatch on write", event_id=event.id, revision=event.revision)
            raise errors.Conflict()
        return stored

    async def delete(self, event_id: str) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hdel(self._events_key, event_id)
            pipe.hdel(self._revisions_key, event_id)
            await pipe.execute()

    async def list_ids(self) -> list[str]:
        return list(await self._redis.hkeys(self._events_key))


class RedisDMTrackingRepository(DMTrackingRepository):
    def __init__(self, backend: RedisBackend) -> None:
        self._backend = backend
        self._redis = backend.client

    def _key(self, event_id: str) -> str:
        return self._backend.key("dm_messages", event_id)

    async def add(self, record: DMRecord) -> None:
        await self._redis.hset(self._key(record.event_id), record.key, record.model_dump_json())
        logger.debug(
            "Tracked DM message",
            event_id=record.event_id,
            user_id=record.user_id,
            message_id=record.message_id,
            purpose=str(record.purpose),
        )

    async def list_for_event(self, event_id: str) -> list[DMRecord]:
        raw = await self._redis.hgetall(self._key(event_id))
        records = [DMRecord.model_validate_json(value) for value in raw.values()]
        return sorted(records, key=lambda r: r.created_at)

    async def delete_for_event(self, event_id: str) -> None:
        await self._redis.delete(self._key(event_id))
        logger.debug("Deleted DM tracking data", event_id=event_id)


class RedisJobQueue(JobQueue):
    def __init__(self, backend: RedisBackend) -> None:
        self._redis = backend.client
        self._jobs_key = backend.key("jobs")
        self._delayed_key = backend.key("jobs", "delayed")
        self._active_key = backend.key("jobs", "active")
        self._claim = self._redis.register_script(_CLAIM_DUE)

    async def _load(self, job_ids: list[str]) -> list[ReminderJob]:
        if not job_ids:
            return []
        raw = await self._redis.hmget(self._jobs_key, job_ids)
        return [ReminderJob.model_validate_json(value) for value in raw if value is not None]

    async def enqueue(
        self,
        name: str,
        payload: JobPayload,
        delay_ms: int,
        *,
        now: datetime | None = None,
    ) -> ReminderJob:
        now = now or _utcnow()
        job = ReminderJob(
            name=name,
            payload=payload,
            fire_at=now + timedelta(milliseconds=delay_ms),
            created_at=now,
        )
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._jobs_key, job.id, job.model_dump_json())
            pipe.zadd(self._delayed_key, {job.id: job.fire_at.timestamp()})
            await pipe.execute()
        return job

    async def cancel(self, job_id: str) -> bool:
        removed = await self._redis.zrem(self._delayed_key, job_id)
        if removed:
            await self._redis.hdel(self._jobs_key, job_id)
        return bool(removed)

    async def list_pending(
        self,
        event_id: str | None = None,
        participant_id: str | None = None,
    ) -> list[ReminderJob]:
        job_ids = await self._redis.zrange(self._delayed_key, 0, -1)
        jobs = await self._load(list(job_ids))
        return [job for job in jobs if matches(job, event_id, participant_id)]

    async def claim_due(self, now: datetime, limit: int = 50) -> list[ReminderJob]:
        job_ids = await self._claim(
            keys=[self._delayed_key, self._active_key],
            args=[now.timestamp(), limit],
        )
        return await self._load(list(job_ids))

    async def complete(self, job_id: str) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self._active_key, job_id)
            pipe.hdel(self._jobs_key, job_id)
            await pipe.execute()

    async def requeue_stalled(self, now: datetime | None = None) -> int:
        # Claimed jobs go back scored by their claim time, which was already due.
        claimed = await self._redis.zrange(self._active_key, 0, -1, withscores=True)
        if not claimed:
            return 0
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zadd(self._delayed_key, dict(claimed))
            pipe.zrem(self._active_key, *(job_id for job_id, _ in claimed))
            await pipe.execute()
        logger.info("Requeued stalled jobs", count=len(claimed))
        return len(claimed)

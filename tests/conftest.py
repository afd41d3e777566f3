"""Shared test fixtures: in-memory Redis and Kafka doubles."""

import math
import time
from collections import defaultdict
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from aiokafka import TopicPartition
from redis.exceptions import ConnectionError as RedisConnectionError

from calculator_service.config import Settings
from calculator_service.events.publisher import EventPublisher
from calculator_service.services.cache import CacheStore
from calculator_service.services.workflow import CalculationWorkflow


# ============================================================================
# Redis double
# ============================================================================


class FakeRedis:
    """In-memory subset of the redis.asyncio client used by CacheStore."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.closed = False

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expires_at.pop(key, None)

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise RedisConnectionError("redis unavailable")
        self._purge(key)
        return self.store.get(key)

    async def set(self, key: str, value, ex=None) -> bool:
        if self.fail_writes:
            raise RedisConnectionError("redis unavailable")
        self.store[key] = str(value)
        if ex is not None:
            seconds = ex.total_seconds() if isinstance(ex, timedelta) else float(ex)
            self.expires_at[key] = time.monotonic() + seconds
        else:
            self.expires_at.pop(key, None)
        return True

    async def exists(self, *keys: str) -> int:
        count = 0
        for key in keys:
            self._purge(key)
            count += key in self.store
        return count

    async def ttl(self, key: str) -> int:
        self._purge(key)
        if key not in self.store:
            return -2
        if key not in self.expires_at:
            return -1
        return math.ceil(self.expires_at[key] - time.monotonic())

    async def aclose(self) -> None:
        self.closed = True


# ============================================================================
# Kafka doubles
# ============================================================================


class InMemoryKafka:
    """Single-partition topics with per-group committed offsets."""

    def __init__(self) -> None:
        self.logs: dict[str, list[SimpleNamespace]] = defaultdict(list)
        self.committed: dict[tuple[str, TopicPartition], int] = {}

    def append(self, topic: str, value: bytes, headers=None, key: bytes | None = None):
        record = SimpleNamespace(
            topic=topic,
            partition=0,
            offset=len(self.logs[topic]),
            key=key,
            value=value,
            headers=list(headers or []),
        )
        self.logs[topic].append(record)
        return record

    def records(self, topic: str) -> list[SimpleNamespace]:
        return list(self.logs[topic])

    def consumer(self, group_id: str, on_idle=None) -> "FakeKafkaConsumer":
        return FakeKafkaConsumer(self, group_id, on_idle)


class FakeKafkaConsumer:
    """Consumer double: resumes from the group's committed offsets on subscribe."""

    def __init__(self, kafka: InMemoryKafka, group_id: str, on_idle=None) -> None:
        self.kafka = kafka
        self.group_id = group_id
        self.on_idle = on_idle
        self.positions: dict[TopicPartition, int] = {}
        self.started = False
        self.stopped = False
        self.unsubscribed = False
        self.commits: list[dict[TopicPartition, int]] = []

    async def start(self) -> None:
        self.started = True

    def subscribe(self, topics) -> None:
        for topic in topics:
            tp = TopicPartition(topic, 0)
            self.positions[tp] = self.kafka.committed.get((self.group_id, tp), 0)

    async def getmany(self, timeout_ms: int = 0, max_records=None):
        for tp, position in self.positions.items():
            log = self.kafka.logs[tp.topic]
            if position < len(log):
                self.positions[tp] = position + 1
                return {tp: [log[position]]}
        if self.on_idle is not None:
            self.on_idle()
        return {}

    def seek(self, partition: TopicPartition, offset: int) -> None:
        self.positions[partition] = offset

    async def commit(self, offsets) -> None:
        self.commits.append(dict(offsets))
        for tp, offset in offsets.items():
            self.kafka.committed[(self.group_id, tp)] = offset

    def unsubscribe(self) -> None:
        self.unsubscribed = True

    async def stop(self) -> None:
        self.stopped = True


class FakeKafkaProducer:
    """Producer double appending to an InMemoryKafka."""

    def __init__(self, kafka: InMemoryKafka) -> None:
        self.kafka = kafka
        self.start = AsyncMock()
        self.stop = AsyncMock()
        self.flush = AsyncMock()

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        record = self.kafka.append(topic, value, headers, key)
        return SimpleNamespace(topic=topic, partition=0, offset=record.offset)


class FakeAdminClient:
    """Admin double reporting a fixed number of live brokers."""

    def __init__(self, brokers: int = 1, error: Exception | None = None) -> None:
        self.brokers = brokers
        self.error = error
        self.closed = False

    async def start(self) -> None:
        if self.error is not None:
            raise self.error

    async def describe_cluster(self) -> dict:
        return {"brokers": [{"node_id": i} for i in range(self.brokers)]}

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.on_sleep = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment."""
    return Settings()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_store(fake_redis: FakeRedis, settings: Settings) -> CacheStore:
    return CacheStore(fake_redis, settings)


@pytest.fixture
def kafka() -> InMemoryKafka:
    return InMemoryKafka()


@pytest.fixture
def publisher(kafka: InMemoryKafka, settings: Settings) -> EventPublisher:
    """EventPublisher writing into the in-memory broker."""
    return EventPublisher(settings, producer=FakeKafkaProducer(kafka))


@pytest.fixture
def workflow(cache_store: CacheStore, publisher: EventPublisher, settings: Settings) -> CalculationWorkflow:
    return CalculationWorkflow(cache_store, publisher, settings)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()

"""
Tests for the queue client library.
"""

import json

import pytest
import redis.asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from queue_client import QueueClient, QueueFactory, QueueMessage, QueueType, create_queue_client
from queue_client.interfaces import (
    QueueConfigError,
    QueueConnectionError,
    QueueResult,
    QueueWriteError,
    QueueWriter,
)
from queue_client.strategies import RedisQueueWriter


class FakeRedis:
    """Minimal stand-in for redis.asyncio.Redis."""

    def __init__(self, fail_with=None):
        self.keys = {}
        self.entries = []
        self.fail_with = fail_with
        self.closed = False

    async def ping(self):
        return True

    async def set(self, name, value, nx=False, ex=None):
        if nx and name in self.keys:
            return None
        self.keys[name] = (value, ex)
        return True

    async def xadd(self, name, fields, maxlen=None, approximate=True):
        if self.fail_with:
            raise self.fail_with
        self.entries.append((name, fields, maxlen))
        return f"{len(self.entries)}-0".encode("ascii")

    async def aclose(self):
        self.closed = True


def _connected_writer(fake_redis, **kwargs):
    writer = RedisQueueWriter(url="redis://localhost:6379/0", **kwargs)
    writer.client = fake_redis
    writer._connected = True
    return writer


class TestQueueFactory:

    def test_creates_redis_writer(self):
        writer = QueueFactory.create_writer(
            QueueType.REDIS,
            {"url": "redis://localhost:6379/0", "dedup_ttl_seconds": 60}
        )

        assert isinstance(writer, RedisQueueWriter)
        assert writer.dedup_ttl_seconds == 60

    @pytest.mark.parametrize(
        "config",
        [
            {},
            {"url": None},
            {"url": "http://localhost:6379"},
            {"url": "redis://localhost", "dedup_ttl_seconds": -1},
        ],
    )
    def test_rejects_invalid_config(self, config):
        with pytest.raises(QueueConfigError):
            QueueFactory.create_writer(QueueType.REDIS, config)

    def test_unknown_queue_type_string(self):
        with pytest.raises(ValueError):
            QueueType("kafka")


class TestRedisQueueWriter:

    @pytest.mark.asyncio
    async def test_write_appends_stream_entry(self):
        fake_redis = FakeRedis()
        writer = _connected_writer(fake_redis, maxlen_approx=500)
        message = QueueMessage(
            key="TMQ2627:abc",
            payload=b"ZCZC TMQ2627\nNNNN",
            headers={"sequence": "TMQ2627"}
        )

        result = await writer.write("serial.telegrams", message)

        assert result == QueueResult(success=True, message_id="1-0", is_duplicate=False)
        name, fields, maxlen = fake_redis.entries[0]
        assert name == "serial.telegrams"
        assert maxlen == 500
        assert fields["payload"] == b"ZCZC TMQ2627\nNNNN"
        assert fields["key"] == "TMQ2627:abc"
        assert json.loads(fields["headers_json"]) == {"sequence": "TMQ2627"}

    @pytest.mark.asyncio
    async def test_dedup_disabled_by_default(self):
        fake_redis = FakeRedis()
        writer = _connected_writer(fake_redis)
        message = QueueMessage(key="same", payload=b"x")

        await writer.write("stream", message)
        await writer.write("stream", message)

        assert len(fake_redis.entries) == 2
        assert fake_redis.keys == {}

    @pytest.mark.asyncio
    async def test_dedup_skips_known_key(self):
        fake_redis = FakeRedis()
        writer = _connected_writer(fake_redis, dedup_ttl_seconds=300)
        message = QueueMessage(key="same", payload=b"x")

        first = await writer.write("stream", message)
        second = await writer.write("stream", message)

        assert not first.is_duplicate
        assert second.is_duplicate
        assert second.success
        assert len(fake_redis.entries) == 1
        assert fake_redis.keys["stream:dedup:same"] == (1, 300)

    @pytest.mark.asyncio
    async def test_redis_error_becomes_write_error(self):
        writer = _connected_writer(FakeRedis(fail_with=RedisConnectionError("reset")))

        with pytest.raises(QueueWriteError):
            await writer.write("stream", QueueMessage(key="k", payload=b"x"))

    @pytest.mark.asyncio
    async def test_write_requires_connection(self):
        writer = RedisQueueWriter(url="redis://localhost:6379/0")

        with pytest.raises(QueueConnectionError):
            await writer.write("stream", QueueMessage(key="k", payload=b"x"))

    @pytest.mark.asyncio
    async def test_health_and_close(self):
        fake_redis = FakeRedis()
        writer = _connected_writer(fake_redis)

        assert await writer.health_check()

        await writer.close()

        assert fake_redis.closed
        assert not await writer.health_check()

    def test_installed_redis_client_supports_aclose(self):
        assert callable(getattr(redis.asyncio.Redis, "aclose", None))


class StubWriter(QueueWriter):

    def __init__(self, fail_connect=False):
        self.fail_connect = fail_connect
        self.messages = []
        self.closed = False

    async def connect(self):
        if self.fail_connect:
            raise OSError("refused")

    async def write(self, queue_name, message):
        self.messages.append((queue_name, message))
        return QueueResult(success=True, message_id="1-0")

    async def health_check(self):
        return True

    async def close(self):
        self.closed = True


class TestQueueClient:

    @pytest.mark.asyncio
    async def test_context_manager_connects_and_closes(self):
        writer = StubWriter()

        async with QueueClient(writer) as client:
            assert client.connected
            await client.write("stream", QueueMessage(key="k", payload=b"x"))
            health = await client.health_check()

        assert health["overall_healthy"]
        assert writer.closed
        assert len(writer.messages) == 1

    @pytest.mark.asyncio
    async def test_connect_failure_is_wrapped(self):
        client = QueueClient(StubWriter(fail_connect=True))

        with pytest.raises(QueueConnectionError):
            await client.connect()

        assert not client.connected

    @pytest.mark.asyncio
    async def test_write_before_connect_raises(self):
        client = QueueClient(StubWriter())

        with pytest.raises(QueueConnectionError):
            await client.write("stream", QueueMessage(key="k", payload=b"x"))

    @pytest.mark.asyncio
    async def test_create_queue_client_rejects_bad_url(self):
        with pytest.raises(QueueConfigError):
            await create_queue_client("redis", {"url": "nats://localhost:4222"})


def test_message_defaults():
    message = QueueMessage(key="k", payload=b"x")

    assert message.headers == {}
    assert message.timestamp.tzinfo is not None

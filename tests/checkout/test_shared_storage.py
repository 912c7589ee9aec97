import asyncio
from typing import Any, Optional

import pytest

from infrastructure.shared_storage import InMemoryStorageHub, RedisSharedStorage, resolve_backend


class Collector:
    def __init__(self) -> None:
        self.events = []

    async def __call__(self, event) -> None:
        self.events.append(event)


class FakeRedisClient:
    """Just the RedisClient surface shared storage uses, over dicts and queues."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.published: list[tuple[str, Any]] = []
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    async def get(self, key: str, default: Any = None, *, as_json: bool = True) -> Any:
        return self.data.get(key, default)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, get: bool = False, as_json: bool = True) -> Any:
        old = self.data.get(key)
        self.data[key] = value
        return old if get else True

    async def getdel(self, key: str, *, as_json: bool = True) -> Any:
        return self.data.pop(key, None)

    async def publish(self, channel: str, message: Any) -> int:
        self.published.append((channel, message))
        queues = self._subscribers.get(channel, [])
        for queue in queues:
            queue.put_nowait({"channel": channel, "data": message, "pattern": None})
        return len(queues)

    async def subscribe(self, *channels: str, ready: Optional[asyncio.Event] = None):
        queue: asyncio.Queue = asyncio.Queue()
        for channel in channels:
            self._subscribers.setdefault(channel, []).append(queue)
        if ready is not None:
            ready.set()
        try:
            while True:
                yield await queue.get()
        finally:
            for channel in channels:
                self._subscribers[channel].remove(queue)


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_in_memory_write_notifies_other_tabs_only():
    profile = InMemoryStorageHub().profile("p1")
    tab_a, tab_b = profile.tab("a"), profile.tab("b")
    seen_a, seen_b = Collector(), Collector()
    tab_a.add_listener(seen_a)
    tab_b.add_listener(seen_b)

    await tab_a.set_item("k", "v1")

    assert seen_a.events == []
    [event] = seen_b.events
    assert (event.key, event.old_value, event.new_value, event.origin) == ("k", None, "v1", "a")
    assert await tab_b.get_item("k") == "v1"


@pytest.mark.asyncio
async def test_in_memory_unchanged_write_is_silent():
    profile = InMemoryStorageHub().profile("p1")
    tab_a, tab_b = profile.tab(), profile.tab()
    seen = Collector()
    tab_b.add_listener(seen)

    await tab_a.set_item("k", "v1")
    await tab_a.set_item("k", "v1")
    await tab_a.remove_item("missing")

    assert len(seen.events) == 1


@pytest.mark.asyncio
async def test_in_memory_remove_reports_none_and_closed_tab_stops_listening():
    profile = InMemoryStorageHub().profile("p1")
    tab_a, tab_b = profile.tab(), profile.tab()
    seen = Collector()
    tab_b.add_listener(seen)

    await tab_a.set_item("k", "v1")
    await tab_a.remove_item("k")
    await tab_b.aclose()
    await tab_a.set_item("k", "v2")

    assert [e.new_value for e in seen.events] == ["v1", None]
    assert profile.items() == {"k": "v2"}


@pytest.mark.asyncio
async def test_in_memory_profiles_are_isolated():
    hub = InMemoryStorageHub()
    seen = Collector()
    hub.profile("p2").tab().add_listener(seen)

    await hub.profile("p1").tab().set_item("k", "v")

    assert seen.events == []
    assert await hub.profile("p2").tab().get_item("k") is None


@pytest.mark.asyncio
async def test_in_memory_failing_listener_does_not_block_others():
    profile = InMemoryStorageHub().profile("p1")
    writer = profile.tab()
    seen = Collector()

    async def broken(event):
        raise RuntimeError("boom")

    profile.tab().add_listener(broken)
    profile.tab().add_listener(seen)

    await writer.set_item("k", "v")

    assert len(seen.events) == 1


@pytest.mark.asyncio
async def test_redis_storage_delivers_to_other_tabs():
    client = FakeRedisClient()
    tab_a = await RedisSharedStorage(client, "p1", tab_id="a").start()
    tab_b = await RedisSharedStorage(client, "p1", tab_id="b").start()
    seen_a, seen_b = Collector(), Collector()
    tab_a.add_listener(seen_a)
    tab_b.add_listener(seen_b)

    await tab_a.set_item("freightfox_payment_state", '{"state": "initiated"}')
    await settle()

    assert client.data == {"profile:p1:freightfox_payment_state": '{"state": "initiated"}'}
    assert seen_a.events == []
    [event] = seen_b.events
    assert event.new_value == '{"state": "initiated"}'
    assert event.origin == "a"
    assert await tab_b.get_item("freightfox_payment_state") == '{"state": "initiated"}'

    await tab_a.aclose()
    await tab_b.aclose()


@pytest.mark.asyncio
async def test_redis_storage_remove_and_noop_writes():
    client = FakeRedisClient()
    tab_a = await RedisSharedStorage(client, "p1").start()

    await tab_a.remove_item("k")
    await tab_a.set_item("k", "v")
    await tab_a.set_item("k", "v")
    await tab_a.remove_item("k")

    assert [(m["old_value"], m["new_value"]) for _, m in client.published] == [(None, "v"), ("v", None)]
    assert all(channel == "storage:p1" for channel, _ in client.published)
    assert await tab_a.get_item("k") is None

    await tab_a.aclose()


@pytest.mark.asyncio
async def test_redis_storage_profiles_are_isolated():
    client = FakeRedisClient()
    tab_a = await RedisSharedStorage(client, "p1").start()
    tab_c = await RedisSharedStorage(client, "p2").start()
    seen = Collector()
    tab_c.add_listener(seen)

    await tab_a.set_item("k", "v")
    await settle()

    assert seen.events == []
    assert await tab_c.get_item("k") is None

    await tab_a.aclose()
    await tab_c.aclose()


@pytest.mark.parametrize(
    "backend, expected",
    [("memory", "memory"), ("REDIS", "redis"), ("auto", "memory"), (None, "memory")],
)
def test_resolve_backend(backend, expected):
    assert resolve_backend(backend) == expected


def test_resolve_backend_rejects_unknown():
    with pytest.raises(ValueError):
        resolve_backend("indexeddb")

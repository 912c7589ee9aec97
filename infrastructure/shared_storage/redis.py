"""Redis backed shared storage.

Reuses the shared RedisClient from infrastructure.external.cache. Values live
under `profile:{profile}:{key}`; every change is published on
`storage:{profile}` and each tab's listener task skips its own writes, which
gives the localStorage "other tabs only" delivery across processes.
"""
from __future__ import annotations

import asyncio
import contextlib
import uuid
from typing import Callable, Optional

from application.ports.shared_storage import StorageEvent, StorageListener
from core.logging_config import get_logger
from infrastructure.external.cache import RedisClient


logger = get_logger(__name__)


class RedisSharedStorage:
    def __init__(self, client: RedisClient, profile_id: str, tab_id: Optional[str] = None) -> None:
        self._client = client
        self.profile_id = profile_id
        self.tab_id = tab_id or uuid.uuid4().hex
        self._listeners: list[StorageListener] = []
        self._task: Optional[asyncio.Task] = None

    def _key(self, key: str) -> str:
        return f"profile:{self.profile_id}:{key}"

    @property
    def channel(self) -> str:
        return f"storage:{self.profile_id}"

    async def start(self) -> "RedisSharedStorage":
        """Subscribe to the profile channel; returns once the subscription is live."""
        if self._task is None:
            ready = asyncio.Event()
            self._task = asyncio.create_task(self._listen(ready), name=f"shared-storage-{self.tab_id}")
            await ready.wait()
        return self

    async def get_item(self, key: str) -> Optional[str]:
        return await self._client.get(self._key(key), as_json=False)

    async def set_item(self, key: str, value: str) -> None:
        old = await self._client.set(self._key(key), value, ttl=0, get=True, as_json=False)
        await self._announce(key, old, value)

    async def remove_item(self, key: str) -> None:
        old = await self._client.getdel(self._key(key), as_json=False)
        if old is not None:
            await self._announce(key, old, None)

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def aclose(self) -> None:
        self._listeners.clear()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _announce(self, key: str, old: Optional[str], new: Optional[str]) -> None:
        if old == new:
            return
        await self._client.publish(self.channel, {
            "key": key,
            "old_value": old,
            "new_value": new,
            "origin": self.tab_id,
        })

    async def _listen(self, ready: asyncio.Event) -> None:
        try:
            async for message in self._client.subscribe(self.channel, ready=ready):
                data = message.get("data")
                if not isinstance(data, dict) or data.get("origin") == self.tab_id:
                    continue
                event = StorageEvent(
                    key=str(data.get("key")),
                    old_value=data.get("old_value"),
                    new_value=data.get("new_value"),
                    origin=data.get("origin"),
                )
                for listener in list(self._listeners):
                    try:
                        await listener(event)
                    except Exception as exc:
                        logger.error("storage_listener_failed", key=event.key, error=str(exc), exc_info=True)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("shared_storage_listen_failed", channel=self.channel, error=str(exc), exc_info=True)
        finally:
            # Unblock start() when the subscription itself failed
            ready.set()

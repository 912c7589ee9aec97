"""In-memory shared storage.

Single-process only. Tabs of one profile share a dict; a change is delivered
to listeners of every other tab before the write returns. Useful for local dev
and tests.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Callable, Optional

from application.ports.shared_storage import StorageEvent, StorageListener
from core.logging_config import get_logger


logger = get_logger(__name__)


class InMemoryProfile:
    """The storage area of one browser profile."""

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        self._items: dict[str, str] = {}
        self._listeners: list[tuple[str, StorageListener]] = []
        self._lock = asyncio.Lock()

    def tab(self, tab_id: Optional[str] = None) -> "InMemorySharedStorage":
        return InMemorySharedStorage(self, tab_id or uuid.uuid4().hex)

    def items(self) -> dict[str, str]:
        return dict(self._items)

    async def _write(self, origin: str, key: str, value: Optional[str]) -> None:
        async with self._lock:
            old = self._items.get(key)
            if value is None:
                self._items.pop(key, None)
            else:
                self._items[key] = value
            listeners = [listener for tab_id, listener in self._listeners if tab_id != origin]
        if old == value:
            return
        event = StorageEvent(key=key, old_value=old, new_value=value, origin=origin)
        for listener in listeners:
            try:
                await listener(event)
            except Exception as exc:
                logger.error("storage_listener_failed", key=key, origin=origin, error=str(exc), exc_info=True)

    def _add_listener(self, tab_id: str, listener: StorageListener) -> Callable[[], None]:
        entry = (tab_id, listener)
        self._listeners.append(entry)

        def remove() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return remove

    def _drop_tab(self, tab_id: str) -> None:
        self._listeners = [entry for entry in self._listeners if entry[0] != tab_id]


class InMemorySharedStorage:
    """One tab's view of an InMemoryProfile."""

    def __init__(self, profile: InMemoryProfile, tab_id: str) -> None:
        self._profile = profile
        self.tab_id = tab_id

    async def get_item(self, key: str) -> Optional[str]:
        return self._profile._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await self._profile._write(self.tab_id, key, value)

    async def remove_item(self, key: str) -> None:
        await self._profile._write(self.tab_id, key, None)

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        return self._profile._add_listener(self.tab_id, listener)

    async def aclose(self) -> None:
        self._profile._drop_tab(self.tab_id)


class InMemoryStorageHub:
    """All profiles of the process."""

    def __init__(self) -> None:
        self._profiles: dict[str, InMemoryProfile] = {}

    def profile(self, profile_id: str) -> InMemoryProfile:
        profile = self._profiles.get(profile_id)
        if profile is None:
            profile = self._profiles[profile_id] = InMemoryProfile(profile_id)
        return profile

"""
Shared storage port - a string key/value store visible to every tab of one
browser profile, with change notifications.

Semantics follow window.localStorage: a write notifies listeners attached
through *other* tabs, never the writing tab itself.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class StorageEvent:
    key: str
    old_value: Optional[str]
    new_value: Optional[str]  # None when the key was removed
    origin: Optional[str] = None  # tab id of the writer


StorageListener = Callable[[StorageEvent], Awaitable[None]]


@runtime_checkable
class SharedStoragePort(Protocol):
    """One tab's view of a profile's shared storage."""

    tab_id: str

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        """Register for changes made by other tabs; returns the remover."""
        ...

    async def aclose(self) -> None: ...


__all__ = ["StorageEvent", "StorageListener", "SharedStoragePort"]

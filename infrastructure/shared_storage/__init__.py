"""Shared storage backends selected by settings.STORAGE_BACKEND (memory | redis | auto)."""
from __future__ import annotations

from application.ports.shared_storage import SharedStoragePort
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.cache import get_redis_client
from .inmemory import InMemoryProfile, InMemorySharedStorage, InMemoryStorageHub
from .redis import RedisSharedStorage


logger = get_logger(__name__)

_hub = InMemoryStorageHub()


def resolve_backend(backend: str | None = None) -> str:
    backend = (backend or settings.STORAGE_BACKEND or "auto").lower()
    if backend == "auto":
        return "redis" if settings.redis.url else "memory"
    if backend not in {"memory", "redis"}:
        raise ValueError(f"Unsupported storage backend: {backend}")
    return backend


async def open_shared_storage(profile_id: str, backend: str | None = None) -> SharedStoragePort:
    """A new tab view on the given profile."""
    kind = resolve_backend(backend)
    if kind == "redis":
        client = await get_redis_client()
        storage = await RedisSharedStorage(client, profile_id).start()
    else:
        storage = _hub.profile(profile_id).tab()
    logger.info("shared_storage_opened", backend=kind, profile_id=profile_id, tab_id=storage.tab_id)
    return storage


__all__ = [
    "InMemoryProfile",
    "InMemorySharedStorage",
    "InMemoryStorageHub",
    "RedisSharedStorage",
    "open_shared_storage",
    "resolve_backend",
]

"""
Redis 客户端封装 - 命名空间隔离、JSON 序列化、Pub/Sub
"""
from __future__ import annotations

import asyncio
import json
import socket
import time
from typing import Any, AsyncGenerator, Callable, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class CacheMetrics:
    """Operation counters and latency samples."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.errors = 0
        self.total_set = 0
        self.total_delete = 0
        self.total_publish = 0
        self.operation_times: list[float] = []

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def record_operation_time(self, duration: float):
        self.operation_times.append(duration)
        # keep the latest 1000 samples
        if len(self.operation_times) > 1000:
            self.operation_times.pop(0)


class RedisClient:
    """
    Redis 客户端

    特性:
    - 命名空间隔离（key 与 channel 同样加前缀）
    - 字符串原样写入，其余值 JSON 序列化
    - 指标统计
    - Pub/Sub 消息生成器
    """

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "",
        enable_metrics: bool = True,
        serializer: Optional[Callable] = None,
        deserializer: Optional[Callable] = None
    ):
        self._client = client
        self._namespace = namespace.strip(":")
        self._enable_metrics = enable_metrics
        self._metrics = CacheMetrics() if enable_metrics else None
        self._serializer = serializer or self._default_serializer
        self._deserializer = deserializer or self._default_deserializer

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    def _strip_namespace(self, key: str) -> str:
        prefix = f"{self._namespace}:"
        if self._namespace and key.startswith(prefix):
            return key[len(prefix):]
        return key

    def _default_serializer(self, value: Any) -> str:
        if isinstance(value, (str, int, float)):
            return str(value)
        try:
            return json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("redis_serialize_failed", error=str(e))
            raise

    def _default_deserializer(self, value: Optional[str], as_json: bool = True) -> Any:
        if value is None:
            return None
        if not as_json:
            return value
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value

    async def _execute_with_metrics(self, operation: Callable, *args, **kwargs) -> Any:
        if not self._enable_metrics:
            return await operation(*args, **kwargs)
        start_time = time.time()
        try:
            return await operation(*args, **kwargs)
        except RedisError:
            self._metrics.errors += 1
            raise
        finally:
            self._metrics.record_operation_time(time.time() - start_time)

    async def get(self, key: str, default: Any = None, *, as_json: bool = True) -> Any:
        formatted_key = self._format_key(key)
        value = await self._execute_with_metrics(self._client.get, formatted_key)
        if self._enable_metrics:
            if value is None:
                self._metrics.misses += 1
            else:
                self._metrics.hits += 1
        if value is None:
            return default
        return self._deserializer(value, as_json)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        nx: bool = False,  # 仅当key不存在时设置
        xx: bool = False,  # 仅当key存在时设置
        get: bool = False,  # 返回旧值
        as_json: bool = True,
    ) -> Any:
        formatted_key = self._format_key(key)
        payload = self._serializer(value)
        expire = ttl if ttl is not None else settings.redis.default_ttl
        result = await self._execute_with_metrics(
            self._client.set,
            formatted_key,
            payload,
            ex=expire if expire and expire > 0 else None,
            nx=nx,
            xx=xx,
            get=get,
        )
        if self._enable_metrics:
            self._metrics.total_set += 1
        if get:
            return self._deserializer(result, as_json) if result is not None else None
        return bool(result)

    async def getdel(self, key: str, *, as_json: bool = True) -> Any:
        """Delete a key and return the value it held."""
        result = await self._execute_with_metrics(self._client.getdel, self._format_key(key))
        if self._enable_metrics and result is not None:
            self._metrics.total_delete += 1
        return self._deserializer(result, as_json) if result is not None else None

    async def delete(self, *keys: str) -> int:
        formatted_keys = [self._format_key(k) for k in keys]
        result = await self._execute_with_metrics(self._client.delete, *formatted_keys)
        if self._enable_metrics:
            self._metrics.total_delete += result
        return result

    async def exists(self, *keys: str) -> int:
        formatted_keys = [self._format_key(k) for k in keys]
        return await self._execute_with_metrics(self._client.exists, *formatted_keys)

    async def publish(self, channel: str, message: Any) -> int:
        """
        发布消息到频道

        Returns:
            接收消息的订阅者数量
        """
        formatted_channel = self._format_key(channel)
        receivers = await self._execute_with_metrics(
            self._client.publish,
            formatted_channel,
            self._serializer(message)
        )
        if self._enable_metrics:
            self._metrics.total_publish += 1
        return receivers

    async def subscribe(
        self,
        *channels: str,
        ready: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """
        订阅频道，返回消息生成器

        `ready` is set once the SUBSCRIBE round trip completed, so callers can
        wait for it before relying on delivery.
        """
        formatted_channels = [self._format_key(c) for c in channels]
        pubsub = self._client.pubsub()

        try:
            await pubsub.subscribe(*formatted_channels)
            if ready is not None:
                ready.set()
            async for message in pubsub.listen():
                if message['type'] not in ('message', 'pmessage'):
                    continue
                yield {
                    'channel': self._strip_namespace(message['channel']),
                    'data': self._deserializer(message['data']),
                    'pattern': message.get('pattern'),
                }
        finally:
            await pubsub.unsubscribe(*formatted_channels)
            await pubsub.aclose()

    async def health_check(self) -> bool:
        try:
            return await self._client.ping()
        except RedisError as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    @property
    def metrics(self) -> Optional[CacheMetrics]:
        return self._metrics

    @property
    def client(self) -> aioredis.Redis:
        return self._client


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


def _keepalive_options() -> dict:
    if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
        return {
            socket.TCP_KEEPIDLE: 1,
            socket.TCP_KEEPINTVL: 1,
            socket.TCP_KEEPCNT: 3,
        }
    return {}


async def init_redis_client(
    namespace: Optional[str] = None,
    enable_metrics: bool = True,
    **kwargs
) -> RedisClient:
    """
    初始化全局 Redis 客户端

    Args:
        namespace: 命名空间，默认取 settings.redis.namespace
        enable_metrics: 是否启用指标统计
        **kwargs: 其他 Redis 连接参数
    """
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL is not configured")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=_keepalive_options(),
            **kwargs
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("redis_init_failed", url=settings.redis.url, error=str(e))
            await client.aclose()
            raise

        _redis_client = client
        _cache_instance = RedisClient(
            client=client,
            namespace=namespace or settings.redis.namespace,
            enable_metrics=enable_metrics,
        )
        logger.info("redis_initialized", url=settings.redis.url)
        return _cache_instance


async def get_redis_client() -> RedisClient:
    if _cache_instance is None:
        return await init_redis_client()
    return _cache_instance


async def shutdown_redis_client() -> None:
    global _redis_client, _cache_instance

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_closed")
        except RedisError as e:
            logger.error("redis_close_failed", error=str(e))
        finally:
            _redis_client = None
            _cache_instance = None


__all__ = [
    'RedisClient',
    'CacheMetrics',
    'init_redis_client',
    'get_redis_client',
    'shutdown_redis_client',
]

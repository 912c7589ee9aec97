"""
Checkout script loader.

Retries a failed <script> a fixed number of times with a fixed wait, removing
the previous tag before every attempt. No other checkout failure is retried.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from application.ports.checkout_gateway import CheckoutHost, ScriptInjectionError, WidgetFactory
from core.config import CheckoutSettings
from core.logging_config import get_logger
from domain.checkout.exceptions import ScriptLoadError


logger = get_logger(__name__)


class CheckoutScriptLoader:
    def __init__(self, host: CheckoutHost, config: CheckoutSettings) -> None:
        self._host = host
        self._src = config.script_url
        self._global_name = config.script_global
        self._max_retries = max(1, config.script_max_retries)
        self._retry_delay_s = config.script_retry_delay_s
        self._timeout_s = config.script_timeout_s
        self._lock = asyncio.Lock()

    async def ensure_loaded(self) -> WidgetFactory:
        factory = self._host.get_global(self._global_name)
        if factory is not None:
            return factory
        async with self._lock:
            factory = self._host.get_global(self._global_name)
            if factory is not None:
                return factory
            return await self._load()

    async def _load(self) -> WidgetFactory:
        attempts = 0
        last_error: Optional[str] = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=wait_fixed(self._retry_delay_s),
                retry=retry_if_exception_type(ScriptInjectionError),
                reraise=True,
            ):
                with attempt:
                    attempts += 1
                    try:
                        return await self._attempt(attempts)
                    except ScriptInjectionError as exc:
                        last_error = str(exc)
                        logger.warning(
                            "checkout_script_attempt_failed",
                            src=self._src,
                            attempt=attempts,
                            max_attempts=self._max_retries,
                            error=last_error,
                        )
                        raise
        except ScriptInjectionError as exc:
            logger.error("checkout_script_load_failed", src=self._src, attempts=attempts, error=last_error)
            raise ScriptLoadError(self._src, attempts, last_error) from exc
        # Unreachable: AsyncRetrying either returns or reraises
        raise ScriptLoadError(self._src, attempts, last_error)

    async def _attempt(self, attempt: int) -> WidgetFactory:
        for tag in self._host.find_scripts(self._src):
            self._host.remove_script(tag)
        try:
            await asyncio.wait_for(self._host.inject_script(self._src), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise ScriptInjectionError(f"timed out after {self._timeout_s}s") from exc
        factory = self._host.get_global(self._global_name)
        if factory is None:
            raise ScriptInjectionError(f"script loaded without defining {self._global_name}")
        logger.info("checkout_script_loaded", src=self._src, attempt=attempt)
        return factory

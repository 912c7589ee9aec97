"""
PaymentSessionStore - the durable, cross-tab record of the in-flight checkout.

At most one session per profile; saving overwrites. The store is a recovery
aid: validation and storage problems are logged, never raised to the caller.
"""
from __future__ import annotations

import json
from typing import Optional

from application.ports.shared_storage import SharedStoragePort
from core.logging_config import get_logger
from domain.checkout.entity import Clock, PaymentSession, now_ms
from domain.common.exceptions import DomainValidationException


logger = get_logger(__name__)

DEFAULT_TTL_MINUTES = 30


class PaymentSessionStore:
    def __init__(
        self,
        storage: SharedStoragePort,
        *,
        session_key: str,
        state_key: str,
        default_ttl_minutes: int = DEFAULT_TTL_MINUTES,
        clock: Clock = now_ms,
    ) -> None:
        self._storage = storage
        self._session_key = session_key
        self._state_key = state_key
        self._default_ttl_minutes = default_ttl_minutes
        self._clock = clock

    async def save(self, session: PaymentSession, ttl_minutes: Optional[int] = None) -> Optional[PaymentSession]:
        """Stamp saved_at/expires_at and persist; returns the stored session or None when skipped."""
        if not session.order_id:
            logger.warning("payment_session_save_skipped", reason="missing_order_id")
            return None
        ttl = self._default_ttl_minutes if ttl_minutes is None else ttl_minutes
        stamped = session.stamped(self._clock(), ttl * 60_000)
        try:
            await self._storage.set_item(self._session_key, json.dumps(stamped.to_dict()))
        except Exception as exc:
            logger.error("payment_session_save_failed", order_id=session.order_id, error=str(exc), exc_info=True)
            return None
        logger.info(
            "payment_session_saved",
            order_id=stamped.order_id,
            amount=stamped.amount,
            currency=stamped.currency,
            expires_at=stamped.expires_at,
        )
        return stamped

    async def peek(self) -> Optional[PaymentSession]:
        """The stored session regardless of expiry; malformed blobs are dropped."""
        raw = await self._storage.get_item(self._session_key)
        if raw is None:
            return None
        try:
            return PaymentSession.from_dict(json.loads(raw))
        except (ValueError, TypeError, DomainValidationException) as exc:
            logger.warning("payment_session_malformed", error=str(exc))
            await self._storage.remove_item(self._session_key)
            return None

    async def get(self) -> Optional[PaymentSession]:
        session = await self.peek()
        if session is None:
            return None
        if not session.is_valid_at(self._clock()):
            logger.info("payment_session_expired", order_id=session.order_id, expires_at=session.expires_at)
            await self._storage.remove_item(self._session_key)
            return None
        return session

    async def clear(self) -> None:
        """Remove the session and the lifecycle state (state becomes implicitly idle)."""
        await self._storage.remove_item(self._session_key)
        await self._storage.remove_item(self._state_key)
        logger.info("payment_session_cleared")

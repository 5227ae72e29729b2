"""
Redis-backed flag store for the Entitlements Service.

The billing flow writes one hash per user (``flags:<user_id>``) holding the
string flags ``isSubscriptionApproved``, ``trialActive`` and
``allowedSections``. This service only reads them. Every failure degrades to
the fail-closed default snapshot; reads never raise.
"""

from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from shared.metrics import MetricsCollector
from ..access.models import EntitlementState, FLAG_KEYS


class RedisFlagStore:
    """Read-only view of per-user entitlement flags."""

    def __init__(self, redis_url: str, key_prefix: str = "flags:",
                 metrics: Optional[MetricsCollector] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.metrics = metrics
        self.logger = get_logger("entitlements.flags.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect to Redis."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis flag store started")

        except Exception as e:
            self.logger.error("Failed to start Redis flag store", error=str(e))
            raise ExternalServiceError("redis", str(e))

    async def stop(self):
        """Close the Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.logger.info("Redis flag store stopped")

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    def _fallback(self, reason: str, user_id: str, **fields) -> EntitlementState:
        self.logger.warning("Flag read degraded to default", reason=reason, user_id=user_id, **fields)
        if self.metrics:
            self.metrics.increment_counter("flag_store_fallbacks_total", reason=reason)
        return EntitlementState()

    async def load_state(self, user_id: str) -> EntitlementState:
        """Load a user's flag snapshot."""
        if self.redis is None:
            return self._fallback("not_started", user_id)

        try:
            values = await self.redis.hmget(self._key(user_id), list(FLAG_KEYS))
        except Exception as e:
            return self._fallback("redis_error", user_id, error=str(e))

        flags = {key: value for key, value in zip(FLAG_KEYS, values) if value is not None}
        if not flags:
            self.logger.debug("No flags stored for user", user_id=user_id)
        return EntitlementState.from_flags(flags)

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return self.redis is not None and bool(await self.redis.ping())
        except Exception:
            return False

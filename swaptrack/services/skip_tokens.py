import asyncio
import time
from typing import Callable, Optional, Set

from swaptrack.core import config
from swaptrack.core.logger import get_logger

logger = get_logger("services.skip_tokens")


class SkipTokenCache:
    """
    TTL-cached set of mints excluded from enrichment.
    A failed refresh still counts as a refresh: the stale set is served until
    the next TTL window instead of hammering storage on every lookup.
    """

    def __init__(self, gateway, ttl: float = config.SKIP_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.gateway = gateway
        self.ttl = ttl
        self.clock = clock
        self.mints: Set[str] = set()
        self.initialized = False
        self.last_refreshed_at: Optional[float] = None
        self._refresh_lock = asyncio.Lock()

    def _is_stale(self) -> bool:
        if not self.initialized or self.last_refreshed_at is None:
            return True
        return self.clock() - self.last_refreshed_at > self.ttl

    async def refresh(self):
        try:
            rows = await self.gateway.get_skip_tokens()
            self.mints = {row.mint_address for row in rows}
            logger.info(f"Skip-token cache refreshed: {len(self.mints)} mints")
        except Exception as e:
            logger.error(f"Failed to refresh skip-token cache: {e}")
        finally:
            self.initialized = True
            self.last_refreshed_at = self.clock()

    def invalidate(self):
        self.last_refreshed_at = None

    async def should_skip(self, mint: str) -> bool:
        if self._is_stale():
            async with self._refresh_lock:
                # Concurrent callers wait for the refresh already in flight
                if self._is_stale():
                    await self.refresh()
        skip = mint in self.mints
        if skip:
            logger.info(f"Token {mint[:8]}... is in skip list", extra={"mint": mint})
        return skip

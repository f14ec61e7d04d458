"""
Token Enrichment Queue
======================
Newly seen mints wait in `pending`; every tick the loop moves up to
MAX_CONCURRENT - len(processing) of them into `processing` and enriches each
as its own task. A mint is never in both sets, and is never requeued
automatically after processing (success or failure).
"""
import asyncio
from typing import Dict, Optional, Set

from swaptrack.core import config
from swaptrack.core.constants import QUOTE_MINT
from swaptrack.core.errors import PersistenceError
from swaptrack.core.logger import get_logger, log_event
from swaptrack.ingestion.models import TokenRecord
from swaptrack.services.skip_tokens import SkipTokenCache
from swaptrack.services.token_service import TokenService

logger = get_logger("services.token_queue")


class TokenQueueService:
    def __init__(self, gateway, token_service: TokenService,
                 skip_cache: Optional[SkipTokenCache] = None,
                 tick_seconds: float = config.QUEUE_TICK_SECONDS,
                 max_concurrent: int = config.MAX_CONCURRENT):
        self.gateway = gateway
        self.token_service = token_service
        self.skip_cache = skip_cache
        self.tick_seconds = tick_seconds
        self.max_concurrent = max_concurrent

        self.pending: Set[str] = set()
        self.processing: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._running = False

    async def add_token(self, mint: str) -> bool:
        """Queue mint for enrichment. Returns False when it is deduplicated or suppressed."""
        if not mint or mint == QUOTE_MINT:
            return False
        if mint in self.pending or mint in self.processing:
            logger.debug(f"Token {mint[:8]}... already queued/processing", extra={"mint": mint})
            return False

        if self.skip_cache is not None and await self.skip_cache.should_skip(mint):
            return False

        try:
            existing = await self.gateway.get_token(mint)
        except PersistenceError as e:
            logger.error(f"Token lookup failed, not queueing: {e}", extra={"mint": mint})
            return False
        if existing is not None:
            logger.debug(f"Token {mint[:8]}... already stored", extra={"mint": mint})
            return False

        # Re-check: another add may have won while we awaited storage
        if mint in self.pending or mint in self.processing:
            return False

        self.pending.add(mint)
        logger.info(f"Queued token {mint[:8]}... (pending={len(self.pending)})", extra={"mint": mint})
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self._running:
            logger.info("Token queue processor is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._run())
        logger.info("Token queue processor started")

    async def stop(self):
        """Stop admitting work; in-flight enrichments are left to finish."""
        if not self._running:
            return
        self._running = False
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Token queue processor stopped")

    async def wait_idle(self):
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def get_stats(self) -> Dict:
        return {
            "queue_size": len(self.pending),
            "processing": len(self.processing),
            "is_running": self._running,
        }

    def clear_queue(self):
        self.pending.clear()
        logger.info("Token queue cleared")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _run(self):
        while self._running:
            self.process_queue()
            await asyncio.sleep(self.tick_seconds)

    def process_queue(self) -> int:
        """One admission tick. Returns the number of mints moved to processing."""
        free = self.max_concurrent - len(self.processing)
        if free <= 0 or not self.pending:
            return 0

        logger.info(f"Token queue: {len(self.pending)} pending, {len(self.processing)} processing")
        admitted = 0
        for mint in list(self.pending)[:free]:
            self.pending.discard(mint)
            self.processing.add(mint)
            task = asyncio.create_task(self._process(mint))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            admitted += 1
        return admitted

    async def _process(self, mint: str):
        try:
            metadata = await self.token_service.fetch_token_metadata(mint)
            creator = await self.token_service.get_token_creator_info(mint)

            if metadata is None and creator is None:
                logger.warning("No token information fetched; not saving", extra={"mint": mint})
                return

            record = TokenRecord(mint_address=mint)
            if metadata is not None:
                record.token_name = metadata.get("name")
                record.symbol = metadata.get("symbol")
                record.image = metadata.get("image")
            if creator is not None:
                record.creator = creator.creator
                record.dev_buy_amount = creator.dev_buy_amount
                record.dev_buy_amount_decimal = creator.dev_buy_amount_decimal
                record.dev_buy_used_token = creator.dev_buy_used_token
                record.dev_buy_token_amount = creator.dev_buy_token_amount
                record.dev_buy_token_amount_decimal = creator.dev_buy_token_amount_decimal

            await self.gateway.save_token(record)
            log_event(logger, "token_enriched", {
                "mint": mint,
                "metadata": metadata is not None,
                "creator": creator is not None,
            })
        except Exception:
            logger.exception(f"Error processing token {mint[:8]}...", extra={"mint": mint})
        finally:
            self.processing.discard(mint)

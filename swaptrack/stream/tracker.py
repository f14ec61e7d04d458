"""
Transaction Tracker
===================
Owns the tracked address set and the subscribe/reconnect loop.

Reconnection policy (per session end):
  - clean end  -> resubscribe from the last observed slot
  - error      -> wait RETRY_DELAY, then
        last slot known and retry_count < ceiling -> resume from it, retry_count += 1
        otherwise                                 -> drop the resume slot, retry_count = 0
  - any received event resets retry_count to 0
"""
import asyncio
from typing import Callable, Dict, List, Optional

from swaptrack.core import config
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.dispatcher import SwapDispatcher
from swaptrack.ingestion.models import StreamCursor, SwapEvent
from swaptrack.stream.session import StreamSession
from swaptrack.stream.transport import StreamTransport, build_subscribe_request

logger = get_logger("stream.tracker")

STOP_TIMEOUT_SECONDS = 5.0


class TransactionTracker:
    def __init__(self, transport: StreamTransport, dispatcher: SwapDispatcher,
                 on_swap: Callable[[SwapEvent], None],
                 addresses: Optional[List[str]] = None,
                 retry_delay: float = config.RETRY_DELAY_SECONDS,
                 max_retry_with_last_slot: int = config.MAX_RETRY_WITH_LAST_SLOT,
                 commitment: str = config.COMMITMENT):
        self.transport = transport
        self.dispatcher = dispatcher
        self.on_swap = on_swap
        self.retry_delay = retry_delay
        self.max_retry_with_last_slot = max_retry_with_last_slot
        self.commitment = commitment

        self._addresses: List[str] = []
        self._running = False
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._session: Optional[StreamSession] = None
        self.cursor = StreamCursor()

        if addresses:
            self.set_addresses(addresses)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def set_addresses(self, addresses: List[str]):
        self._addresses = [a.strip() for a in addresses if a and a.strip()]
        logger.info(f"Tracking addresses updated: {len(self._addresses)} wallets")

    def get_addresses(self) -> List[str]:
        return list(self._addresses)

    def is_running(self) -> bool:
        return self._running

    async def start(self) -> Dict:
        if self._running:
            return {"success": False, "message": "Tracker is already running"}
        if not self._addresses:
            return {"success": False, "message": "No addresses configured for tracking"}

        self._running = True
        self._stop = asyncio.Event()
        self.cursor = StreamCursor()
        request = build_subscribe_request(self._addresses, commitment=self.commitment)
        self._task = asyncio.create_task(self._subscribe_loop(request))
        logger.info(f"Tracker started for {len(self._addresses)} addresses")
        return {"success": True, "message": f"Tracker started for {len(self._addresses)} addresses"}

    async def stop(self) -> Dict:
        if not self._running:
            return {"success": False, "message": "Tracker is not running"}

        self._stop.set()
        if self._session is not None:
            await self._session.close()

        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=STOP_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Subscribe loop did not exit in time; cancelled")

        self._running = False
        logger.info("Tracker stopped")
        return {"success": True, "message": "Tracker stopped"}

    # ------------------------------------------------------------------
    # Subscribe loop
    # ------------------------------------------------------------------

    async def _subscribe_loop(self, request: Dict):
        cursor = self.cursor
        try:
            while not self._stop.is_set():
                if request.get("fromSlot"):
                    logger.info(f"Starting stream from slot {request['fromSlot']}",
                                extra={"slot": request["fromSlot"]})

                self._session = StreamSession(self.transport, self.dispatcher, self.on_swap, self._stop)
                result = await self._session.run(request, cursor)
                self._session = None

                if self._stop.is_set():
                    break

                if result.ok:
                    logger.info("Stream ended; resubscribing")
                    if cursor.last_slot is not None:
                        request["fromSlot"] = str(cursor.last_slot)
                    continue

                logger.error(f"Stream error: {result.error}", extra={"slot": cursor.last_slot})
                if await self._wait_or_stop(self.retry_delay):
                    break

                if cursor.last_slot is not None and cursor.retry_count < self.max_retry_with_last_slot:
                    cursor.retry_count += 1
                    request["fromSlot"] = str(cursor.last_slot)
                    logger.info(
                        f"Retrying from slot {cursor.last_slot} "
                        f"(attempt {cursor.retry_count}/{self.max_retry_with_last_slot})",
                        extra={"slot": cursor.last_slot},
                    )
                else:
                    logger.warning("Retry ceiling reached; resubscribing from the latest slot")
                    request.pop("fromSlot", None)
                    cursor.last_slot = None
                    cursor.retry_count = 0
        finally:
            self._running = False

    async def _wait_or_stop(self, delay: float) -> bool:
        """Sleep for delay; return True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

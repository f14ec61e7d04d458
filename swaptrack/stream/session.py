import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from swaptrack.core.errors import TransportError
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.dispatcher import SwapDispatcher
from swaptrack.ingestion.models import StreamCursor, SwapEvent
from swaptrack.stream.transport import StreamHandle, StreamTransport

logger = get_logger("stream.session")


class SessionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ENDED = "ended"


@dataclass
class SessionResult:
    cursor: StreamCursor
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _has_signature(message: Dict[str, Any]) -> bool:
    if message.get("signature"):
        return True
    envelope = message.get("transaction") or {}
    return bool((envelope.get("transaction") or {}).get("signatures"))


class StreamSession:
    """
    One subscription: Connecting -> Streaming -> Ended.
    Always resolves with the latest cursor so the tracker can resume.
    """

    def __init__(self, transport: StreamTransport, dispatcher: SwapDispatcher,
                 on_swap: Callable[[SwapEvent], None], stop_event: asyncio.Event):
        self.transport = transport
        self.dispatcher = dispatcher
        self.on_swap = on_swap
        self.stop_event = stop_event
        self.state = SessionState.CONNECTING
        self._handle: Optional[StreamHandle] = None

    async def run(self, request: Dict[str, Any], cursor: StreamCursor) -> SessionResult:
        self.state = SessionState.CONNECTING
        cursor.has_received_message = False

        try:
            self._handle = await self.transport.subscribe(request)
        except TransportError as e:
            self.state = SessionState.ENDED
            return SessionResult(cursor, e)

        self.state = SessionState.STREAMING
        error: Optional[Exception] = None
        try:
            async for message in self._handle:
                if self.stop_event.is_set():
                    break

                cursor.advance(message.get("slot"))
                cursor.has_received_message = True
                # Any received event signals recovery
                cursor.retry_count = 0

                if not _has_signature(message):
                    continue

                try:
                    swap = self.dispatcher.dispatch(message)
                    if swap is not None:
                        self.on_swap(swap)
                except Exception:
                    # One bad transaction never ends the session
                    logger.exception("Failed to handle stream message",
                                     extra={"signature": message.get("signature"), "slot": message.get("slot")})
        except TransportError as e:
            error = e
        finally:
            await self.close()
            self.state = SessionState.ENDED

        return SessionResult(cursor, error)

    async def close(self):
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Error ending stream: {e}")

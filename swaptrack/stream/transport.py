"""
Stream Transport
================
Subscription mechanics behind a small interface so the session/tracker logic
never touches the wire:

    handle = await transport.subscribe(request)
    async for message in handle:   # {"slot", "signature", "transaction"}
        ...
    await handle.close()

HeliusWebsocketTransport speaks Helius' enhanced `transactionSubscribe`.
"""
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import websockets

from swaptrack.core.errors import TransportError
from swaptrack.core.logger import get_logger

logger = get_logger("stream.transport")


def build_subscribe_request(addresses: List[str], commitment: str = "confirmed",
                            from_slot: Optional[int] = None) -> Dict[str, Any]:
    request: Dict[str, Any] = {
        "transactions": {
            "targetWallet": {
                "vote": False,
                "failed": False,
                "accountInclude": list(addresses),
                "accountExclude": [],
                "accountRequired": [],
            },
        },
        "commitment": commitment,
    }
    if from_slot is not None:
        request["fromSlot"] = str(from_slot)
    return request


class StreamHandle(ABC):
    @abstractmethod
    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        ...

    @abstractmethod
    async def close(self):
        """Close the subscription; a pending read must return promptly."""


class StreamTransport(ABC):
    @abstractmethod
    async def subscribe(self, request: Dict[str, Any]) -> StreamHandle:
        """Open a subscription. Raises TransportError if it cannot be opened."""


class WebsocketStreamHandle(StreamHandle):
    def __init__(self, ws):
        self._ws = ws

    async def __aiter__(self):
        try:
            async for raw in self._ws:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    logger.warning("Dropping non-JSON stream frame")
                    continue

                if "error" in msg:
                    raise TransportError(f"subscription error: {msg['error']}")
                if msg.get("method") != "transactionNotification":
                    # Subscription ack or unrelated notification
                    continue

                result = (msg.get("params") or {}).get("result") or {}
                yield {
                    "slot": result.get("slot"),
                    "signature": result.get("signature"),
                    "transaction": result.get("transaction"),
                }
        except websockets.ConnectionClosedOK:
            return
        except websockets.ConnectionClosed as e:
            raise TransportError(f"websocket closed: {e}") from e

    async def close(self):
        await self._ws.close()


class HeliusWebsocketTransport(StreamTransport):
    def __init__(self, ws_url: str, ping_interval: float = 10, ping_timeout: float = 10):
        self.ws_url = ws_url
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

    @staticmethod
    def subscription_message(request: Dict[str, Any]) -> Dict[str, Any]:
        wallet_filter = request["transactions"]["targetWallet"]
        tx_filter = {
            "vote": wallet_filter.get("vote", False),
            "failed": wallet_filter.get("failed", False),
            "accountInclude": wallet_filter.get("accountInclude", []),
        }
        if wallet_filter.get("accountExclude"):
            tx_filter["accountExclude"] = wallet_filter["accountExclude"]
        if wallet_filter.get("accountRequired"):
            tx_filter["accountRequired"] = wallet_filter["accountRequired"]

        options = {
            "commitment": request.get("commitment", "confirmed"),
            "encoding": "jsonParsed",
            "transactionDetails": "full",
            "showRewards": False,
            "maxSupportedTransactionVersion": 0,
        }
        # Replay hint; endpoints without replay support start from the tip
        if request.get("fromSlot"):
            options["fromSlot"] = request["fromSlot"]

        return {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "transactionSubscribe",
            "params": [tx_filter, options],
        }

    async def subscribe(self, request: Dict[str, Any]) -> StreamHandle:
        try:
            ws = await websockets.connect(
                self.ws_url,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, websockets.InvalidHandshake, websockets.InvalidURI) as e:
            raise TransportError(f"connect failed: {e}") from e

        try:
            await ws.send(json.dumps(self.subscription_message(request)))
        except websockets.ConnectionClosed as e:
            raise TransportError(f"subscribe failed: {e}") from e

        return WebsocketStreamHandle(ws)

"""
Shared fakes: an in-memory gateway with the same conflict semantics as the
Postgres one, a scripted stream transport and message builders.
"""
import asyncio
import copy
from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from swaptrack.core.errors import PersistenceError, TransportError
from swaptrack.ingestion.models import SkipToken, SwapEvent, TokenRecord, WalletTokenRecord, utcnow
from swaptrack.stream.transport import StreamHandle, StreamTransport


class InMemoryGateway:
    def __init__(self):
        self.transactions: Dict[str, SwapEvent] = {}
        self.tokens: Dict[str, TokenRecord] = {}
        self.skip_tokens: Dict[str, SkipToken] = {}
        self.pairs: Dict[tuple, WalletTokenRecord] = {}
        self.fail = False
        self.calls: List[str] = []

    def _check(self, op):
        self.calls.append(op)
        if self.fail:
            raise PersistenceError(f"{op}: database unavailable")

    async def initialize(self):
        self._check("initialize")

    def pool_stats(self):
        return {"initialized": True, "pool_size": 1, "pool_available": 1, "requests_waiting": 0}

    async def save_transaction(self, swap: SwapEvent) -> bool:
        self._check("save_transaction")
        if swap.signature in self.transactions:
            return False
        self.transactions[swap.signature] = swap
        return True

    async def get_transactions(self, limit=50, offset=0, from_date=None, to_date=None):
        self._check("get_transactions")
        rows = [dict(s.as_row(), created_at=s.observed_at.isoformat()) for s in self.transactions.values()]
        rows.reverse()
        return rows[offset:offset + limit]

    async def get_transaction_count(self, from_date=None, to_date=None):
        self._check("get_transaction_count")
        return len(self.transactions)

    async def save_token(self, token: TokenRecord):
        self._check("save_token")
        existing = self.tokens.get(token.mint_address)
        self.tokens[token.mint_address] = existing.merge(token) if existing else token

    async def get_token(self, mint: str) -> Optional[TokenRecord]:
        self._check("get_token")
        return self.tokens.get(mint)

    async def get_tokens(self, mints):
        self._check("get_tokens")
        return [self.tokens[m] for m in dict.fromkeys(mints) if m in self.tokens]

    async def add_skip_token(self, mint, reason=None):
        self._check("add_skip_token")
        self.skip_tokens[mint] = SkipToken(mint, reason, utcnow())

    async def remove_skip_token(self, mint) -> bool:
        self._check("remove_skip_token")
        return self.skip_tokens.pop(mint, None) is not None

    async def get_skip_tokens(self):
        self._check("get_skip_tokens")
        return list(self.skip_tokens.values())

    async def is_skip_token(self, mint) -> bool:
        self._check("is_skip_token")
        return mint in self.skip_tokens

    async def save_wallet_token_pair(self, record: WalletTokenRecord):
        self._check("save_wallet_token_pair")
        key = (record.wallet_address, record.token_address)
        existing = self.pairs.get(key)
        if existing is None:
            self.pairs[key] = replace(record)
            return
        # COALESCE(existing, incoming) per column
        for name in ("first_buy_at", "first_buy_amount", "first_sell_at", "first_sell_amount"):
            if getattr(existing, name) is None:
                setattr(existing, name, getattr(record, name))

    def _pair_dict(self, r: WalletTokenRecord):
        return {
            "wallet_address": r.wallet_address,
            "token_address": r.token_address,
            "first_buy_at": r.first_buy_at.isoformat() if r.first_buy_at else None,
            "first_buy_amount": r.first_buy_amount,
            "first_sell_at": r.first_sell_at.isoformat() if r.first_sell_at else None,
            "first_sell_amount": r.first_sell_amount,
        }

    async def get_wallet_tokens(self, wallet):
        self._check("get_wallet_tokens")
        return [self._pair_dict(r) for (w, _), r in self.pairs.items() if w == wallet]

    async def get_token_wallets(self, token, limit=100):
        self._check("get_token_wallets")
        return [self._pair_dict(r) for (_, t), r in self.pairs.items() if t == token][:limit]

    async def get_wallet_token_pairs(self, limit=100, offset=0):
        self._check("get_wallet_token_pairs")
        return [self._pair_dict(r) for r in self.pairs.values()][offset:offset + limit]


HOLD_OPEN = object()


class ScriptedHandle(StreamHandle):
    """
    Yields scripted items; an Exception item is raised as the session error.
    With hold_open the subscription stays up after the last item until closed.
    """

    def __init__(self, items: List[Any], hold_open: bool = False):
        self.items = items
        self.hold_open = hold_open
        self.closed = False
        self._closed_event = asyncio.Event()

    async def __aiter__(self):
        for item in self.items:
            await asyncio.sleep(0)
            if self.closed:
                return
            if isinstance(item, Exception):
                raise item
            yield item
        if self.hold_open:
            await self._closed_event.wait()

    async def close(self):
        self.closed = True
        self._closed_event.set()


class ScriptedTransport(StreamTransport):
    """
    sessions: one entry per subscribe() call. An entry is either a list of
    items for the handle (HOLD_OPEN anywhere keeps it open), or an Exception
    raised by subscribe() itself. When the script runs out, subscribe() fails
    with TransportError.
    """

    def __init__(self, sessions: List[Any]):
        self.sessions = list(sessions)
        self.requests: List[Dict[str, Any]] = []
        self.handles: List[ScriptedHandle] = []
        self.exhausted = asyncio.Event()

    async def subscribe(self, request):
        await asyncio.sleep(0)
        self.requests.append(copy.deepcopy(request))
        if not self.sessions:
            self.exhausted.set()
            raise TransportError("script exhausted")
        entry = self.sessions.pop(0)
        if isinstance(entry, Exception):
            raise entry
        handle = ScriptedHandle([i for i in entry if i is not HOLD_OPEN], hold_open=HOLD_OPEN in entry)
        self.handles.append(handle)
        return handle


def stream_message(signature: Optional[str], slot: int, account_keys: Optional[List[str]] = None,
                   instructions: Optional[List[Dict]] = None, meta: Optional[Dict] = None) -> Dict[str, Any]:
    """A stream message shaped like a jsonParsed transactionNotification result."""
    return {
        "signature": signature,
        "slot": slot,
        "transaction": {
            "transaction": {
                "signatures": [signature] if signature else [],
                "message": {
                    "accountKeys": [
                        {"pubkey": k, "signer": i == 0, "writable": i == 0}
                        for i, k in enumerate(account_keys or [])
                    ],
                    "instructions": instructions or [],
                },
            },
            "meta": meta or {"err": None, "logMessages": [], "innerInstructions": [],
                             "preTokenBalances": [], "postTokenBalances": []},
        },
    }


@pytest.fixture
def gateway():
    return InMemoryGateway()

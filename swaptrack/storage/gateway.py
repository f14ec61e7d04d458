"""
Persistence Gateway
===================
All SQL lives here. Idempotency and first-write-wins are enforced by the
statements themselves (ON CONFLICT / COALESCE), never by read-then-write.

psycopg errors are translated at this boundary:
  UniqueViolation -> PersistenceConflict
  psycopg.Error   -> PersistenceError
"""
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import psycopg

from swaptrack.core import db
from swaptrack.core.errors import PersistenceConflict, PersistenceError
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.models import SkipToken, SwapEvent, TokenRecord, WalletTokenRecord

logger = get_logger("storage.gateway")


def _num(value) -> Optional[str]:
    """NUMERIC(40,0) -> decimal string (amounts never go through float)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(int(value))
    return str(value)


def _int_or_none(value) -> Optional[int]:
    return int(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _end_of_day(to_date: str) -> str:
    # Bare dates are inclusive of the whole day
    return f"{to_date} 23:59:59" if len(to_date) == 10 else to_date


@asynccontextmanager
async def _translate_errors(operation: str):
    try:
        yield
    except psycopg.errors.UniqueViolation as e:
        raise PersistenceConflict(f"{operation}: {e}") from e
    except psycopg.Error as e:
        raise PersistenceError(f"{operation}: {e}") from e


class PostgresGateway:
    def __init__(self, connection=None):
        self.connection = connection or db.get_db_connection

    async def initialize(self):
        async with _translate_errors("initialize"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(db.SCHEMA_SQL)
                await conn.commit()
        logger.info("Database schema ensured")

    def pool_stats(self) -> Dict[str, Any]:
        if db.pool is None:
            return {"initialized": False}
        stats = db.pool.get_stats()
        return {
            "initialized": True,
            "pool_size": stats.get("pool_size"),
            "pool_available": stats.get("pool_available"),
            "requests_waiting": stats.get("requests_waiting"),
        }

    # ------------------------------------------------------------------
    # Raw swap events
    # ------------------------------------------------------------------

    async def save_transaction(self, swap: SwapEvent) -> bool:
        """Insert a raw swap. Returns False when the signature was already stored."""
        row = swap.as_row()
        async with _translate_errors("save_transaction"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO transactions (
                            transaction_id, platform, type, mint_from, mint_to,
                            in_amount, out_amount, fee_payer, slot
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (transaction_id) DO NOTHING
                        """,
                        (
                            row["transaction_id"], row["platform"], row["type"],
                            row["mint_from"], row["mint_to"],
                            int(row["in_amount"]), int(row["out_amount"]),
                            row["fee_payer"], row["slot"],
                        ),
                    )
                    inserted = cur.rowcount == 1
                await conn.commit()
        return inserted

    async def get_transactions(self, limit: int = 50, offset: int = 0,
                               from_date: Optional[str] = None,
                               to_date: Optional[str] = None) -> List[Dict[str, Any]]:
        where, params = self._date_filter(from_date, to_date)
        async with _translate_errors("get_transactions"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT id, transaction_id, platform, type, mint_from, mint_to,
                               in_amount, out_amount, fee_payer, slot, created_at
                        FROM transactions
                        {where}
                        ORDER BY created_at DESC
                        LIMIT %s OFFSET %s
                        """,
                        (*params, limit, offset),
                    )
                    rows = await cur.fetchall()
        return [
            {
                "id": r[0],
                "transaction_id": r[1],
                "platform": r[2],
                "type": r[3],
                "mint_from": r[4],
                "mint_to": r[5],
                "in_amount": _num(r[6]),
                "out_amount": _num(r[7]),
                "fee_payer": r[8],
                "slot": r[9],
                "created_at": _iso(r[10]),
            }
            for r in rows
        ]

    async def get_transaction_count(self, from_date: Optional[str] = None,
                                    to_date: Optional[str] = None) -> int:
        where, params = self._date_filter(from_date, to_date)
        async with _translate_errors("get_transaction_count"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(f"SELECT COUNT(*) FROM transactions {where}", params)
                    row = await cur.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _date_filter(from_date: Optional[str], to_date: Optional[str]):
        clauses, params = [], []
        if from_date:
            clauses.append("created_at >= %s")
            params.append(from_date)
        if to_date:
            clauses.append("created_at <= %s")
            params.append(_end_of_day(to_date))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, tuple(params)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def save_token(self, token: TokenRecord):
        """Upsert; non-null incoming values win, nulls never erase stored data."""
        async with _translate_errors("save_token"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO tokens (
                            mint_address, token_name, symbol, image, creator,
                            dev_buy_amount, dev_buy_amount_decimal, dev_buy_used_token,
                            dev_buy_token_amount, dev_buy_token_amount_decimal
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (mint_address) DO UPDATE SET
                            token_name = COALESCE(EXCLUDED.token_name, tokens.token_name),
                            symbol = COALESCE(EXCLUDED.symbol, tokens.symbol),
                            image = COALESCE(EXCLUDED.image, tokens.image),
                            creator = COALESCE(EXCLUDED.creator, tokens.creator),
                            dev_buy_amount = COALESCE(EXCLUDED.dev_buy_amount, tokens.dev_buy_amount),
                            dev_buy_amount_decimal = COALESCE(EXCLUDED.dev_buy_amount_decimal, tokens.dev_buy_amount_decimal),
                            dev_buy_used_token = COALESCE(EXCLUDED.dev_buy_used_token, tokens.dev_buy_used_token),
                            dev_buy_token_amount = COALESCE(EXCLUDED.dev_buy_token_amount, tokens.dev_buy_token_amount),
                            dev_buy_token_amount_decimal = COALESCE(EXCLUDED.dev_buy_token_amount_decimal, tokens.dev_buy_token_amount_decimal),
                            updated_at = NOW()
                        """,
                        (
                            token.mint_address, token.token_name, token.symbol, token.image,
                            token.creator,
                            _int_or_none(token.dev_buy_amount), token.dev_buy_amount_decimal,
                            token.dev_buy_used_token,
                            _int_or_none(token.dev_buy_token_amount), token.dev_buy_token_amount_decimal,
                        ),
                    )
                await conn.commit()

    _TOKEN_COLUMNS = """
        mint_address, token_name, symbol, image, creator,
        dev_buy_amount, dev_buy_amount_decimal, dev_buy_used_token,
        dev_buy_token_amount, dev_buy_token_amount_decimal
    """

    @staticmethod
    def _token_from_row(r) -> TokenRecord:
        return TokenRecord(
            mint_address=r[0],
            token_name=r[1],
            symbol=r[2],
            image=r[3],
            creator=r[4],
            dev_buy_amount=_num(r[5]),
            dev_buy_amount_decimal=r[6],
            dev_buy_used_token=r[7],
            dev_buy_token_amount=_num(r[8]),
            dev_buy_token_amount_decimal=r[9],
        )

    async def get_token(self, mint: str) -> Optional[TokenRecord]:
        async with _translate_errors("get_token"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {self._TOKEN_COLUMNS} FROM tokens WHERE mint_address = %s",
                        (mint,),
                    )
                    row = await cur.fetchone()
        return self._token_from_row(row) if row else None

    async def get_tokens(self, mints: Iterable[str]) -> List[TokenRecord]:
        """Stored records for the given mints; unknown mints are simply absent."""
        mints = list(dict.fromkeys(mints))
        if not mints:
            return []
        async with _translate_errors("get_tokens"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {self._TOKEN_COLUMNS} FROM tokens
                        WHERE mint_address = ANY(%s)
                        """,
                        (mints,),
                    )
                    rows = await cur.fetchall()
        return [self._token_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Skip tokens
    # ------------------------------------------------------------------

    async def add_skip_token(self, mint: str, reason: Optional[str] = None):
        async with _translate_errors("add_skip_token"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO skip_tokens (mint_address, reason)
                        VALUES (%s, %s)
                        ON CONFLICT (mint_address) DO UPDATE SET reason = EXCLUDED.reason
                        """,
                        (mint, reason),
                    )
                await conn.commit()

    async def remove_skip_token(self, mint: str) -> bool:
        async with _translate_errors("remove_skip_token"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("DELETE FROM skip_tokens WHERE mint_address = %s", (mint,))
                    removed = cur.rowcount > 0
                await conn.commit()
        return removed

    async def get_skip_tokens(self) -> List[SkipToken]:
        async with _translate_errors("get_skip_tokens"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT mint_address, reason, created_at FROM skip_tokens ORDER BY created_at DESC"
                    )
                    rows = await cur.fetchall()
        return [SkipToken(mint_address=r[0], reason=r[1], created_at=r[2]) for r in rows]

    async def is_skip_token(self, mint: str) -> bool:
        async with _translate_errors("is_skip_token"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1 FROM skip_tokens WHERE mint_address = %s", (mint,))
                    row = await cur.fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Wallet / token pairs
    # ------------------------------------------------------------------

    async def save_wallet_token_pair(self, record: WalletTokenRecord):
        """First write per direction wins: existing non-null columns are kept."""
        async with _translate_errors("save_wallet_token_pair"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO wallet_token_pairs (
                            wallet_address, token_address,
                            first_buy_at, first_buy_amount, first_sell_at, first_sell_amount
                        )
                        VALUES (%s, %s, %s, %s, %s, %s)
                        ON CONFLICT (wallet_address, token_address) DO UPDATE SET
                            first_buy_at = COALESCE(wallet_token_pairs.first_buy_at, EXCLUDED.first_buy_at),
                            first_buy_amount = COALESCE(wallet_token_pairs.first_buy_amount, EXCLUDED.first_buy_amount),
                            first_sell_at = COALESCE(wallet_token_pairs.first_sell_at, EXCLUDED.first_sell_at),
                            first_sell_amount = COALESCE(wallet_token_pairs.first_sell_amount, EXCLUDED.first_sell_amount)
                        """,
                        (
                            record.wallet_address, record.token_address,
                            record.first_buy_at, _int_or_none(record.first_buy_amount),
                            record.first_sell_at, _int_or_none(record.first_sell_amount),
                        ),
                    )
                await conn.commit()

    _PAIR_COLUMNS = """
        wallet_address, token_address, first_buy_at, first_buy_amount,
        first_sell_at, first_sell_amount, created_at
    """

    @staticmethod
    def _pair_from_row(r) -> Dict[str, Any]:
        return {
            "wallet_address": r[0],
            "token_address": r[1],
            "first_buy_at": _iso(r[2]),
            "first_buy_amount": _num(r[3]),
            "first_sell_at": _iso(r[4]),
            "first_sell_amount": _num(r[5]),
            "created_at": _iso(r[6]),
        }

    async def get_wallet_tokens(self, wallet: str) -> List[Dict[str, Any]]:
        async with _translate_errors("get_wallet_tokens"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {self._PAIR_COLUMNS} FROM wallet_token_pairs
                        WHERE wallet_address = %s
                        ORDER BY created_at DESC
                        """,
                        (wallet,),
                    )
                    rows = await cur.fetchall()
        return [self._pair_from_row(r) for r in rows]

    async def get_token_wallets(self, token: str, limit: int = 100) -> List[Dict[str, Any]]:
        async with _translate_errors("get_token_wallets"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {self._PAIR_COLUMNS} FROM wallet_token_pairs
                        WHERE token_address = %s
                        ORDER BY first_buy_at ASC NULLS LAST
                        LIMIT %s
                        """,
                        (token, limit),
                    )
                    rows = await cur.fetchall()
        return [self._pair_from_row(r) for r in rows]

    async def get_wallet_token_pairs(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        async with _translate_errors("get_wallet_token_pairs"):
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {self._PAIR_COLUMNS} FROM wallet_token_pairs
                        ORDER BY created_at DESC
                        LIMIT %s OFFSET %s
                        """,
                        (limit, offset),
                    )
                    rows = await cur.fetchall()
        return [self._pair_from_row(r) for r in rows]

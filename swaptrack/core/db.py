from contextlib import asynccontextmanager
from typing import Optional

from psycopg_pool import AsyncConnectionPool

from swaptrack.core.config import DATABASE_URL
from swaptrack.core.logger import get_logger

logger = get_logger("core.db")

# Global pool instance
pool: Optional[AsyncConnectionPool] = None

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS transactions (
    id SERIAL PRIMARY KEY,
    transaction_id VARCHAR(100) UNIQUE NOT NULL,
    platform VARCHAR(50) NOT NULL,
    type VARCHAR(20) NOT NULL,
    mint_from VARCHAR(100) NOT NULL,
    mint_to VARCHAR(100) NOT NULL,
    in_amount NUMERIC(40, 0) NOT NULL,
    out_amount NUMERIC(40, 0) NOT NULL,
    fee_payer VARCHAR(100) NOT NULL,
    slot BIGINT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_transactions_platform ON transactions(platform);
CREATE INDEX IF NOT EXISTS idx_transactions_created_at ON transactions(created_at);
CREATE INDEX IF NOT EXISTS idx_transactions_fee_payer ON transactions(fee_payer);

CREATE TABLE IF NOT EXISTS tokens (
    id SERIAL PRIMARY KEY,
    mint_address VARCHAR(100) UNIQUE NOT NULL,
    token_name TEXT,
    symbol TEXT,
    image TEXT,
    creator VARCHAR(100),
    dev_buy_amount NUMERIC(40, 0),
    dev_buy_amount_decimal INTEGER,
    dev_buy_used_token VARCHAR(100),
    dev_buy_token_amount NUMERIC(40, 0),
    dev_buy_token_amount_decimal INTEGER,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS skip_tokens (
    mint_address VARCHAR(100) PRIMARY KEY,
    reason TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS wallet_token_pairs (
    id SERIAL PRIMARY KEY,
    wallet_address VARCHAR(100) NOT NULL,
    token_address VARCHAR(100) NOT NULL,
    first_buy_at TIMESTAMPTZ,
    first_buy_amount NUMERIC(40, 0),
    first_sell_at TIMESTAMPTZ,
    first_sell_amount NUMERIC(40, 0),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (wallet_address, token_address)
);
CREATE INDEX IF NOT EXISTS idx_wtp_wallet ON wallet_token_pairs(wallet_address);
CREATE INDEX IF NOT EXISTS idx_wtp_token ON wallet_token_pairs(token_address);
"""


async def init_db(conninfo: Optional[str] = None):
    global pool
    logger.info("Initializing async connection pool...")
    pool = AsyncConnectionPool(
        conninfo=conninfo or DATABASE_URL,
        min_size=1,
        max_size=20,
        timeout=10,
        open=False
    )
    await pool.open()
    logger.info("Async pool initialized.")
    return pool


async def close_db():
    global pool
    if pool:
        logger.info("Closing async pool...")
        await pool.close()
        pool = None
        logger.info("Async pool closed.")


@asynccontextmanager
async def get_db_connection():
    if not pool:
        raise RuntimeError("Database pool not initialized")
    async with pool.connection() as conn:
        yield conn

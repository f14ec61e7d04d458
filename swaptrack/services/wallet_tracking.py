from typing import Any, Dict, List, Optional, Union

from swaptrack.core.constants import QUOTE_MINT
from swaptrack.core.errors import PersistenceError
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.models import SwapType, WalletTokenRecord, utcnow

logger = get_logger("services.wallet_tracking")


class WalletTrackingService:
    """
    First buy / first sell per (wallet, token). The first write for each
    direction wins; the COALESCE upsert in the gateway enforces it atomically.
    """

    def __init__(self, gateway):
        self.gateway = gateway

    async def track_wallet_token(self, wallet: Optional[str], mint_from: str, mint_to: str,
                                 in_amount: Optional[str], out_amount: Optional[str],
                                 swap_type: Union[SwapType, str]):
        swap_type = SwapType(swap_type)
        if swap_type == SwapType.BUY:
            token, amount = mint_to, in_amount
        elif swap_type == SwapType.SELL:
            token, amount = mint_from, out_amount
        else:
            return

        if token == QUOTE_MINT or not wallet or not token or not amount:
            return

        now = utcnow()
        record = WalletTokenRecord(wallet_address=wallet, token_address=token)
        if swap_type == SwapType.BUY:
            record.first_buy_at, record.first_buy_amount = now, str(amount)
        else:
            record.first_sell_at, record.first_sell_amount = now, str(amount)

        try:
            await self.gateway.save_wallet_token_pair(record)
            logger.info(f"Tracked {swap_type.value} of {token[:8]}... by {wallet[:8]}...",
                        extra={"wallet": wallet, "mint": token})
        except PersistenceError as e:
            logger.error(f"Error tracking wallet-token pair: {e}", extra={"wallet": wallet, "mint": token})

    async def get_wallet_tokens(self, wallet: str) -> List[Dict[str, Any]]:
        try:
            return await self.gateway.get_wallet_tokens(wallet)
        except PersistenceError as e:
            logger.error(f"Error fetching wallet tokens: {e}", extra={"wallet": wallet})
            return []

    async def get_token_wallets(self, token: str, limit: int = 100) -> List[Dict[str, Any]]:
        try:
            return await self.gateway.get_token_wallets(token, limit)
        except PersistenceError as e:
            logger.error(f"Error fetching token wallets: {e}", extra={"mint": token})
            return []

    async def get_all_wallet_token_pairs(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        try:
            return await self.gateway.get_wallet_token_pairs(limit, offset)
        except PersistenceError as e:
            logger.error(f"Error fetching wallet-token pairs: {e}")
            return []

"""
Token Service
=============
Resolves a mint's creator and dev buy (the first swap into the token):

1. Helius: earliest successful signatures for the mint (one delayed retry for
   freshly minted tokens that the indexer has not caught up with yet).
2. Solscan: bulk-decode those signatures, keep the first one with a token swap
   involving the mint.
3. Pick the swap leg where the mint is the output; its signer is the creator.

Also fronts the Shyft metadata/holdings lookups. Every public method returns
None / [] on failure and logs why.
"""
import asyncio
from typing import Any, Dict, List, Optional

from swaptrack.core import config
from swaptrack.core.errors import EnrichmentFetchFailure
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.models import CreatorInfo
from swaptrack.services.clients import HeliusClient, ShyftClient, SolscanClient

logger = get_logger("services.token")

SWAP_ACTIVITY = "ACTIVITY_TOKEN_SWAP"


def _swap_activities(tx_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """All ACTIVITY_TOKEN_SWAP entries of a Solscan tx, titles first then bodies, in order."""
    activities = []
    for summary in tx_data.get("summaries") or []:
        title = summary.get("title") or {}
        if title.get("activity_type") == SWAP_ACTIVITY:
            activities.append(title)
        for item in summary.get("body") or []:
            if isinstance(item, dict) and item.get("activity_type") == SWAP_ACTIVITY:
                activities.append(item)
    return activities


def _involves(activity: Dict[str, Any], mint: str) -> bool:
    data = activity.get("data") or {}
    return data.get("token_1") == mint or data.get("token_2") == mint


def _amount_str(data: Dict[str, Any], side: int) -> Optional[str]:
    value = data.get(f"amount_{side}_str")
    if value is None and data.get(f"amount_{side}") is not None:
        value = str(data[f"amount_{side}"])
    return value


class TokenService:
    def __init__(self, helius: HeliusClient, solscan: SolscanClient, shyft: ShyftClient,
                 retry_delay: float = config.FIRST_TX_RETRY_DELAY_SECONDS):
        self.helius = helius
        self.solscan = solscan
        self.shyft = shyft
        self.retry_delay = retry_delay

    async def get_first_transactions(self, mint: str, is_retry: bool = False) -> List[str]:
        try:
            signatures = await self.helius.get_transactions_for_address(mint)
        except EnrichmentFetchFailure as e:
            logger.error(f"Failed to fetch first transactions: {e}", extra={"mint": mint})
            return []

        if not signatures and not is_retry:
            logger.info(f"No history yet for {mint[:8]}...; retrying in {self.retry_delay}s",
                        extra={"mint": mint})
            await asyncio.sleep(self.retry_delay)
            return await self.get_first_transactions(mint, is_retry=True)

        return signatures

    async def parse_transactions_until_swap(self, signatures: List[str], mint: str) -> Optional[Dict[str, Any]]:
        if not signatures:
            return None

        try:
            parsed = await self.solscan.get_transaction_actions(signatures, mint)
        except EnrichmentFetchFailure as e:
            logger.warning(f"Failed to parse transactions: {e}", extra={"mint": mint})
            return None

        for tx_data in parsed["data"]:
            if any(_involves(a, mint) for a in _swap_activities(tx_data)):
                logger.info(f"Found first swap in {str(tx_data.get('tx_hash'))[:8]}...",
                            extra={"mint": mint, "signature": tx_data.get("tx_hash")})
                return {"success": True, "data": [tx_data], "metadata": parsed.get("metadata")}

        logger.info(f"No swap found in {len(parsed['data'])} transactions", extra={"mint": mint})
        return None

    def extract_first_buy(self, parsed: Dict[str, Any], mint: str) -> Optional[CreatorInfo]:
        if not parsed or not parsed.get("data"):
            return None

        for activity in _swap_activities(parsed["data"][0]):
            data = activity.get("data")
            if not data:
                continue

            if data.get("token_2") == mint:
                spent, received = 1, 2
            elif data.get("token_1") == mint:
                spent, received = 2, 1
            else:
                continue

            return CreatorInfo(
                creator=data.get("account") or data.get("owner_1"),
                dev_buy_amount=_amount_str(data, spent),
                dev_buy_amount_decimal=data.get(f"token_decimal_{spent}"),
                dev_buy_used_token=data.get(f"token_{spent}"),
                dev_buy_token_amount=_amount_str(data, received),
                dev_buy_token_amount_decimal=data.get(f"token_decimal_{received}"),
            )

        return None

    async def get_token_creator_info(self, mint: str) -> Optional[CreatorInfo]:
        signatures = await self.get_first_transactions(mint)
        if not signatures:
            logger.info("No transactions found for token", extra={"mint": mint})
            return None

        parsed = await self.parse_transactions_until_swap(signatures, mint)
        if parsed is None:
            return None

        info = self.extract_first_buy(parsed, mint)
        if info is None:
            logger.info("Could not extract buy information from swap transaction", extra={"mint": mint})
        return info

    async def fetch_token_metadata(self, mint: str) -> Optional[Dict[str, Optional[str]]]:
        try:
            return await self.shyft.get_token_info(mint)
        except EnrichmentFetchFailure as e:
            logger.warning(f"Failed to fetch token metadata: {e}", extra={"mint": mint})
            return None

    async def get_wallet_holdings(self, wallet: str) -> List[Dict[str, Any]]:
        try:
            return await self.shyft.get_wallet_tokens(wallet)
        except EnrichmentFetchFailure as e:
            logger.warning(f"Failed to fetch wallet holdings: {e}", extra={"wallet": wallet})
            return []

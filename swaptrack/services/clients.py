"""
Enrichment API Clients
======================
Thin async wrappers over the third-party HTTP APIs used for token enrichment:

  - Helius RPC  : getTransactionsForAddress (earliest signatures of a mint)
  - Solscan Pro : transaction/actions/multi (bulk decoded actions)
  - Shyft       : token/get_info (metadata), wallet/all_tokens (holdings)

Each call raises EnrichmentFetchFailure on transport/HTTP/payload errors;
callers decide whether that is fatal.
"""
from typing import Any, Dict, List, Optional

import httpx

from swaptrack.core import config
from swaptrack.core.errors import EnrichmentFetchFailure
from swaptrack.core.logger import get_logger

logger = get_logger("services.clients")

SOLSCAN_ACTIONS_MULTI_URL = "https://pro-api.solscan.io/v2.0/transaction/actions/multi"
SHYFT_TOKEN_INFO_URL = "https://api.shyft.to/sol/v1/token/get_info"
SHYFT_WALLET_TOKENS_URL = "https://api.shyft.to/sol/v1/wallet/all_tokens"
SHYFT_NETWORK = "mainnet-beta"


def new_http_client(timeout: float = config.HTTP_TIMEOUT_SECONDS, **kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, **kwargs)


class HeliusClient:
    def __init__(self, http: httpx.AsyncClient, rpc_url: str = config.HELIUS_RPC_URL):
        self.http = http
        self.rpc_url = rpc_url

    async def get_transactions_for_address(self, address: str,
                                           limit: int = config.FIRST_TX_PAGE_SIZE) -> List[str]:
        """Oldest successful signatures touching address, ascending."""
        payload = {
            "jsonrpc": "2.0",
            "id": "swaptrack",
            "method": "getTransactionsForAddress",
            "params": [
                address,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "sortOrder": "asc",
                    "limit": limit,
                    "transactionDetails": "signatures",
                    "filters": {"status": "succeeded"},
                },
            ],
        }
        try:
            resp = await self.http.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentFetchFailure("helius", address, str(e)) from e

        if data.get("error"):
            raise EnrichmentFetchFailure("helius", address, str(data["error"]))

        items = (data.get("result") or {}).get("data") or []
        return [item["signature"] for item in items if item.get("signature")]


class SolscanClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str = config.SOLSCAN_API_KEY):
        self.http = http
        self.api_key = api_key

    async def get_transaction_actions(self, signatures: List[str], mint: str = "") -> Dict[str, Any]:
        """One bulk call; returns the raw {success, data, metadata} payload."""
        params = [("tx", sig) for sig in signatures]
        try:
            resp = await self.http.get(
                SOLSCAN_ACTIONS_MULTI_URL,
                params=params,
                headers={"token": self.api_key},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentFetchFailure("solscan", mint, str(e)) from e

        if not data.get("success") or not data.get("data"):
            raise EnrichmentFetchFailure("solscan", mint, "empty or unsuccessful response")
        return data


class ShyftClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str = config.SHYFT_API_KEY):
        self.http = http
        self.api_key = api_key

    async def _get(self, url: str, params: Dict[str, str], subject: str) -> Any:
        try:
            resp = await self.http.get(url, params=params, headers={"x-api-key": self.api_key})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentFetchFailure("shyft", subject, str(e)) from e

        if not data.get("success") or data.get("result") is None:
            raise EnrichmentFetchFailure("shyft", subject, data.get("message") or "unsuccessful response")
        return data["result"]

    async def get_token_info(self, mint: str) -> Dict[str, Optional[str]]:
        result = await self._get(
            SHYFT_TOKEN_INFO_URL,
            {"network": SHYFT_NETWORK, "token_address": mint},
            mint,
        )
        return {
            "name": result.get("name") or "Unknown Token",
            "symbol": result.get("symbol") or "???",
            "image": result.get("image") or None,
        }

    async def get_wallet_tokens(self, wallet: str) -> List[Dict[str, Any]]:
        result = await self._get(
            SHYFT_WALLET_TOKENS_URL,
            {"network": SHYFT_NETWORK, "wallet": wallet},
            wallet,
        )
        holdings = []
        for item in result:
            info = item.get("info") or {}
            holdings.append({
                "mint": item.get("address"),
                "balance": item.get("balance"),
                "name": info.get("name"),
                "symbol": info.get("symbol"),
                "decimals": info.get("decimals"),
                "image": info.get("image"),
            })
        return holdings

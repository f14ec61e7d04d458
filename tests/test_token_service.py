"""
Enrichment clients and the creator/dev-buy resolution against mocked HTTP.
"""
import httpx
import pytest

from swaptrack.core.constants import SOL_MINT
from swaptrack.services.clients import HeliusClient, ShyftClient, SolscanClient
from swaptrack.services.token_service import TokenService

MINT = "NewMint111111111111111111111111111111111pump"
DEV = "DevWa11et11111111111111111111111111111111111"


def swap_activity(token_1, token_2, amount_1, amount_2):
    return {
        "activity_type": "ACTIVITY_TOKEN_SWAP",
        "program_id": "pump",
        "data": {
            "account": DEV,
            "token_1": token_1, "token_2": token_2,
            "amount_1": amount_1, "amount_1_str": str(amount_1),
            "amount_2": amount_2, "amount_2_str": str(amount_2),
            "token_decimal_1": 9, "token_decimal_2": 6,
        },
    }


SOLSCAN_PAYLOAD = {
    "success": True,
    "data": [
        {"tx_hash": "create-tx", "summaries": [{"title": {"activity_type": "ACTIVITY_SPL_INIT_MINT"}, "body": []}]},
        {"tx_hash": "buy-tx", "summaries": [{
            "title": {"activity_type": "ACTIVITY_AGG_TOKEN_SWAP"},
            "body": [swap_activity(SOL_MINT, MINT, 1_500_000_000, 52_000_000_000_000)],
        }]},
    ],
    "metadata": {"tokens": {}},
}


class Router:
    """Routes mocked requests by host; records every call."""

    def __init__(self, helius_pages=None, solscan=SOLSCAN_PAYLOAD, shyft_ok=True):
        self.helius_pages = list(helius_pages if helius_pages is not None else [["create-tx", "buy-tx"]])
        self.solscan = solscan
        self.shyft_ok = shyft_ok
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if "helius" in host:
            sigs = self.helius_pages.pop(0) if self.helius_pages else []
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": {"data": [{"signature": s} for s in sigs]}})
        if "solscan" in host:
            return httpx.Response(200, json=self.solscan)
        if "shyft" in host:
            if not self.shyft_ok:
                return httpx.Response(500, json={"success": False})
            if request.url.path.endswith("get_info"):
                return httpx.Response(200, json={"success": True, "result": {
                    "name": "New Coin", "symbol": "NEW", "image": "https://img/new.png",
                }})
            return httpx.Response(200, json={"success": True, "result": [
                {"address": MINT, "balance": 12.5, "info": {"name": "New Coin", "symbol": "NEW", "decimals": 6}},
            ]})
        return httpx.Response(404)


@pytest.fixture
def make_service():
    def _make(router):
        http = httpx.AsyncClient(transport=httpx.MockTransport(router), timeout=5)
        return TokenService(
            HeliusClient(http, rpc_url="https://mainnet.helius-rpc.com/?api-key=test"),
            SolscanClient(http, api_key="solscan-key"),
            ShyftClient(http, api_key="shyft-key"),
            retry_delay=0,
        )

    yield _make


async def test_creator_info_from_first_swap(make_service):
    router = Router()
    info = await make_service(router).get_token_creator_info(MINT)

    assert info.creator == DEV
    assert info.dev_buy_amount == "1500000000"
    assert info.dev_buy_amount_decimal == 9
    assert info.dev_buy_used_token == SOL_MINT
    assert info.dev_buy_token_amount == "52000000000000"
    assert info.dev_buy_token_amount_decimal == 6

    helius_body = router.requests[0].content
    assert b'"sortOrder":"asc"' in helius_body.replace(b" ", b"")
    solscan = router.requests[1]
    assert solscan.headers["token"] == "solscan-key"
    assert solscan.url.params.get_list("tx") == ["create-tx", "buy-tx"]


async def test_empty_history_is_retried_once(make_service):
    router = Router(helius_pages=[[], ["buy-tx"]])
    service = make_service(router)

    assert await service.get_first_transactions(MINT) == ["buy-tx"]
    assert sum(1 for r in router.requests if "helius" in r.url.host) == 2


async def test_empty_history_twice_gives_up(make_service):
    router = Router(helius_pages=[[], []])
    assert await make_service(router).get_token_creator_info(MINT) is None
    assert not any("solscan" in r.url.host for r in router.requests)


async def test_no_swap_involving_mint(make_service):
    payload = dict(SOLSCAN_PAYLOAD, data=[{"tx_hash": "x", "summaries": [{
        "title": swap_activity(SOL_MINT, "SomeOtherMint", 1, 2), "body": [],
    }]}])
    assert await make_service(Router(solscan=payload)).get_token_creator_info(MINT) is None


def test_extract_first_buy_when_mint_is_token_1():
    service = TokenService(None, None, None)
    parsed = {"data": [{"summaries": [{"title": swap_activity(MINT, SOL_MINT, 9000, 250), "body": []}]}]}
    info = service.extract_first_buy(parsed, MINT)

    assert info.dev_buy_used_token == SOL_MINT
    assert info.dev_buy_amount == "250"
    assert info.dev_buy_amount_decimal == 6
    assert info.dev_buy_token_amount == "9000"
    assert info.dev_buy_token_amount_decimal == 9


async def test_metadata_and_holdings(make_service):
    router = Router()
    service = make_service(router)

    assert await service.fetch_token_metadata(MINT) == {
        "name": "New Coin", "symbol": "NEW", "image": "https://img/new.png",
    }
    holdings = await service.get_wallet_holdings(DEV)
    assert holdings[0]["mint"] == MINT
    assert holdings[0]["symbol"] == "NEW"
    assert router.requests[0].headers["x-api-key"] == "shyft-key"


async def test_shyft_failure_returns_none(make_service):
    service = make_service(Router(shyft_ok=False))
    assert await service.fetch_token_metadata(MINT) is None
    assert await service.get_wallet_holdings(DEV) == []

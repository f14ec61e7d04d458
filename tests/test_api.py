"""
Operator API against in-memory services.

Tests:
1. Tracker controls (addresses, start/stop guards, status)
2. Stored swaps listing and date validation
3. Skip list CRUD and token lookup
4. Wallet/token pair views and the queue snapshot
"""
import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import HOLD_OPEN, ScriptedTransport
from swaptrack.api.routers import tokens, tracker, transactions, wallets
from swaptrack.core.constants import SOL_MINT
from swaptrack.ingestion.models import Platform, SwapEvent, SwapType, TokenRecord, WalletTokenRecord, utcnow
from swaptrack.main import build_services


def shyft_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "result": [
        {"address": "TOKEN", "balance": 3, "info": {"name": "Tok", "symbol": "TOK", "decimals": 6}},
    ]})


@pytest.fixture
def api(gateway):
    app = FastAPI()
    for module in (tracker, transactions, wallets, tokens):
        app.include_router(module.router)

    http = httpx.AsyncClient(transport=httpx.MockTransport(shyft_handler))
    services = build_services(gateway, ScriptedTransport([[HOLD_OPEN]]), http)
    services.tracker.set_addresses([])
    app.state.services = services

    with TestClient(app) as client:
        yield client, services


def test_addresses_require_at_least_one_valid(api):
    client, _ = api
    response = client.post("/api/addresses", json={"addresses": ["  ", ""]})
    assert response.status_code == 400

    response = client.post("/api/addresses", json={"addresses": [" WalletA ", "WalletB"]})
    assert response.status_code == 200
    assert response.json()["addresses"] == ["WalletA", "WalletB"]
    assert client.get("/api/status").json()["addresses"] == ["WalletA", "WalletB"]


def test_start_stop_guards(api):
    client, services = api

    response = client.post("/api/start")
    assert response.status_code == 400
    assert response.json()["detail"] == "No addresses configured for tracking"

    client.post("/api/addresses", json={"addresses": ["WalletA"]})
    assert client.post("/api/start").status_code == 200
    assert client.get("/api/status").json()["is_running"] is True

    response = client.post("/api/start")
    assert response.status_code == 400
    assert response.json()["detail"] == "Tracker is already running"

    assert client.post("/api/stop").status_code == 200
    assert services.tracker.is_running() is False

    response = client.post("/api/stop")
    assert response.status_code == 400
    assert response.json()["detail"] == "Tracker is not running"


def test_status_shape(api):
    client, _ = api
    status = client.get("/api/status").json()

    assert status["is_running"] is False
    assert status["last_slot"] is None
    assert status["retry_count"] == 0
    assert "decode_errors" in status["dispatcher"]
    assert status["side_effects"]["dropped"] == 0


def test_transactions_listing(api, gateway):
    client, _ = api
    for sig in ("sig1", "sig2"):
        gateway.transactions[sig] = SwapEvent(
            signature=sig, platform=Platform.PUMP_FUN, type=SwapType.BUY,
            mint_from=SOL_MINT, mint_to="TOKEN", in_amount="10", out_amount="20", fee_payer="W",
        )

    body = client.get("/api/transactions", params={"limit": 1, "fromDate": "2024-01-01"}).json()
    assert body["total"] == 2
    assert body["limit"] == 1
    assert body["from_date"] == "2024-01-01"
    assert [t["transaction_id"] for t in body["transactions"]] == ["sig2"]


def test_transactions_rejects_bad_dates_and_reports_db_errors(api, gateway):
    client, _ = api
    assert client.get("/api/transactions", params={"fromDate": "yesterday"}).status_code == 400

    gateway.fail = True
    assert client.get("/api/transactions").status_code == 500


def test_skip_token_crud_invalidates_cache(api):
    client, services = api
    services.skip_cache.initialized = True

    response = client.post("/api/skip-tokens", json={"mint_address": "SPAM", "reason": "rug"})
    assert response.status_code == 200
    assert services.skip_cache.last_refreshed_at is None

    listed = client.get("/api/skip-tokens").json()
    assert [(s["mint_address"], s["reason"]) for s in listed] == [("SPAM", "rug")]

    assert client.delete("/api/skip-tokens/SPAM").status_code == 200
    assert client.delete("/api/skip-tokens/SPAM").status_code == 404
    assert client.post("/api/skip-tokens", json={"mint_address": "  "}).status_code == 400


def test_token_lookup(api, gateway):
    client, _ = api
    assert client.get("/api/tokens/MISSING").status_code == 404

    gateway.tokens["TOKEN"] = TokenRecord(mint_address="TOKEN", symbol="TOK", creator="Dev")
    body = client.get("/api/tokens/TOKEN").json()
    assert body["symbol"] == "TOK"
    assert body["creator"] == "Dev"


def test_wallet_views(api, gateway):
    client, _ = api
    gateway.pairs[("W", "TOKEN")] = WalletTokenRecord(
        "W", "TOKEN", first_buy_at=utcnow(), first_buy_amount="100",
    )

    body = client.get("/api/wallets/W/tokens").json()
    assert body["count"] == 1
    assert body["tokens"][0]["first_buy_amount"] == "100"

    body = client.get("/api/tokens/TOKEN/wallets").json()
    assert [w["wallet_address"] for w in body["wallets"]] == ["W"]

    assert len(client.get("/api/wallet-token-pairs").json()["pairs"]) == 1

    holdings = client.get("/api/wallets/W/holdings").json()
    assert holdings["holdings"][0]["symbol"] == "TOK"


def test_queue_snapshot(api):
    client, _ = api
    body = client.get("/api/queue").json()
    assert body["token_queue"] == {"queue_size": 0, "processing": 0, "is_running": False}
    assert body["side_effects"]["pending"] == 0


def test_token_batch_lookup(api, gateway):
    client, _ = api
    gateway.tokens["A"] = TokenRecord(mint_address="A", symbol="AAA")
    gateway.tokens["B"] = TokenRecord(mint_address="B", symbol="BBB")

    body = client.get("/api/tokens", params={"mints": "A, B,C,A"}).json()
    assert sorted(t["symbol"] for t in body["tokens"]) == ["AAA", "BBB"]
    assert body["missing"] == ["C"]

    assert client.get("/api/tokens", params={"mints": " , "}).status_code == 400
    assert client.get("/api/tokens").status_code == 422

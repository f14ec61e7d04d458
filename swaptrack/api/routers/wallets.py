"""
Wallets Router
==============
First buy / first sell records per wallet and per token, plus live holdings.
"""
from fastapi import APIRouter, Depends, Query

from swaptrack.api.deps import Services, get_services

router = APIRouter(prefix="/api", tags=["wallets"])


@router.get("/wallets/{wallet}/tokens")
async def get_wallet_tokens(wallet: str, services: Services = Depends(get_services)):
    tokens = await services.wallet_tracking.get_wallet_tokens(wallet)
    return {"wallet": wallet, "tokens": tokens, "count": len(tokens)}


@router.get("/wallets/{wallet}/holdings")
async def get_wallet_holdings(wallet: str, services: Services = Depends(get_services)):
    holdings = await services.token_service.get_wallet_holdings(wallet)
    return {"wallet": wallet, "holdings": holdings, "count": len(holdings)}


@router.get("/tokens/{mint}/wallets")
async def get_token_wallets(
    mint: str,
    limit: int = Query(100, ge=1, le=1000),
    services: Services = Depends(get_services),
):
    wallets = await services.wallet_tracking.get_token_wallets(mint, limit)
    return {"token": mint, "wallets": wallets, "count": len(wallets)}


@router.get("/wallet-token-pairs")
async def get_wallet_token_pairs(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    pairs = await services.wallet_tracking.get_all_wallet_token_pairs(limit, offset)
    return {"pairs": pairs, "limit": limit, "offset": offset}

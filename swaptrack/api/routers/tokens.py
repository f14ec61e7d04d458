"""
Tokens Router
=============
Enriched token records and the skip list that suppresses enrichment.
"""
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from swaptrack.api.deps import Services, get_services
from swaptrack.core.errors import PersistenceError
from swaptrack.core.logger import get_logger

logger = get_logger("api.tokens")
router = APIRouter(prefix="/api", tags=["tokens"])

MAX_TOKENS_PER_REQUEST = 100


class SkipTokenRequest(BaseModel):
    mint_address: str
    reason: Optional[str] = None


@router.get("/tokens")
async def get_tokens(
    mints: str = Query(..., description="Comma-separated mint addresses"),
    services: Services = Depends(get_services),
):
    requested = [m.strip() for m in mints.split(",") if m.strip()]
    if not requested:
        raise HTTPException(status_code=400, detail="At least one mint is required")
    if len(requested) > MAX_TOKENS_PER_REQUEST:
        raise HTTPException(status_code=400, detail=f"At most {MAX_TOKENS_PER_REQUEST} mints per request")

    try:
        tokens = await services.gateway.get_tokens(requested)
    except PersistenceError as e:
        logger.error(f"Error fetching tokens: {e}")
        raise HTTPException(status_code=500, detail="database error")

    found = {t.mint_address for t in tokens}
    return {
        "tokens": [asdict(t) for t in tokens],
        "missing": [m for m in requested if m not in found],
    }


@router.get("/tokens/{mint}")
async def get_token(mint: str, services: Services = Depends(get_services)):
    try:
        token = await services.gateway.get_token(mint)
    except PersistenceError as e:
        logger.error(f"Error fetching token: {e}", extra={"mint": mint})
        raise HTTPException(status_code=500, detail="database error")

    if token is None:
        raise HTTPException(status_code=404, detail="Token not found")
    return asdict(token)


@router.get("/skip-tokens")
async def list_skip_tokens(services: Services = Depends(get_services)):
    try:
        rows = await services.gateway.get_skip_tokens()
    except PersistenceError as e:
        logger.error(f"Error listing skip tokens: {e}")
        raise HTTPException(status_code=500, detail="database error")

    return [
        {
            "mint_address": r.mint_address,
            "reason": r.reason,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


@router.post("/skip-tokens")
async def add_skip_token(payload: SkipTokenRequest, services: Services = Depends(get_services)):
    mint = payload.mint_address.strip()
    if not mint:
        raise HTTPException(status_code=400, detail="mint_address is required")

    try:
        await services.gateway.add_skip_token(mint, payload.reason)
    except PersistenceError as e:
        logger.error(f"Error adding skip token: {e}", extra={"mint": mint})
        raise HTTPException(status_code=500, detail="database error")

    services.skip_cache.invalidate()
    logger.info(f"Skip token added: {mint}", extra={"mint": mint})
    return {"success": True, "mint_address": mint}


@router.delete("/skip-tokens/{mint}")
async def remove_skip_token(mint: str, services: Services = Depends(get_services)):
    try:
        removed = await services.gateway.remove_skip_token(mint)
    except PersistenceError as e:
        logger.error(f"Error removing skip token: {e}", extra={"mint": mint})
        raise HTTPException(status_code=500, detail="database error")

    if not removed:
        raise HTTPException(status_code=404, detail="Skip token not found")

    services.skip_cache.invalidate()
    return {"success": True, "mint_address": mint}

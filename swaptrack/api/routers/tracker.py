"""
Tracker Router
==============
Operator controls for the stream: tracked addresses, start/stop, status.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from swaptrack.api.deps import Services, get_services
from swaptrack.core.logger import get_logger

logger = get_logger("api.tracker")
router = APIRouter(prefix="/api", tags=["tracker"])


class AddressesRequest(BaseModel):
    addresses: List[str]


@router.get("/status")
async def get_status(services: Services = Depends(get_services)):
    tracker = services.tracker
    return {
        "is_running": tracker.is_running(),
        "addresses": tracker.get_addresses(),
        "last_slot": tracker.cursor.last_slot,
        "retry_count": tracker.cursor.retry_count,
        "dispatcher": dict(services.dispatcher.stats),
        "side_effects": services.side_effects.stats(),
    }


@router.post("/addresses")
async def set_addresses(payload: AddressesRequest, services: Services = Depends(get_services)):
    valid = [a.strip() for a in payload.addresses if a and a.strip()]
    if not valid:
        raise HTTPException(status_code=400, detail="At least one valid address is required")

    services.tracker.set_addresses(valid)
    logger.info(f"Addresses configured from API: {len(valid)}")
    return {"success": True, "message": "Addresses updated successfully", "addresses": valid}


@router.post("/start")
async def start_tracker(services: Services = Depends(get_services)):
    result = await services.tracker.start()
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result


@router.post("/stop")
async def stop_tracker(services: Services = Depends(get_services)):
    result = await services.tracker.stop()
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result


@router.get("/queue")
async def get_queue(services: Services = Depends(get_services)):
    """Enrichment queue and side-effect backlog."""
    return {
        "token_queue": services.token_queue.get_stats(),
        "side_effects": services.side_effects.stats(),
    }

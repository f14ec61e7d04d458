from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from swaptrack.api.deps import Services, get_services
from swaptrack.core.errors import PersistenceError
from swaptrack.core.logger import get_logger

logger = get_logger("api.transactions")
router = APIRouter(prefix="/api", tags=["transactions"])


def _check_date(name: str, value: Optional[str]):
    if value is None:
        return
    try:
        datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")


@router.get("/transactions")
async def get_transactions(
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    services: Services = Depends(get_services),
):
    """Stored swaps, newest first, with optional inclusive date range."""
    _check_date("fromDate", from_date)
    _check_date("toDate", to_date)

    try:
        transactions = await services.gateway.get_transactions(limit, offset, from_date, to_date)
        total = await services.gateway.get_transaction_count(from_date, to_date)
    except PersistenceError as e:
        logger.error(f"Error fetching transactions: {e}")
        raise HTTPException(status_code=500, detail="database error")

    return {
        "transactions": transactions,
        "total": total,
        "limit": limit,
        "offset": offset,
        "from_date": from_date,
        "to_date": to_date,
    }

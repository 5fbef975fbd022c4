from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional, Literal
import math

from database import get_db
from routers.tokens import check_address, get_reconciler
from schemas.tokens import Network, TransferItem, TransfersResponse, TransferPage, Pagination, TransferStats
from services.cache import ReconciliationCache
from services.reconciler import TokenReconciler

router = APIRouter()

Period = Literal["day", "week", "month", "year"]


@router.get("", response_model=TransferPage)
def list_transfers(
    address: Optional[str] = None,
    token_address: Optional[str] = None,
    network: Optional[Network] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Stored transfers, newest block first"""
    if not address and not token_address:
        raise HTTPException(status_code=400, detail="Address or token address is required")
    filters = {
        "address": check_address(address) if address else None,
        "token_address": check_address(token_address, "token_address") if token_address else None,
        "network": network,
    }
    records, total = ReconciliationCache(db).query_transfers(filters, page=page, page_size=limit)
    return TransferPage(
        transfers=[TransferItem.from_record(record) for record in records],
        pagination=Pagination(
            total=total,
            page_size=limit,
            current_page=page,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.get("/stats", response_model=TransferStats)
def transfer_stats(
    address: str,
    network: Optional[Network] = None,
    period: Optional[Period] = None,
    db: Session = Depends(get_db),
):
    address = check_address(address)
    return ReconciliationCache(db).transfer_stats(address, network=network, period=period)


@router.get("/{owner}/{asset}", response_model=TransfersResponse)
def reconciled_transfers(owner: str, asset: str, network: Network = Query("development"),
                         reconciler: TokenReconciler = Depends(get_reconciler)):
    """
    Recent transfers of ``asset`` sent or received by ``owner``.
    Same policy as the token listing: live events first, stored ones fill in.
    """
    owner = check_address(owner, "owner")
    asset = check_address(asset, "asset")
    result = reconciler.transfers_for(owner, asset, network)
    return TransfersResponse(
        owner=owner,
        asset=asset,
        network=network,
        live=result.live,
        stale=result.stale,
        persisted=result.persisted,
        transfers=[TransferItem.from_record(record) for record in result.records],
    )

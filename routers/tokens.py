from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from web3 import Web3

from database import get_db
from schemas.tokens import Network, TokenItem, TokensResponse, NativeBalanceResponse
from services.reconciler import TokenReconciler

router = APIRouter()


def check_address(address: str, label: str = "address") -> str:
    """Reject anything that is not a 20 byte hex address"""
    if not Web3.is_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid {label}: {address}")
    return address.lower()


def get_reconciler(db: Session = Depends(get_db)) -> TokenReconciler:
    return TokenReconciler(db)


@router.get("/{owner}", response_model=TokensResponse)
def list_tokens(owner: str, network: Network = Query("development"),
                reconciler: TokenReconciler = Depends(get_reconciler)):
    """
    Tokens held by ``owner`` on ``network``.

    Live balances win; tokens only known from earlier reads are appended after them.
    When the chain cannot be reached the stored view is returned with ``stale`` set.
    """
    owner = check_address(owner, "owner")
    result = reconciler.tokens_for(owner, network)
    return TokensResponse(
        owner=owner,
        network=network,
        live=result.live,
        stale=result.stale,
        persisted=result.persisted,
        tokens=[TokenItem.from_record(record) for record in result.records],
    )


@router.get("/{owner}/native", response_model=NativeBalanceResponse)
def native_balance(owner: str, network: Network = Query("development"),
                   reconciler: TokenReconciler = Depends(get_reconciler)):
    owner = check_address(owner, "owner")
    return reconciler.native_balance(owner, network)


@router.get("/{owner}/custom/{asset}", response_model=TokensResponse)
def custom_token(owner: str, asset: str, network: Network = Query("development"),
                 reconciler: TokenReconciler = Depends(get_reconciler)):
    """
    Look up one token contract by address, even when ``owner`` holds none of it.
    Contracts that do not answer balanceOf are rejected with 400.
    """
    owner = check_address(owner, "owner")
    asset = check_address(asset, "asset")
    result = reconciler.custom_token(owner, asset, network)
    return TokensResponse(
        owner=owner,
        network=network,
        live=result.live,
        stale=result.stale,
        persisted=result.persisted,
        tokens=[TokenItem.from_record(record) for record in result.records],
    )

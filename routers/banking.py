from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional, List

from database import get_db
from schemas.banking import (
    BalanceRequest,
    BankingRecord,
    BankingInfoList,
    ConvertRequest,
    ConversionResponse,
    Currency,
    Method,
    SessionResponse,
)
from services.banking import BankingGateway, generate_session_token
from services.currency import SUPPORTED_CURRENCIES
from services.session import SessionContext, get_session_context

router = APIRouter()


def get_gateway(db: Session = Depends(get_db)) -> BankingGateway:
    return BankingGateway(db)


@router.post("/balance", response_model=BankingRecord)
def fetch_balance(req: BalanceRequest,
                  session: SessionContext = Depends(get_session_context),
                  gateway: BankingGateway = Depends(get_gateway)):
    """
    Fetch the balance behind a UPI id, account number or card number.

    Request body (JSON):
    {
        "method": "upi" | "account" | "card",
        "identifier": "user@bank",
        "environment": "development" | "production"
    }

    Only the masked identifier is returned and stored.
    """
    return gateway.fetch_balance(req.method, req.identifier, req.environment, session)


@router.get("", response_model=BankingInfoList)
def list_banking_info(user: str, method: Optional[Method] = None,
                      gateway: BankingGateway = Depends(get_gateway)):
    return BankingInfoList(user=user.strip().lower(), records=gateway.list_banking_info(user, method))


@router.post("/convert", response_model=ConversionResponse)
def convert(req: ConvertRequest, gateway: BankingGateway = Depends(get_gateway)):
    return gateway.convert_currency(req.amount, req.from_currency, req.to_currency)


@router.post("/session", response_model=SessionResponse)
def new_session():
    return SessionResponse(session_id=generate_session_token())


@router.get("/currencies", response_model=List[Currency])
def currencies():
    return SUPPORTED_CURRENCIES

from pydantic import BaseModel, field_validator, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal

Method = Literal["upi", "account", "card"]
Environment = Literal["development", "production"]


class BankingRecord(BaseModel):
    user: str = "unknown"
    method: Method
    masked_identifier: str
    name: str
    balance: Decimal
    currency: str
    session_id: str
    environment: Environment
    last_updated: Optional[datetime] = None
    persisted: bool = Field(default=True, description="Whether the record and its audit entry were stored")

    model_config = {"from_attributes": True}


class BalanceRequest(BaseModel):
    method: Method
    identifier: str = Field(..., description="UPI id, account number or card number")
    environment: Environment = "development"

    @field_validator("identifier")
    @classmethod
    def strip_identifier(cls, v: str) -> str:
        # Format checks live in the gateway so rejections get audited
        return v.strip()

    model_config = {
        "json_schema_extra": {
            "example": {
                "method": "upi",
                "identifier": "user@bank",
                "environment": "development"
            }
        }
    }


class ConvertRequest(BaseModel):
    amount: Decimal = Field(..., ge=0)
    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()


class ConversionResponse(BaseModel):
    amount: Decimal
    rate: Decimal
    from_currency: str
    to_currency: str


class SessionResponse(BaseModel):
    session_id: str


class Currency(BaseModel):
    code: str
    name: str
    symbol: str


class BankingInfoList(BaseModel):
    user: str
    records: List[BankingRecord]

from pydantic import BaseModel, field_validator, Field
from datetime import datetime
from typing import Optional, List, Literal

from services.common import format_units

Network = Literal["development", "mainnet", "polygon", "bsc"]


class TokenRecord(BaseModel):
    address: str = Field(..., description="Token contract address (stored lower-case)")
    name: str = "Unknown Token"
    symbol: str = "???"
    decimals: int = Field(default=18, ge=0)
    balance: str = Field(..., description="Raw integer balance as a decimal string")
    owner: str
    network: Network
    chain_id: str
    last_updated: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("address", "owner")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("balance")
    @classmethod
    def validate_balance(cls, v) -> str:
        v = str(v).strip()
        if not v.isdigit():
            raise ValueError("Balance must be a non-negative integer string")
        return v

    @property
    def key(self):
        return (self.owner, self.address, self.network)


class TransferRecord(BaseModel):
    token_address: str
    token_symbol: str = "???"
    token_name: str = "Unknown Token"
    from_address: str
    to_address: str
    amount: str
    decimals: int = Field(default=18, ge=0)
    transaction_hash: str
    block_number: int = Field(..., ge=0)
    network: Network
    chain_id: str
    timestamp: datetime
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("token_address", "from_address", "to_address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v) -> str:
        v = str(v).strip()
        if not v.isdigit():
            raise ValueError("Amount must be a non-negative integer string")
        return v


class TokenItem(TokenRecord):
    formatted_balance: str = "0"

    @classmethod
    def from_record(cls, record: TokenRecord) -> "TokenItem":
        return cls(**record.model_dump(), formatted_balance=format_units(record.balance, record.decimals))


class TransferItem(TransferRecord):
    formatted_amount: str = "0"

    @classmethod
    def from_record(cls, record: TransferRecord) -> "TransferItem":
        return cls(**record.model_dump(), formatted_amount=format_units(record.amount, record.decimals))


class TokensResponse(BaseModel):
    owner: str
    network: Network
    live: bool
    stale: bool
    persisted: bool
    tokens: List[TokenItem]


class TransfersResponse(BaseModel):
    owner: str
    asset: str
    network: Network
    live: bool
    stale: bool
    persisted: bool
    transfers: List[TransferItem]


class Pagination(BaseModel):
    total: int
    page_size: int
    current_page: int
    total_pages: int


class TransferPage(BaseModel):
    transfers: List[TransferItem]
    pagination: Pagination


class TransferStats(BaseModel):
    sent: int
    received: int
    total: int
    unique_tokens_count: int


class NativeBalanceResponse(BaseModel):
    address: str
    network: Network
    symbol: str
    balance_raw: str
    balance: str
    usd_value: Optional[float] = None

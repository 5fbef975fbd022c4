from sqlalchemy import Column, String, DateTime, Integer, Numeric, JSON, UniqueConstraint, Index
from datetime import datetime
from database import Base


class Token(Base):
    __tablename__ = "tokens"
    __table_args__ = (
        UniqueConstraint("owner", "address", "network", name="uq_token_owner_address_network"),
    )

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String, nullable=False, index=True)       # token contract, lower-cased
    name = Column(String, nullable=False)
    symbol = Column(String, nullable=False)
    decimals = Column(Integer, nullable=False, default=18)
    balance = Column(String, nullable=False)                   # big integer as string
    owner = Column(String, nullable=False, index=True)         # wallet address, lower-cased
    network = Column(String, nullable=False, index=True)       # development | mainnet | polygon | bsc
    chain_id = Column(String, nullable=False)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)


class Transfer(Base):
    __tablename__ = "transfers"
    __table_args__ = (
        Index("ix_transfers_from_network", "from_address", "network"),
        Index("ix_transfers_to_network", "to_address", "network"),
        Index("ix_transfers_token_network", "token_address", "network"),
    )

    id = Column(Integer, primary_key=True, index=True)
    token_address = Column(String, nullable=False)
    token_symbol = Column(String, nullable=False)
    token_name = Column(String, nullable=False)
    from_address = Column(String, nullable=False)
    to_address = Column(String, nullable=False)
    amount = Column(String, nullable=False)                    # raw units as string
    decimals = Column(Integer, nullable=False, default=18)
    transaction_hash = Column(String, unique=True, nullable=False, index=True)
    block_number = Column(Integer, nullable=False, index=True)
    network = Column(String, nullable=False)
    chain_id = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class BankingInfo(Base):
    __tablename__ = "banking_info"
    __table_args__ = (
        UniqueConstraint("user", "method", "masked_identifier", name="uq_banking_user_method_identifier"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user = Column(String, nullable=False, index=True)          # wallet address or "unknown"
    method = Column(String, nullable=False)                    # upi | account | card
    masked_identifier = Column(String, nullable=False)
    name = Column(String, nullable=False)
    balance = Column(Numeric(20, 2), nullable=False)
    currency = Column(String, nullable=False)
    session_id = Column(String, nullable=False)
    environment = Column(String, nullable=False)               # development | production
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)


class BankingActivity(Base):
    __tablename__ = "banking_activities"
    __table_args__ = (
        Index("ix_activity_method_identifier", "method", "masked_identifier"),
    )

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False)
    method = Column(String, nullable=False)
    masked_identifier = Column(String, nullable=False)
    environment = Column(String, nullable=False)
    session_id = Column(String, nullable=False, index=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    status = Column(String, nullable=False, default="success")  # success | failure | pending
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

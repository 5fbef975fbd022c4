"""
Persistent record store behind the reconciler.

Tokens are unique on (owner, address, network) and replaced on rewrite; transfers are
unique on transaction hash and inserted at most once. Timestamps are assigned here at
write time, never taken from the caller.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_, func
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from models import Token, Transfer, BankingActivity
from schemas.tokens import TokenRecord, TransferRecord
from services.common import normalize_address, next_timestamp, period_start

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class ReconciliationCache:

    def __init__(self, db: Session):
        self.db = db

    # Tokens

    def _find_token(self, owner: str, address: str, network: str) -> Optional[Token]:
        return self.db.query(Token).filter(
            Token.owner == owner,
            Token.address == address,
            Token.network == network,
        ).first()

    def _apply_token(self, row: Token, record: TokenRecord):
        row.name = record.name
        row.symbol = record.symbol
        row.decimals = record.decimals
        row.balance = record.balance
        row.chain_id = record.chain_id
        row.last_updated = next_timestamp(row.last_updated)

    def upsert_token(self, record: TokenRecord) -> TokenRecord:
        existing = self._find_token(record.owner, record.address, record.network)
        if existing:
            self._apply_token(existing, record)
            self.db.flush()
            return TokenRecord.model_validate(existing)

        row = Token(
            address=record.address,
            owner=record.owner,
            network=record.network,
        )
        self._apply_token(row, record)
        try:
            # savepoint: a lost insert race must not discard the caller's pending writes
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            existing = self._find_token(record.owner, record.address, record.network)
            if existing is None:
                raise
            logger.info(f"Token {record.address} for {record.owner} inserted concurrently, updating instead")
            self._apply_token(existing, record)
            self.db.flush()
            row = existing
        return TokenRecord.model_validate(row)

    def query_tokens(self, owner: str, network: Optional[str] = None) -> List[TokenRecord]:
        query = self.db.query(Token).filter(Token.owner == normalize_address(owner))
        if network:
            query = query.filter(Token.network == network)
        return [TokenRecord.model_validate(row) for row in query.order_by(Token.last_updated.desc()).all()]

    # Transfers

    def upsert_transfer(self, record: TransferRecord) -> bool:
        """Insert a transfer once. Returns False when the hash was already recorded."""
        if self.db.query(Transfer.id).filter(Transfer.transaction_hash == record.transaction_hash).first():
            return False
        row = Transfer(**record.model_dump(exclude={"created_at"}), created_at=next_timestamp())
        try:
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            logger.debug(f"Transfer {record.transaction_hash} recorded concurrently")
            return False
        return True

    def _transfer_query(self, filters: Dict):
        query = self.db.query(Transfer)
        address = filters.get("address")
        if address:
            address = normalize_address(address)
            query = query.filter(or_(Transfer.from_address == address, Transfer.to_address == address))
        if filters.get("token_address"):
            query = query.filter(Transfer.token_address == normalize_address(filters["token_address"]))
        if filters.get("network"):
            query = query.filter(Transfer.network == filters["network"])
        return query

    def query_transfers(self, filters: Dict, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Tuple[List[TransferRecord], int]:
        page = max(1, page)
        page_size = max(1, page_size)
        query = self._transfer_query(filters)
        total = query.count()
        rows = (
            query.order_by(Transfer.block_number.desc(), Transfer.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return [TransferRecord.model_validate(row) for row in rows], total

    def transfer_stats(self, address: str, network: Optional[str] = None, period: Optional[str] = None) -> dict:
        address = normalize_address(address)
        query = self._transfer_query({"address": address, "network": network})
        start = period_start(period)
        if start is not None:
            query = query.filter(Transfer.timestamp >= start)

        sent = query.filter(Transfer.from_address == address).count()
        received = query.filter(Transfer.to_address == address).count()
        unique_tokens = query.with_entities(func.count(func.distinct(Transfer.token_address))).scalar() or 0
        return {
            "sent": sent,
            "received": received,
            "total": sent + received,
            "unique_tokens_count": unique_tokens,
        }

    # Activity retention

    def delete_before(self, cutoff: datetime, session_id: Optional[str] = None) -> int:
        query = self.db.query(BankingActivity).filter(BankingActivity.timestamp < cutoff)
        if session_id:
            query = query.filter(BankingActivity.session_id == session_id)
        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        return deleted

    def delete_by_session(self, session_id: str) -> int:
        deleted = self.db.query(BankingActivity).filter(
            BankingActivity.session_id == session_id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted

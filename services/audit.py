from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from models import BankingActivity
from schemas.activities import ActivityRecord, ActivityFilters
from services.cache import ReconciliationCache
from services.common import next_timestamp, period_start
from services.errors import InvalidRetentionRequest

logger = logging.getLogger(__name__)

AGGREGATE_FIELDS = {
    "status": BankingActivity.status,
    "action": BankingActivity.action,
    "method": BankingActivity.method,
    "environment": BankingActivity.environment,
}
STATUSES = ("success", "failure", "pending")


class AuditTrail:
    """
    Append-only banking activity log.
    Records are only ever appended by the banking gateway; this class reads,
    aggregates and applies retention.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(self, record: ActivityRecord) -> ActivityRecord:
        row = BankingActivity(
            **record.model_dump(exclude={"timestamp"}),
            timestamp=next_timestamp(),
        )
        self.db.add(row)
        self.db.flush()
        return ActivityRecord.model_validate(row)

    def _filtered(self, filters: Optional[ActivityFilters]):
        query = self.db.query(BankingActivity)
        if filters is None:
            return query
        if filters.session_id:
            query = query.filter(BankingActivity.session_id == filters.session_id)
        if filters.method:
            query = query.filter(BankingActivity.method == filters.method)
        if filters.masked_identifier:
            query = query.filter(BankingActivity.masked_identifier == filters.masked_identifier)
        if filters.environment:
            query = query.filter(BankingActivity.environment == filters.environment)
        if filters.status:
            query = query.filter(BankingActivity.status == filters.status)
        if filters.start:
            query = query.filter(BankingActivity.timestamp >= filters.start)
        if filters.end:
            query = query.filter(BankingActivity.timestamp <= filters.end)
        return query

    def query(self, filters: Optional[ActivityFilters] = None, page: int = 1, page_size: int = 20) -> Tuple[List[ActivityRecord], int]:
        page = max(1, page)
        page_size = max(1, page_size)
        query = self._filtered(filters)
        total = query.count()
        rows = (
            query.order_by(BankingActivity.timestamp.desc(), BankingActivity.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return [ActivityRecord.model_validate(row) for row in rows], total

    def aggregate_by_field(self, field: str, filters: Optional[ActivityFilters] = None) -> List[Tuple[Optional[str], int]]:
        """Grouped counts for ``field``, most frequent first"""
        if field not in AGGREGATE_FIELDS:
            raise ValueError(f"Cannot aggregate by '{field}'. Allowed: {sorted(AGGREGATE_FIELDS)}")
        column = AGGREGATE_FIELDS[field]
        count = func.count(BankingActivity.id)
        rows = (
            self._filtered(filters)
            .with_entities(column, count)
            .group_by(column)
            .order_by(count.desc(), column)
            .all()
        )
        return [(value, total) for value, total in rows]

    def stats(self, filters: Optional[ActivityFilters] = None, period: Optional[str] = None) -> dict:
        filters = filters.model_copy() if filters else ActivityFilters()
        start = period_start(period)
        if start is not None:
            filters.start = start

        by_status = {status: 0 for status in STATUSES}
        for value, total in self.aggregate_by_field("status", filters):
            if value in by_status:
                by_status[value] = total
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_action": [{"value": v, "count": c} for v, c in self.aggregate_by_field("action", filters)],
            "by_method": [{"value": v, "count": c} for v, c in self.aggregate_by_field("method", filters)],
        }

    def delete_older_than(self, days: Optional[int] = None, session_id: Optional[str] = None) -> int:
        """
        Retention by age and/or session. At least one selector is required;
        when both are given only activities matching both are deleted.
        """
        if days is None and not session_id:
            raise InvalidRetentionRequest("Either olderThan (days) or sessionId is required")
        if days is not None and days < 0:
            raise InvalidRetentionRequest("olderThan must be a non-negative number of days")

        cache = ReconciliationCache(self.db)
        if days is None:
            deleted = cache.delete_by_session(session_id)
        else:
            deleted = cache.delete_before(datetime.utcnow() - timedelta(days=days), session_id=session_id)
        logger.info(f"Retention removed {deleted} activity logs (days={days}, session={'set' if session_id else 'unset'})")
        return deleted

    def delete_by_session(self, session_id: str) -> int:
        return self.delete_older_than(session_id=session_id)

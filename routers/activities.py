from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Literal
import math

from database import get_db
from schemas.activities import (
    ActivityFilters,
    ActivityPage,
    ActivityPagination,
    ActivityStats,
    RetentionResponse,
    Status,
)
from services.audit import AuditTrail

router = APIRouter()

Period = Literal["day", "week", "month", "year"]


def activity_filters(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    method: Optional[str] = None,
    masked_identifier: Optional[str] = Query(None, alias="maskedIdentifier"),
    environment: Optional[str] = None,
    status: Optional[Status] = None,
    start: Optional[datetime] = Query(None, alias="startDate"),
    end: Optional[datetime] = Query(None, alias="endDate"),
) -> ActivityFilters:
    return ActivityFilters(
        session_id=session_id,
        method=method,
        masked_identifier=masked_identifier,
        environment=environment,
        status=status,
        start=start,
        end=end,
    )


@router.get("", response_model=ActivityPage)
def list_activities(
    filters: ActivityFilters = Depends(activity_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    records, total = AuditTrail(db).query(filters, page=page, page_size=limit)
    return ActivityPage(
        activities=records,
        pagination=ActivityPagination(
            total=total,
            page_size=limit,
            current_page=page,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.get("/stats", response_model=ActivityStats)
def activity_stats(
    filters: ActivityFilters = Depends(activity_filters),
    period: Optional[Period] = None,
    db: Session = Depends(get_db),
):
    return AuditTrail(db).stats(filters, period=period)


@router.delete("", response_model=RetentionResponse)
def delete_activities(
    older_than: Optional[int] = Query(None, alias="olderThan", description="Age in days"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_db),
):
    """
    Retention. Deletes activities older than ``olderThan`` days and/or belonging to
    ``sessionId``; with both, only activities matching both go.
    """
    deleted = AuditTrail(db).delete_older_than(days=older_than, session_id=session_id)
    return RetentionResponse(message=f"Deleted {deleted} activity logs", deleted_count=deleted)

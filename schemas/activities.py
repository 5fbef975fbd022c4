from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal, Any, Dict

Status = Literal["success", "failure", "pending"]


class ActivityRecord(BaseModel):
    action: str
    method: str
    masked_identifier: str
    environment: str
    session_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: Status = "success"
    details: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ActivityFilters(BaseModel):
    session_id: Optional[str] = None
    method: Optional[str] = None
    masked_identifier: Optional[str] = None
    environment: Optional[str] = None
    status: Optional[Status] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class ActivityPagination(BaseModel):
    total: int
    page_size: int
    current_page: int
    total_pages: int


class ActivityPage(BaseModel):
    activities: List[ActivityRecord]
    pagination: ActivityPagination


class FieldCount(BaseModel):
    value: Optional[str]
    count: int


class StatusCounts(BaseModel):
    success: int = 0
    failure: int = 0
    pending: int = 0


class ActivityStats(BaseModel):
    total: int
    by_status: StatusCounts
    by_action: List[FieldCount] = Field(default_factory=list)
    by_method: List[FieldCount] = Field(default_factory=list)


class RetentionResponse(BaseModel):
    message: str
    deleted_count: int

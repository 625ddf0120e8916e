from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from app.schemas.review import ResponseType, ReviewRequest, ReviewStatus, UrgencyLevel


class ResponseIn(BaseModel):
    response_type: ResponseType
    content: str
    urgency_level: Optional[UrgencyLevel] = None


class FlagIn(BaseModel):
    reason: Optional[str] = None


class StatusIn(BaseModel):
    status: ReviewStatus


class FilterIn(BaseModel):
    # None means the "All" tab
    status: Optional[ReviewStatus] = None


class BadgeView(BaseModel):
    badge_count: int


class StoreStateView(BaseModel):
    review_requests: List[ReviewRequest] = Field(default_factory=list)
    selected_status: Optional[ReviewStatus] = None
    cached_conversations: List[str] = Field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None
    badge_count: int = 0
    search_query: str = ""
    # outcome value -> display label, for rows in this view
    outcome_labels: Dict[str, str] = Field(default_factory=dict)


class StatusTabView(BaseModel):
    title: str
    status: Optional[ReviewStatus] = None

# app/schemas/review.py
from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


# -------------------------
# Closed enumerations
# -------------------------

class ReviewStatus(str, Enum):
    """Workflow state of a review request. Unknown values read as PENDING."""

    PENDING = "pending"
    RESPONDED = "responded"
    FLAGGED = "flagged"
    ESCALATED = "escalated"

    @classmethod
    def _missing_(cls, value: object) -> "ReviewStatus":
        return cls.PENDING

    @property
    def label(self) -> str:
        return self.value.upper()


class TriageOutcome(str, Enum):
    """Care-urgency classification. Unknown values read as HOME_CARE."""

    ER_911 = "er_911"
    ER_DRIVE = "er_drive"
    URGENT_VISIT = "urgent_visit"
    ROUTINE_VISIT = "routine_visit"
    HOME_CARE = "home_care"

    @classmethod
    def _missing_(cls, value: object) -> "TriageOutcome":
        return cls.HOME_CARE

    @property
    def label(self) -> str:
        return _OUTCOME_LABELS[self]


class ResponseType(str, Enum):
    AGREE = "agree"
    AGREE_WITH_THOUGHTS = "agree_with_thoughts"
    DISAGREE_WITH_THOUGHTS = "disagree_with_thoughts"
    ESCALATION = "escalation"

    @classmethod
    def parse(cls, value: Any) -> "ResponseType":
        """Lenient read for stored rows; request bodies stay strict."""
        try:
            return cls(value)
        except ValueError:
            return cls.AGREE_WITH_THOUGHTS


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_OUTCOME_LABELS = {
    TriageOutcome.ER_911: "ER - 911",
    TriageOutcome.ER_DRIVE: "ER - Drive",
    TriageOutcome.URGENT_VISIT: "Urgent Visit",
    TriageOutcome.ROUTINE_VISIT: "Routine Visit",
    TriageOutcome.HOME_CARE: "Home Care",
}

# Tabs shown by the list screen, in order: (title, status filter)
STATUS_TABS: Tuple[Tuple[str, Optional[ReviewStatus]], ...] = (
    ("All", None),
    ("Pending", ReviewStatus.PENDING),
    ("Responded", ReviewStatus.RESPONDED),
    ("Flagged", ReviewStatus.FLAGGED),
)


def outcome_label(raw: str) -> str:
    """Display label for a raw outcome string, including values outside the closed set."""
    for outcome in TriageOutcome:
        if outcome.value == raw:
            return outcome.label
    return (raw or "").replace("_", " ").upper()


# -------------------------
# Records
# -------------------------

class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    @classmethod
    def _default_for_null(cls, v: Any, info: ValidationInfo) -> Any:
        # PostgREST returns null for unset columns; read them as the field default
        if v is None and info.field_name is not None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v


class Message(_Record):
    """One conversation turn. is_from_user=False means AI or provider."""

    id: str = Field(default_factory=new_id)
    content: str = ""
    is_from_user: bool = False
    timestamp: str = ""
    triage_outcome: Optional[TriageOutcome] = None
    provider_name: Optional[str] = None

    @field_validator("id", "content", "is_from_user", "timestamp", mode="before")
    @classmethod
    def _nulls(cls, v: Any, info: ValidationInfo) -> Any:
        return cls._default_for_null(v, info)

    @field_validator("triage_outcome", mode="before")
    @classmethod
    def _parse_outcome(cls, v: Any) -> Optional[TriageOutcome]:
        return None if v is None else TriageOutcome(v)


class ProviderResponse(_Record):
    id: str = Field(default_factory=new_id)
    response_type: ResponseType
    content: str = ""
    urgency_level: Optional[UrgencyLevel] = None
    created_at: str = ""
    updated_at: str = ""

    @field_validator("id", "content", "created_at", "updated_at", mode="before")
    @classmethod
    def _nulls(cls, v: Any, info: ValidationInfo) -> Any:
        return cls._default_for_null(v, info)

    @field_validator("response_type", mode="before")
    @classmethod
    def _parse_response_type(cls, v: Any) -> ResponseType:
        return ResponseType.parse(v)

    @field_validator("urgency_level", mode="before")
    @classmethod
    def _parse_urgency(cls, v: Any) -> Optional[UrgencyLevel]:
        try:
            return None if v is None else UrgencyLevel(v)
        except ValueError:
            return None


class ReviewRequest(_Record):
    """
    Provider-visible record of one triage conversation.

    `id` identifies the review request itself; `conversation_id` is the key
    used for detail lookups and for the detail cache.
    """

    id: str = Field(default_factory=new_id)
    conversation_id: str
    conversation_title: str = ""
    child_name: str = ""
    child_age: int = 0
    child_dob: str = ""
    triage_outcome: TriageOutcome = TriageOutcome.HOME_CARE
    status: ReviewStatus = ReviewStatus.PENDING
    conversation_messages: Tuple[Message, ...] = ()
    provider_response: Optional[ProviderResponse] = None
    flag_reason: Optional[str] = None
    responded_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> ReviewStatus:
        return ReviewStatus(v)

    @field_validator("triage_outcome", mode="before")
    @classmethod
    def _parse_outcome(cls, v: Any) -> TriageOutcome:
        return TriageOutcome(v)

    @field_validator(
        "id",
        "conversation_title",
        "child_name",
        "child_age",
        "child_dob",
        "conversation_messages",
        "created_at",
        "updated_at",
        mode="before",
    )
    @classmethod
    def _nulls(cls, v: Any, info: ValidationInfo) -> Any:
        return cls._default_for_null(v, info)

    @model_validator(mode="after")
    def _warn_on_integrity(self) -> "ReviewRequest":
        if self.has_integrity_issue:
            logger.warning(
                "review request %s is responded but lacks provider_response or responded_at",
                self.id,
            )
        return self

    @property
    def has_integrity_issue(self) -> bool:
        return self.status is ReviewStatus.RESPONDED and (
            self.provider_response is None or self.responded_at is None
        )

    @property
    def awaiting_response(self) -> bool:
        return self.status is ReviewStatus.PENDING

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on title or child name."""
        q = query.lower()
        return q in self.conversation_title.lower() or q in self.child_name.lower()

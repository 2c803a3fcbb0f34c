"""Source records — normalized rows returned by the Source Fetchers."""

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

STALE_CANDIDATE_STATUSES = frozenset({"active", "new", "follow-up"})
CLOSED_DEAL_STAGES = frozenset({"closed_won", "closed_lost"})
PENDING_CAPTURE_STATUSES = frozenset({"pending", "ready"})


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps from the data store are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class _Record(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def _aware_timestamps(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_aware(value)
        return value


class LeadRecord(_Record):
    id: str
    name: str
    status: str
    last_contacted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TouchRecord(_Record):
    """A logged contact event against a lead."""

    lead_id: str
    created_at: datetime
    responded: bool = False


class LeadWithTouches(_Record):
    """A lead merged with the aggregate of its touch records."""

    lead: LeadRecord
    last_touch_at: Optional[datetime] = None
    total_touches: int = 0
    responded_touches: int = 0

    @property
    def responsiveness(self) -> Optional[float]:
        if self.total_touches == 0:
            return None
        return self.responded_touches / self.total_touches


class DealLead(BaseModel):
    id: str
    name: str


class DealProperty(BaseModel):
    id: str
    address_line_1: str
    city: str
    state: Optional[str] = None

    @property
    def short_address(self) -> str:
        return f"{self.address_line_1}, {self.city}"


class DealRecord(_Record):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    stage: str
    next_action: Optional[str] = None
    next_action_due: Optional[date] = None
    updated_at: Optional[datetime] = None
    lead: Optional[DealLead] = None
    property_info: Optional[DealProperty] = Field(default=None, alias="property")

    @field_validator("next_action_due", mode="before")
    @classmethod
    def _coerce_due_date(cls, value):
        """Accept a date, a datetime, or either as an ISO string; keep the local calendar day."""
        if value is None or value == "":
            return None
        if isinstance(value, str):
            if len(value) == 10:
                return date.fromisoformat(value)
            value = _parse_datetime(value)
        if isinstance(value, datetime):
            return ensure_aware(value).astimezone().date()
        return value

    @property
    def is_open(self) -> bool:
        return self.stage not in CLOSED_DEAL_STAGES


class CaptureItem(_Record):
    id: str
    type: Optional[str] = None
    title: Optional[str] = None
    status: str = "pending"
    created_at: datetime

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_CAPTURE_STATUSES

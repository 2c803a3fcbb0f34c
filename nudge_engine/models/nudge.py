"""Nudge — a single ranked worklist item, plus its summary and view models."""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class NudgeType(str, Enum):
    STALE_LEAD = "stale_lead"
    DEAL_STALLED = "deal_stalled"
    ACTION_OVERDUE = "action_overdue"
    ACTION_DUE_SOON = "action_due_soon"
    CAPTURE_PENDING = "capture_pending"


class NudgePriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EntityType(str, Enum):
    LEAD = "lead"
    DEAL = "deal"
    PROPERTY = "property"
    CAPTURE = "capture"


class NudgeTypeDescriptor(BaseModel):
    """Static display metadata for a nudge type."""

    model_config = ConfigDict(frozen=True)

    label: str
    icon: str
    entity_type: EntityType


class PriorityDescriptor(BaseModel):
    """Static display metadata for a priority bucket."""

    model_config = ConfigDict(frozen=True)

    label: str
    color: str
    rank: int                               # 0 sorts first


NUDGE_TYPE_DESCRIPTORS: Dict[NudgeType, NudgeTypeDescriptor] = {
    NudgeType.STALE_LEAD: NudgeTypeDescriptor(
        label="Stale lead", icon="user-clock", entity_type=EntityType.LEAD,
    ),
    NudgeType.DEAL_STALLED: NudgeTypeDescriptor(
        label="Stalled deal", icon="pause-circle", entity_type=EntityType.DEAL,
    ),
    NudgeType.ACTION_OVERDUE: NudgeTypeDescriptor(
        label="Overdue action", icon="alert-circle", entity_type=EntityType.DEAL,
    ),
    NudgeType.ACTION_DUE_SOON: NudgeTypeDescriptor(
        label="Action due soon", icon="clock", entity_type=EntityType.DEAL,
    ),
    NudgeType.CAPTURE_PENDING: NudgeTypeDescriptor(
        label="Pending captures", icon="inbox", entity_type=EntityType.CAPTURE,
    ),
}

PRIORITY_DESCRIPTORS: Dict[NudgePriority, PriorityDescriptor] = {
    NudgePriority.HIGH: PriorityDescriptor(label="High", color="#ef4444", rank=0),
    NudgePriority.MEDIUM: PriorityDescriptor(label="Medium", color="#f59e0b", rank=1),
    NudgePriority.LOW: PriorityDescriptor(label="Low", color="#3b82f6", rank=2),
}


class Nudge(BaseModel):
    """A worklist item. Recomputed every cycle, never mutated in place."""

    model_config = ConfigDict(frozen=True)

    id: str                                 # e.g. "stale-lead-<leadId>", doubles as snooze key
    type: NudgeType
    priority: NudgePriority
    title: str
    subtitle: Optional[str] = None
    entity_type: EntityType
    entity_id: str
    entity_name: Optional[str] = None
    property_address: Optional[str] = None
    days_overdue: Optional[int] = None      # Tie-breaker only
    due_date: Optional[date] = None
    created_at: datetime
    touch_count: Optional[int] = None       # Stale leads only, informational
    responsiveness: Optional[float] = None  # Stale leads only, informational

    @property
    def descriptor(self) -> NudgeTypeDescriptor:
        return NUDGE_TYPE_DESCRIPTORS[self.type]

    @property
    def priority_descriptor(self) -> PriorityDescriptor:
        return PRIORITY_DESCRIPTORS[self.priority]


class NudgeSummary(BaseModel):
    """Counts per priority bucket and per nudge family."""

    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    stale_leads: int = 0
    overdue_actions: int = 0
    pending_captures: int = 0


class NudgeView(BaseModel):
    """What the Refresh Controller exposes to its caller."""

    nudges: List[Nudge] = []
    summary: NudgeSummary = NudgeSummary()
    enabled: bool = True
    is_loading: bool = False
    refreshed_at: Optional[datetime] = None

"""Nudge engine data models."""

from nudge_engine.models.nudge import (
    NUDGE_TYPE_DESCRIPTORS,
    PRIORITY_DESCRIPTORS,
    EntityType,
    Nudge,
    NudgePriority,
    NudgeSummary,
    NudgeType,
    NudgeTypeDescriptor,
    NudgeView,
    PriorityDescriptor,
)
from nudge_engine.models.records import (
    CaptureItem,
    DealLead,
    DealProperty,
    DealRecord,
    LeadRecord,
    LeadWithTouches,
    TouchRecord,
)
from nudge_engine.models.settings import (
    DEFAULT_NUDGE_SETTINGS,
    NudgeSettings,
    RefreshConfig,
)
from nudge_engine.models.snooze import SnoozeEntry

__all__ = [
    "CaptureItem",
    "DEFAULT_NUDGE_SETTINGS",
    "DealLead",
    "DealProperty",
    "DealRecord",
    "EntityType",
    "LeadRecord",
    "LeadWithTouches",
    "NUDGE_TYPE_DESCRIPTORS",
    "Nudge",
    "NudgePriority",
    "NudgeSettings",
    "NudgeSummary",
    "NudgeType",
    "NudgeTypeDescriptor",
    "NudgeView",
    "PRIORITY_DESCRIPTORS",
    "PriorityDescriptor",
    "RefreshConfig",
    "SnoozeEntry",
    "TouchRecord",
]

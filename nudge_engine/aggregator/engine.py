"""
Aggregator — merges candidates, drops snoozed ones, ranks, and summarizes.

Owns no state. The output is a pure function of
(source records, settings, snoozed ids, now).
"""

import logging
from datetime import datetime, timezone
from typing import AbstractSet, Iterable, List, Optional, Tuple

from nudge_engine.models.nudge import (
    PRIORITY_DESCRIPTORS,
    Nudge,
    NudgeSummary,
    NudgeType,
)
from nudge_engine.models.records import CaptureItem, DealRecord, LeadWithTouches, ensure_aware
from nudge_engine.models.settings import NudgeSettings
from nudge_engine.rules.evaluator import evaluate_all
from nudge_engine.snooze.store import SnoozeStore

logger = logging.getLogger(__name__)

_STALE_TYPES = {NudgeType.STALE_LEAD, NudgeType.DEAL_STALLED}
_ACTION_TYPES = {NudgeType.ACTION_OVERDUE, NudgeType.ACTION_DUE_SOON}


def rank_key(nudge: Nudge) -> Tuple[int, int]:
    """Priority bucket first, then largest days_overdue. Missing counts as 0."""
    return (
        PRIORITY_DESCRIPTORS[nudge.priority].rank,
        -(nudge.days_overdue or 0),
    )


def summarize(nudges: Iterable[Nudge]) -> NudgeSummary:
    summary = NudgeSummary()
    for nudge in nudges:
        summary.total += 1
        setattr(summary, nudge.priority.value, getattr(summary, nudge.priority.value) + 1)

        if nudge.type in _STALE_TYPES:
            summary.stale_leads += 1
        elif nudge.type in _ACTION_TYPES:
            summary.overdue_actions += 1
        elif nudge.type == NudgeType.CAPTURE_PENDING:
            summary.pending_captures += 1
    return summary


def aggregate(
    candidates: Iterable[Nudge],
    snoozed: AbstractSet[str],
) -> Tuple[List[Nudge], NudgeSummary]:
    """Filter snoozed ids, stable-sort by rank, and reduce to a summary."""
    visible = [n for n in candidates if n.id not in snoozed]
    ranked = sorted(visible, key=rank_key)
    return ranked, summarize(ranked)


class NudgeEngine:
    """
    Runs the rule families and the Aggregator for one cycle.
    The snooze store is injected and read once per cycle.
    """

    def __init__(self, snooze_store: Optional[SnoozeStore] = None):
        self.snooze_store = snooze_store or SnoozeStore()

    def generate(
        self,
        leads: Iterable[LeadWithTouches],
        deals: Iterable[DealRecord],
        captures: Iterable[CaptureItem],
        settings: NudgeSettings,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Nudge], NudgeSummary]:
        # Kill switch: no rules, no snooze read.
        if not settings.enabled:
            return [], NudgeSummary()

        now = ensure_aware(now) if now else datetime.now(timezone.utc)

        candidates = evaluate_all(leads, deals, captures, settings, now)
        snoozed = self.snooze_store.active_ids(now)
        ranked, summary = aggregate(candidates, snoozed)

        logger.debug(
            "Generated nudges",
            extra={"context": {
                "candidates": len(candidates),
                "snoozed": len(candidates) - len(ranked),
                "total": summary.total,
            }},
        )
        return ranked, summary

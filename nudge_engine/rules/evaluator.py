"""
Rule Evaluator — turns one source's records into candidate nudges.

Four independent rule families, each a pure function of
(records, settings, now):

  stale_lead        leads with no qualifying contact for N days
  action_*          open deals whose next action is overdue or due within a day
  deal_stalled      open deals with no update for N days
  capture_pending   one aggregate nudge for the pending capture queue

No rule observes another rule's output. Settings are always passed in.
"""

import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from nudge_engine.models.nudge import EntityType, Nudge, NudgePriority, NudgeType
from nudge_engine.models.records import (
    STALE_CANDIDATE_STATUSES,
    CaptureItem,
    DealRecord,
    LeadWithTouches,
    ensure_aware,
)
from nudge_engine.models.settings import NudgeSettings

NEVER_CONTACTED_DAYS = 999
CAPTURE_QUEUE_ENTITY_ID = "queue"
CAPTURE_MEDIUM_THRESHOLD = 5

_DAY_SECONDS = 24 * 60 * 60


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed, floored."""
    return math.floor((later - earlier).total_seconds() / _DAY_SECONDS)


def local_date(moment: datetime) -> date:
    return ensure_aware(moment).astimezone().date()


# --- Stale leads ---

def staleness_anchor(lead: LeadWithTouches) -> Optional[datetime]:
    """
    The timestamp staleness is measured from.
    A logged touch newer than the lead's own timestamp always wins.
    """
    own = lead.lead.last_contacted_at or lead.lead.updated_at
    touch = lead.last_touch_at
    if touch is not None and (own is None or touch > own):
        return touch
    return own


def _lead_subtitle(lead: LeadWithTouches) -> str:
    name = lead.lead.name
    if lead.total_touches == 0:
        return f"{name} • 0 touches"
    if lead.responded_touches == 0:
        return f"{name} • {lead.total_touches} touches, no response"
    return f"{name} • {round(lead.responsiveness * 100)}% responsive"


def evaluate_stale_lead(
    lead: LeadWithTouches,
    settings: NudgeSettings,
    now: datetime,
) -> Optional[Nudge]:
    if lead.lead.status not in STALE_CANDIDATE_STATUSES:
        return None

    anchor = staleness_anchor(lead)
    days_since = days_between(anchor, now) if anchor else NEVER_CONTACTED_DAYS

    if days_since < settings.stale_lead_warning_days:
        return None

    critical = days_since >= settings.stale_lead_critical_days
    ever_contacted = lead.lead.last_contacted_at is not None or lead.last_touch_at is not None
    title = f"No contact in {days_since} days" if ever_contacted else "Never contacted"

    return Nudge(
        id=f"stale-lead-{lead.lead.id}",
        type=NudgeType.STALE_LEAD,
        priority=NudgePriority.HIGH if critical else NudgePriority.MEDIUM,
        title=title,
        subtitle=_lead_subtitle(lead),
        entity_type=EntityType.LEAD,
        entity_id=lead.lead.id,
        entity_name=lead.lead.name,
        days_overdue=days_since,
        created_at=anchor or now,
        touch_count=lead.total_touches,
        responsiveness=lead.responsiveness,
    )


def evaluate_stale_leads(
    leads: Iterable[LeadWithTouches],
    settings: NudgeSettings,
    now: datetime,
) -> List[Nudge]:
    nudges = []
    for lead in leads:
        nudge = evaluate_stale_lead(lead, settings, now)
        if nudge:
            nudges.append(nudge)
    return nudges


# --- Deals ---

def _deal_context(deal: DealRecord) -> dict:
    address = deal.property_info.short_address if deal.property_info else None
    lead_name = deal.lead.name if deal.lead else None
    return {
        "entity_type": EntityType.DEAL,
        "entity_id": deal.id,
        "entity_name": lead_name,
        "property_address": address,
        "subtitle": address or lead_name,
    }


def _due_timestamp(due: date) -> datetime:
    return datetime(due.year, due.month, due.day).astimezone()


def evaluate_deal_action(deal: DealRecord, now: datetime) -> Optional[Nudge]:
    """Overdue (< today) or due soon (today / tomorrow), compared as local calendar days."""
    if not deal.is_open or deal.next_action_due is None:
        return None

    due = deal.next_action_due
    days_diff = (due - local_date(now)).days

    if days_diff < 0:
        return Nudge(
            id=f"action-overdue-{deal.id}",
            type=NudgeType.ACTION_OVERDUE,
            priority=NudgePriority.HIGH,
            title=deal.next_action or "Action overdue",
            days_overdue=abs(days_diff),
            due_date=due,
            created_at=_due_timestamp(due),
            **_deal_context(deal),
        )

    if days_diff <= 1:
        return Nudge(
            id=f"action-due-{deal.id}",
            type=NudgeType.ACTION_DUE_SOON,
            priority=NudgePriority.HIGH if days_diff == 0 else NudgePriority.MEDIUM,
            title=deal.next_action or "Action due",
            due_date=due,
            created_at=_due_timestamp(due),
            **_deal_context(deal),
        )

    return None


def evaluate_stalled_deal(
    deal: DealRecord,
    settings: NudgeSettings,
    now: datetime,
) -> Optional[Nudge]:
    if not deal.is_open or deal.updated_at is None:
        return None

    if now - deal.updated_at <= timedelta(days=settings.deal_stalled_days):
        return None

    days_since = days_between(deal.updated_at, now)
    return Nudge(
        id=f"stalled-deal-{deal.id}",
        type=NudgeType.DEAL_STALLED,
        priority=NudgePriority.MEDIUM,
        title=f"No activity in {days_since} days",
        days_overdue=days_since,
        created_at=deal.updated_at,
        **_deal_context(deal),
    )


def evaluate_deals(
    deals: Iterable[DealRecord],
    settings: NudgeSettings,
    now: datetime,
) -> List[Nudge]:
    """Action and stalled rules run independently; one deal may yield both."""
    nudges = []
    for deal in deals:
        for nudge in (
            evaluate_deal_action(deal, now),
            evaluate_stalled_deal(deal, settings, now),
        ):
            if nudge:
                nudges.append(nudge)
    return nudges


# --- Capture queue ---

def evaluate_pending_captures(items: Iterable[CaptureItem]) -> List[Nudge]:
    """One aggregate nudge for the whole queue, never one per item."""
    pending = [i for i in items if i.is_pending]
    count = len(pending)
    if count == 0:
        return []

    newest = max(i.created_at for i in pending)
    return [
        Nudge(
            id="capture-pending",
            type=NudgeType.CAPTURE_PENDING,
            priority=(
                NudgePriority.MEDIUM if count > CAPTURE_MEDIUM_THRESHOLD
                else NudgePriority.LOW
            ),
            title=f"{count} item{'' if count == 1 else 's'} pending triage",
            subtitle="Tap to review",
            entity_type=EntityType.CAPTURE,
            entity_id=CAPTURE_QUEUE_ENTITY_ID,
            created_at=newest,
        )
    ]


def evaluate_all(
    leads: Iterable[LeadWithTouches],
    deals: Iterable[DealRecord],
    captures: Iterable[CaptureItem],
    settings: NudgeSettings,
    now: datetime,
) -> List[Nudge]:
    """Run every rule family and concatenate the candidates."""
    return (
        evaluate_stale_leads(leads, settings, now)
        + evaluate_deals(deals, settings, now)
        + evaluate_pending_captures(captures)
    )

"""
Source Fetchers — one per external data source.

Each fetcher wraps an async loader supplied by the caller (the remote data
store is not part of the engine), validates the raw rows, and returns a
normalized record list. Loader failures surface as SourceFetchError; the
Refresh Controller decides what a failure means for the cycle.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from nudge_engine.exceptions import SourceFetchError
from nudge_engine.models.records import (
    CLOSED_DEAL_STAGES,
    PENDING_CAPTURE_STATUSES,
    STALE_CANDIDATE_STATUSES,
    CaptureItem,
    DealRecord,
    LeadRecord,
    LeadWithTouches,
    TouchRecord,
)

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# loader(statuses, limit) -> rows
LeadLoader = Callable[[Sequence[str], int], Awaitable[List[Row]]]
# loader(lead_ids) -> rows
TouchLoader = Callable[[Sequence[str]], Awaitable[List[Row]]]
# loader(excluded_stages, limit) -> rows
DealLoader = Callable[[Sequence[str], int], Awaitable[List[Row]]]
# loader(statuses, limit) -> rows, newest first
CaptureLoader = Callable[[Sequence[str], int], Awaitable[List[Row]]]

R = TypeVar("R", bound=BaseModel)


def parse_rows(source: str, model: Type[R], rows: Optional[Iterable[Row]]) -> List[R]:
    """Validate raw rows, skipping (and logging) the ones that don't fit."""
    records = []
    for row in rows or []:
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed row",
                extra={"context": {
                    "source": source,
                    "row_id": row.get("id") if isinstance(row, dict) else None,
                    "errors": e.error_count(),
                }},
            )
    return records


def merge_touch_data(
    leads: Iterable[LeadRecord],
    touches: Iterable[TouchRecord],
) -> List[LeadWithTouches]:
    """Attach newest touch, total touches and responded touches to each lead."""
    by_lead: Dict[str, Dict[str, Any]] = {}
    for touch in touches:
        agg = by_lead.setdefault(touch.lead_id, {"last": None, "total": 0, "responded": 0})
        agg["total"] += 1
        if touch.responded:
            agg["responded"] += 1
        if agg["last"] is None or touch.created_at > agg["last"]:
            agg["last"] = touch.created_at

    merged = []
    for lead in leads:
        agg = by_lead.get(lead.id, {"last": None, "total": 0, "responded": 0})
        merged.append(LeadWithTouches(
            lead=lead,
            last_touch_at=agg["last"],
            total_touches=agg["total"],
            responded_touches=agg["responded"],
        ))
    return merged


class SourceFetcher:
    """Base class: one asynchronous read per cycle."""

    name: str = "source"
    interval: float = 60.0  # seconds between periodic fetches

    async def fetch(self) -> list:
        raise NotImplementedError

    async def _call(self, loader: Callable[..., Awaitable[List[Row]]], *args) -> List[Row]:
        try:
            rows = await loader(*args)
        except SourceFetchError:
            raise
        except Exception as e:
            raise SourceFetchError(self.name, str(e)) from e
        if rows is not None and not isinstance(rows, (list, tuple)):
            raise SourceFetchError(self.name, f"loader returned {type(rows).__name__}, expected rows")
        return rows


class StaleLeadFetcher(SourceFetcher):
    """Active leads merged with their touch history."""

    name = "leads"

    def __init__(
        self,
        lead_loader: LeadLoader,
        touch_loader: Optional[TouchLoader] = None,
        limit: int = 50,
        interval: float = 60.0,
    ):
        self.lead_loader = lead_loader
        self.touch_loader = touch_loader
        self.limit = limit
        self.interval = interval

    async def fetch(self) -> List[LeadWithTouches]:
        rows = await self._call(self.lead_loader, sorted(STALE_CANDIDATE_STATUSES), self.limit)
        leads = parse_rows(self.name, LeadRecord, rows)
        if not leads or self.touch_loader is None:
            return merge_touch_data(leads, [])

        # Touch data is supplementary: a failed read leaves leads on their own timestamps.
        try:
            touch_rows = await self.touch_loader([lead.id for lead in leads])
        except Exception:
            logger.warning(
                "Touch data unavailable, using lead timestamps",
                extra={"context": {"leads": len(leads)}},
                exc_info=True,
            )
            touch_rows = []

        touches = parse_rows("touches", TouchRecord, touch_rows)
        return merge_touch_data(leads, touches)


class OpenDealFetcher(SourceFetcher):
    name = "deals"

    def __init__(self, loader: DealLoader, limit: int = 50, interval: float = 60.0):
        self.loader = loader
        self.limit = limit
        self.interval = interval

    async def fetch(self) -> List[DealRecord]:
        rows = await self._call(self.loader, sorted(CLOSED_DEAL_STAGES), self.limit)
        return [d for d in parse_rows(self.name, DealRecord, rows) if d.is_open]


class PendingCaptureFetcher(SourceFetcher):
    name = "captures"

    def __init__(self, loader: CaptureLoader, limit: int = 20, interval: float = 30.0):
        self.loader = loader
        self.limit = limit
        self.interval = interval

    async def fetch(self) -> List[CaptureItem]:
        rows = await self._call(self.loader, sorted(PENDING_CAPTURE_STATUSES), self.limit)
        return [c for c in parse_rows(self.name, CaptureItem, rows) if c.is_pending]

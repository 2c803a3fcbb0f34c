"""
In-memory record set.

Stands in for the remote data store when running the HTTP surface locally
or in tests. Loaders apply the same filters and limits the real queries do.
"""

from typing import Any, Dict, List, Sequence

from nudge_engine.models.settings import RefreshConfig
from nudge_engine.sources.fetchers import (
    OpenDealFetcher,
    PendingCaptureFetcher,
    SourceFetcher,
    StaleLeadFetcher,
)

Row = Dict[str, Any]


class InMemoryRecordSet:
    """Raw rows per table, served through async loaders."""

    def __init__(self):
        self.leads: List[Row] = []
        self.touches: List[Row] = []
        self.deals: List[Row] = []
        self.captures: List[Row] = []

    def ingest(self, table: str, rows: List[Row]) -> int:
        """Upsert rows by id (touches are appended)."""
        target: List[Row] = getattr(self, table)
        if table == "touches":
            target.extend(rows)
            return len(rows)

        index = {row.get("id"): i for i, row in enumerate(target)}
        for row in rows:
            position = index.get(row.get("id"))
            if position is None:
                index[row.get("id")] = len(target)
                target.append(row)
            else:
                target[position] = row
        return len(rows)

    def clear(self) -> None:
        self.leads.clear()
        self.touches.clear()
        self.deals.clear()
        self.captures.clear()

    async def load_leads(self, statuses: Sequence[str], limit: int) -> List[Row]:
        return [r for r in self.leads if r.get("status") in statuses][:limit]

    async def load_touches(self, lead_ids: Sequence[str]) -> List[Row]:
        wanted = set(lead_ids)
        return [r for r in self.touches if r.get("lead_id") in wanted]

    async def load_deals(self, excluded_stages: Sequence[str], limit: int) -> List[Row]:
        return [r for r in self.deals if r.get("stage") not in excluded_stages][:limit]

    async def load_captures(self, statuses: Sequence[str], limit: int) -> List[Row]:
        rows = [r for r in self.captures if r.get("status") in statuses]
        rows.sort(key=lambda r: str(r.get("created_at", "")), reverse=True)
        return rows[:limit]

    def fetchers(self, config: RefreshConfig = RefreshConfig()) -> List[SourceFetcher]:
        """The three Source Fetchers wired to this record set."""
        return [
            StaleLeadFetcher(
                self.load_leads, self.load_touches,
                limit=config.lead_limit, interval=config.lead_interval_seconds,
            ),
            OpenDealFetcher(
                self.load_deals,
                limit=config.deal_limit, interval=config.deal_interval_seconds,
            ),
            PendingCaptureFetcher(
                self.load_captures,
                limit=config.capture_limit, interval=config.capture_interval_seconds,
            ),
        ]

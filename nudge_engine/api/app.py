"""
Nudge Engine API — FastAPI endpoints.

Exposes the Refresh Controller's view and actions:
- Current nudges and summary
- Manual refresh
- Snooze / dismiss / unsnooze
- Settings
- Record ingestion into the in-memory record set (local testing)
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from enum import Enum
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from nudge_engine.config import EngineConfig, load_config
from nudge_engine.log import setup_logging
from nudge_engine.models.nudge import NudgeView
from nudge_engine.models.settings import NudgeSettings
from nudge_engine.refresh.controller import RefreshController
from nudge_engine.snooze.store import SnoozeStore, SQLiteKeyValueBackend
from nudge_engine.sources.memory import InMemoryRecordSet


# --- Request/Response Models ---

class SnoozeRequest(BaseModel):
    hours: Optional[float] = Field(default=None, ge=0)
    minutes: Optional[float] = Field(default=None, ge=0)


class SnoozeResponse(BaseModel):
    nudge_id: str
    expires_at: int


class RecordTable(str, Enum):
    LEADS = "leads"
    TOUCHES = "touches"
    DEALS = "deals"
    CAPTURES = "captures"


class IngestRequest(BaseModel):
    rows: List[dict]


class PruneResponse(BaseModel):
    removed: int
    remaining: int


# --- Application Factory ---

def create_app(
    controller: Optional[RefreshController] = None,
    records: Optional[InMemoryRecordSet] = None,
    config: Optional[EngineConfig] = None,
    run_scheduler: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or EngineConfig()
    setup_logging(config.log_level)

    rs = records or InMemoryRecordSet()
    rc = controller or RefreshController(
        fetchers=rs.fetchers(config.refresh),
        snooze_store=SnoozeStore(
            SQLiteKeyValueBackend(config.snooze_db_path), key=config.snooze_key,
        ),
        settings=config.settings,
        config=config.refresh,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_scheduler:
            rc.start()
        try:
            yield
        finally:
            await rc.stop()

    app = FastAPI(
        title="Nudge Engine API",
        description="Ranked, snoozable follow-up nudges from leads, deals and captures",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.controller = rc
    app.state.records = rs

    def _snoozed(entry) -> SnoozeResponse:
        if entry is None:
            raise HTTPException(503, "Snooze store unavailable")
        return SnoozeResponse(nudge_id=entry.nudge_id, expires_at=entry.expires_at)

    @app.get("/health")
    def health():
        return {"status": "ok", "refresh": rc.status}

    # === NUDGES ===

    @app.get("/nudges", response_model=NudgeView)
    def get_nudges():
        """Latest published view."""
        return rc.view

    @app.post("/nudges/refresh", response_model=NudgeView)
    async def refresh_nudges():
        """Fetch every source now and recompute."""
        return await rc.refresh()

    @app.post("/nudges/{nudge_id}/snooze", response_model=SnoozeResponse)
    def snooze_nudge(nudge_id: str, req: Optional[SnoozeRequest] = None):
        duration = None
        if req and (req.hours is not None or req.minutes is not None):
            duration = timedelta(hours=req.hours or 0, minutes=req.minutes or 0)
        return _snoozed(rc.snooze(nudge_id, duration))

    @app.post("/nudges/{nudge_id}/dismiss", response_model=SnoozeResponse)
    def dismiss_nudge(nudge_id: str):
        return _snoozed(rc.dismiss(nudge_id))

    @app.post("/nudges/{nudge_id}/unsnooze", response_model=SnoozeResponse)
    def unsnooze_nudge(nudge_id: str):
        return _snoozed(rc.unsnooze(nudge_id))

    # === SNOOZES ===

    @app.get("/snoozes")
    def list_snoozes():
        """Entries still in force."""
        return [
            e.model_dump(by_alias=True)
            for e in rc.snooze_store.active_entries()
        ]

    @app.post("/snoozes/prune", response_model=PruneResponse)
    def prune_snoozes():
        removed = rc.prune_snoozes()
        return PruneResponse(removed=removed, remaining=len(rc.snooze_store.entries()))

    # === SETTINGS ===

    @app.get("/settings", response_model=NudgeSettings)
    def get_settings():
        return rc.settings

    @app.put("/settings", response_model=NudgeSettings)
    def update_settings(settings: NudgeSettings):
        rc.update_settings(settings)
        return rc.settings

    # === RECORDS ===

    @app.post("/records/{table}")
    def ingest_records(table: RecordTable, req: IngestRequest):
        """Manual record feed (for testing)."""
        count = rs.ingest(table.value, req.rows)
        return {"status": "ingested", "table": table.value, "count": count}

    return app


# Default application instance
app = create_app(config=load_config(), run_scheduler=True)

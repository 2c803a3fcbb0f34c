"""
Refresh Controller — owns the current nudge view.

Each source is re-fetched on its own interval; a manual refresh fetches all
of them concurrently and publishes once every fetch has resolved. Snooze,
dismiss and settings changes recompute from the cached records without
refetching.

Per source:
  IDLE -> FETCHING -> (records | [] on failure) -> PUBLISH -> IDLE
A tick arriving while that source is FETCHING is dropped, not queued.
Nothing is published once the controller has been stopped.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set

from nudge_engine.aggregator.engine import NudgeEngine
from nudge_engine.config import load_nudge_settings
from nudge_engine.exceptions import SnoozeStoreError
from nudge_engine.models.nudge import NudgeView
from nudge_engine.models.settings import NudgeSettings, RefreshConfig
from nudge_engine.models.snooze import SnoozeEntry
from nudge_engine.snooze.store import SnoozeStore
from nudge_engine.sources.fetchers import SourceFetcher

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshController:
    """Periodic and on-demand recomputation of the nudge worklist."""

    def __init__(
        self,
        fetchers: List[SourceFetcher],
        snooze_store: Optional[SnoozeStore] = None,
        settings: Optional[NudgeSettings] = None,
        config: Optional[RefreshConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.fetchers: Dict[str, SourceFetcher] = {f.name: f for f in fetchers}
        self.snooze_store = snooze_store or SnoozeStore()
        self.engine = NudgeEngine(self.snooze_store)
        self.settings = load_nudge_settings(settings)
        self.config = config or RefreshConfig()
        self._clock = clock or _utcnow

        self._records: Dict[str, list] = {name: [] for name in self.fetchers}
        self._resolved: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._tasks: List[asyncio.Task] = []
        self._closed = False
        self._view = NudgeView(enabled=self.settings.enabled, is_loading=self.settings.enabled)

    # --- State ---

    @property
    def view(self) -> NudgeView:
        """Latest published view."""
        return self._view

    @property
    def is_loading(self) -> bool:
        return self.settings.enabled and not self._resolved.issuperset(self.fetchers)

    @property
    def status(self) -> str:
        return "running" if self._tasks else "stopped"

    # --- Fetching ---

    async def _fetch(self, name: str) -> Optional[list]:
        """
        One read for one source. None if a fetch for that source is already
        in flight; [] if the fetch failed for any reason.
        """
        if name in self._in_flight:
            logger.debug("Fetch already in flight, tick dropped", extra={"context": {"source": name}})
            return None

        self._in_flight.add(name)
        try:
            return await self.fetchers[name].fetch()
        except Exception:
            logger.warning(
                "Source fetch failed, source contributes no records this cycle",
                extra={"context": {"source": name}},
                exc_info=True,
            )
            return []
        finally:
            self._in_flight.discard(name)

    def _store(self, name: str, records: Optional[list]) -> None:
        if records is None:
            return
        self._records[name] = records
        self._resolved.add(name)

    async def refresh_source(self, name: str) -> bool:
        """Refresh one source and republish. False if the tick was dropped."""
        if self._closed or name not in self.fetchers:
            return False
        if not self.settings.enabled:
            self._publish()
            return False

        records = await self._fetch(name)
        if records is None or self._closed:
            return False

        self._store(name, records)
        self._publish()
        return True

    async def refresh(self) -> NudgeView:
        """Manual refresh: fetch every source concurrently, publish once all resolve."""
        if self._closed:
            return self._view
        if not self.settings.enabled:
            return self._publish()

        names = list(self.fetchers)
        results = await asyncio.gather(*(self._fetch(name) for name in names))
        if self._closed:
            return self._view

        for name, records in zip(names, results):
            self._store(name, records)
        return self._publish()

    # --- Publishing ---

    def _publish(self) -> NudgeView:
        if self._closed:
            return self._view

        now = self._clock()
        if not self.settings.enabled:
            self._view = NudgeView(enabled=False, is_loading=False, refreshed_at=now)
            return self._view

        nudges, summary = self.engine.generate(
            leads=self._records.get("leads", []),
            deals=self._records.get("deals", []),
            captures=self._records.get("captures", []),
            settings=self.settings,
            now=now,
        )
        self._view = NudgeView(
            nudges=nudges,
            summary=summary,
            enabled=True,
            is_loading=self.is_loading,
            refreshed_at=now,
        )
        logger.debug(
            "Published nudge view",
            extra={"context": {"total": summary.total, "loading": self._view.is_loading}},
        )
        return self._view

    # --- Mutations ---

    def snooze(
        self, nudge_id: str, duration: Optional[timedelta] = None
    ) -> Optional[SnoozeEntry]:
        """Suppress a nudge and recompute. None if the store could not be written."""
        if duration is None:
            duration = timedelta(hours=self.config.default_snooze_hours)
        try:
            entry = self.snooze_store.snooze(nudge_id, duration, self._clock())
        except SnoozeStoreError:
            logger.warning(
                "Snooze not persisted", extra={"context": {"nudge_id": nudge_id}}, exc_info=True
            )
            return None
        self._publish()
        return entry

    def dismiss(self, nudge_id: str) -> Optional[SnoozeEntry]:
        """Permanent removal, expressed as a very long snooze."""
        return self.snooze(nudge_id, timedelta(days=self.config.dismiss_days))

    def unsnooze(self, nudge_id: str) -> Optional[SnoozeEntry]:
        return self.snooze(nudge_id, timedelta(0))

    def prune_snoozes(self) -> int:
        try:
            return self.snooze_store.prune_expired(self._clock())
        except SnoozeStoreError:
            logger.warning("Snooze pruning failed", exc_info=True)
            return 0

    def update_settings(self, settings) -> NudgeView:
        """Swap thresholds and recompute from cached records."""
        self.settings = load_nudge_settings(settings)
        return self._publish()

    # --- Scheduling ---

    async def _run_source(self, name: str) -> None:
        interval = self.fetchers[name].interval
        while not self._closed:
            try:
                await self.refresh_source(name)
            except Exception:
                logger.exception("Refresh cycle crashed", extra={"context": {"source": name}})
            await asyncio.sleep(interval)

    async def _run_pruner(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.config.snooze_prune_interval_seconds)
            self.prune_snoozes()

    def start(self) -> None:
        """Launch one task per source plus the snooze pruner. Requires a running loop."""
        if self._tasks:
            return
        self._closed = False
        self._tasks = [
            asyncio.create_task(self._run_source(name), name=f"nudge-refresh-{name}")
            for name in self.fetchers
        ]
        self._tasks.append(asyncio.create_task(self._run_pruner(), name="nudge-snooze-prune"))

    async def stop(self) -> None:
        """Cancel timers and in-flight fetches. Nothing is published afterwards."""
        self._closed = True
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run until stop_event is set."""
        if stop_event is None:
            stop_event = asyncio.Event()
        self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

"""Tests for the Refresh Controller."""

import asyncio
from datetime import datetime, timedelta, timezone

from nudge_engine.exceptions import SnoozeStoreError, SourceFetchError
from nudge_engine.models.nudge import NudgeType
from nudge_engine.models.settings import NudgeSettings, RefreshConfig
from nudge_engine.refresh.controller import RefreshController
from nudge_engine.snooze.store import KeyValueBackend, SnoozeStore
from nudge_engine.sources.fetchers import OpenDealFetcher, SourceFetcher
from nudge_engine.sources.memory import InMemoryRecordSet

NOW = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)


def _iso(days_ago: float) -> str:
    return (NOW - timedelta(days=days_ago)).isoformat()


def _seed(records: InMemoryRecordSet) -> None:
    records.ingest("leads", [
        {"id": "warm", "name": "Warm", "status": "active", "updated_at": _iso(6)},
        {"id": "cold", "name": "Cold", "status": "active", "updated_at": _iso(11)},
    ])
    records.ingest("deals", [
        {"id": "d1", "stage": "offer", "next_action": "Call seller",
         "next_action_due": (NOW - timedelta(days=3)).astimezone().date().isoformat(),
         "updated_at": _iso(1)},
    ])
    records.ingest("captures", [
        {"id": f"c{i}", "status": "pending", "created_at": _iso(0)} for i in range(3)
    ])


class GatedFetcher(SourceFetcher):
    """Blocks until released; counts calls."""

    def __init__(self, name):
        self.name = name
        self.calls = 0
        self.gate = asyncio.Event()

    async def fetch(self):
        self.calls += 1
        await self.gate.wait()
        return []


class FailingFetcher(SourceFetcher):
    name = "deals"

    async def fetch(self):
        raise SourceFetchError(self.name, "boom")


class CrashingFetcher(SourceFetcher):
    name = "deals"

    async def fetch(self):
        raise RuntimeError("unexpected")


class UnreadableBackend(KeyValueBackend):
    def get(self, key):
        raise OSError("disk gone")

    def set(self, key, value):
        raise OSError("disk gone")


class ReadOnlyBackend(KeyValueBackend):
    def get(self, key):
        return None

    def set(self, key, value):
        raise SnoozeStoreError("read-only")


class TestRefreshController:
    def setup_method(self):
        self.records = InMemoryRecordSet()
        _seed(self.records)
        self.store = SnoozeStore()
        self.now = NOW
        self.controller = RefreshController(
            fetchers=self.records.fetchers(),
            snooze_store=self.store,
            settings=NudgeSettings(),
            clock=lambda: self.now,
        )

    def test_initial_view_is_loading(self):
        view = self.controller.view
        assert view.is_loading is True
        assert view.nudges == []
        assert view.enabled is True

    def test_manual_refresh_publishes_ranked_view(self):
        view = asyncio.run(self.controller.refresh())
        assert view.is_loading is False
        assert view.refreshed_at == NOW
        assert [n.id for n in view.nudges] == [
            "stale-lead-cold",
            "action-overdue-d1",
            "stale-lead-warm",
            "capture-pending",
        ]
        assert view.summary.total == 4
        assert view.summary.high == 2
        assert view.summary.medium == 1
        assert view.summary.low == 1

    def test_single_source_refresh_keeps_loading_until_all_resolve(self):
        assert asyncio.run(self.controller.refresh_source("captures")) is True
        view = self.controller.view
        assert view.is_loading is True
        assert [n.type for n in view.nudges] == [NudgeType.CAPTURE_PENDING]

    def test_snooze_recomputes_without_refetch(self):
        asyncio.run(self.controller.refresh())
        self.records.clear()

        entry = self.controller.snooze("stale-lead-cold", timedelta(days=1))
        assert entry is not None
        ids = [n.id for n in self.controller.view.nudges]
        assert "stale-lead-cold" not in ids
        assert "stale-lead-warm" in ids

        self.now = NOW + timedelta(days=2)
        asyncio.run(self.controller.refresh())
        self.controller.update_settings(NudgeSettings())
        assert self.controller.view.nudges == []

    def test_snooze_expiry_restores_nudge(self):
        asyncio.run(self.controller.refresh())
        self.controller.snooze("stale-lead-cold", timedelta(hours=1))
        self.now = NOW + timedelta(hours=2)
        view = asyncio.run(self.controller.refresh())
        assert "stale-lead-cold" in [n.id for n in view.nudges]

    def test_default_snooze_duration(self):
        entry = self.controller.snooze("x")
        assert entry.expires_at_datetime == NOW + timedelta(hours=24)

    def test_dismiss_is_long_snooze(self):
        asyncio.run(self.controller.refresh())
        entry = self.controller.dismiss("capture-pending")
        assert entry.expires_at_datetime == NOW + timedelta(days=3650)
        assert "capture-pending" not in [n.id for n in self.controller.view.nudges]

    def test_unsnooze(self):
        asyncio.run(self.controller.refresh())
        self.controller.snooze("capture-pending", timedelta(days=1))
        self.controller.unsnooze("capture-pending")
        assert "capture-pending" in [n.id for n in self.controller.view.nudges]

    def test_snooze_write_failure_returns_none(self):
        controller = RefreshController(
            fetchers=self.records.fetchers(),
            snooze_store=SnoozeStore(ReadOnlyBackend()),
            clock=lambda: NOW,
        )
        assert controller.snooze("x", timedelta(hours=1)) is None

    def test_prune_snoozes(self):
        self.store.snooze("old", timedelta(hours=1), now=NOW - timedelta(hours=5))
        self.store.snooze("new", timedelta(hours=1), now=NOW)
        assert self.controller.prune_snoozes() == 1
        assert [e.nudge_id for e in self.store.entries()] == ["new"]

    def test_disabled_skips_fetching(self):
        calls = []

        async def loader(*args):
            calls.append(args)
            return []

        records = InMemoryRecordSet()
        records.load_leads = loader
        controller = RefreshController(
            fetchers=records.fetchers(),
            settings=NudgeSettings(enabled=False),
            clock=lambda: NOW,
        )
        view = asyncio.run(controller.refresh())
        assert view.enabled is False
        assert view.is_loading is False
        assert view.nudges == []
        assert calls == []

    def test_update_settings_applies_new_thresholds(self):
        asyncio.run(self.controller.refresh())
        view = self.controller.update_settings(
            NudgeSettings(stale_lead_warning_days=20, stale_lead_critical_days=30)
        )
        assert not any(n.type == NudgeType.STALE_LEAD for n in view.nudges)

    def test_malformed_settings_fall_back_to_defaults(self):
        self.controller.update_settings({"stale_lead_warning_days": 9, "stale_lead_critical_days": 2})
        assert self.controller.settings == NudgeSettings()

    def test_failed_source_contributes_nothing(self):
        fetchers = [f for f in self.records.fetchers() if f.name != "deals"] + [FailingFetcher()]
        controller = RefreshController(fetchers=fetchers, clock=lambda: NOW)
        view = asyncio.run(controller.refresh())
        types = {n.type for n in view.nudges}
        assert NudgeType.ACTION_OVERDUE not in types
        assert NudgeType.STALE_LEAD in types
        assert NudgeType.CAPTURE_PENDING in types
        assert view.is_loading is False

    def test_unexpected_fetch_error_contributes_nothing(self):
        fetchers = [f for f in self.records.fetchers() if f.name != "deals"] + [CrashingFetcher()]
        controller = RefreshController(fetchers=fetchers, clock=lambda: NOW)
        view = asyncio.run(controller.refresh())
        assert view.summary.stale_leads == 2
        assert view.summary.pending_captures == 1
        assert view.is_loading is False

    def test_non_list_payload_contributes_nothing(self):
        async def bad_deals(*args):
            return 5

        fetchers = [f for f in self.records.fetchers() if f.name != "deals"]
        fetchers.append(OpenDealFetcher(bad_deals))
        controller = RefreshController(fetchers=fetchers, clock=lambda: NOW)
        view = asyncio.run(controller.refresh())
        assert view.summary.pending_captures == 1
        assert view.summary.overdue_actions == 0

    def test_unreadable_snooze_store_does_not_block_refresh(self):
        controller = RefreshController(
            fetchers=self.records.fetchers(),
            snooze_store=SnoozeStore(UnreadableBackend()),
            clock=lambda: NOW,
        )
        view = asyncio.run(controller.refresh())
        assert view.summary.total == 4


class TestRefreshScheduling:
    def test_tick_during_inflight_fetch_is_dropped(self):
        async def scenario():
            fetcher = GatedFetcher("leads")
            controller = RefreshController(fetchers=[fetcher], clock=lambda: NOW)

            first = asyncio.create_task(controller.refresh_source("leads"))
            await asyncio.sleep(0)
            second = await controller.refresh_source("leads")

            fetcher.gate.set()
            return fetcher.calls, second, await first

        calls, second, first = asyncio.run(scenario())
        assert calls == 1
        assert second is False
        assert first is True

    def test_stop_cancels_and_suppresses_publication(self):
        async def scenario():
            fetcher = GatedFetcher("leads")
            controller = RefreshController(fetchers=[fetcher], clock=lambda: NOW)
            controller.start()
            await asyncio.sleep(0)
            assert controller.status == "running"

            before = controller.view
            await controller.stop()
            fetcher.gate.set()
            await asyncio.sleep(0)
            return controller, before

        controller, before = asyncio.run(scenario())
        assert controller.status == "stopped"
        assert controller.view is before
        assert asyncio.run(controller.refresh()) is before

    def test_periodic_loop_refreshes_each_source(self):
        async def scenario():
            records = InMemoryRecordSet()
            _seed(records)
            config = RefreshConfig(
                lead_interval_seconds=0.01,
                deal_interval_seconds=0.01,
                capture_interval_seconds=0.01,
            )
            controller = RefreshController(
                fetchers=records.fetchers(config),
                config=config,
                clock=lambda: NOW,
            )
            stop = asyncio.Event()
            runner = asyncio.create_task(controller.run_async(stop))
            for _ in range(100):
                await asyncio.sleep(0.01)
                if not controller.view.is_loading:
                    break
            stop.set()
            await runner
            return controller

        controller = asyncio.run(scenario())
        assert controller.view.is_loading is False
        assert controller.view.summary.total == 4
        assert controller.status == "stopped"

    def test_interval_per_source(self):
        config = RefreshConfig(capture_interval_seconds=15)
        intervals = {f.name: f.interval for f in InMemoryRecordSet().fetchers(config)}
        assert intervals == {"leads": 60, "deals": 60, "captures": 15}

    def test_default_fetcher_intervals(self):
        intervals = {f.name: f.interval for f in InMemoryRecordSet().fetchers()}
        assert intervals == {"leads": 60, "deals": 60, "captures": 30}

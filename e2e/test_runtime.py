"""DashboardRuntime tests against the in-memory fixture backend."""

import asyncio

import httpx
import pytest

from backend import HttpContractMonitorBackend, InMemoryBackend, TransportFailure
from core.runtime import DashboardRuntime
from lifecycle.controller import InvalidTransition, LifecycleAction
from schemas.change import ChangeStatus
from schemas.insight import InsightField


class FlakyBackend(InMemoryBackend):
    """Fixture backend whose summary and write calls can be made to fail."""

    fail = frozenset()

    async def fetch_statistics(self):
        if "fetch_statistics" in self.fail:
            raise TransportFailure("stats down", operation="fetch_statistics")
        return await super().fetch_statistics()

    async def fetch_all_service_status(self):
        if "fetch_all_service_status" in self.fail:
            raise TransportFailure("status down", operation="fetch_all_service_status")
        return await super().fetch_all_service_status()

    async def resolve(self, change_id, actor, notes):
        if "resolve" in self.fail:
            raise TransportFailure("write failed", operation="resolve")
        await super().resolve(change_id, actor, notes)


class SlowWriteBackend(InMemoryBackend):
    """Fixture backend whose lifecycle writes yield to the event loop."""

    async def resolve(self, change_id, actor, notes):
        await asyncio.sleep(0.01)
        await super().resolve(change_id, actor, notes)

    async def ignore(self, change_id, actor, reason):
        await asyncio.sleep(0.01)
        await super().ignore(change_id, actor, reason)


def make_runtime(backend=None, **kwargs) -> DashboardRuntime:
    backend = backend or InMemoryBackend.from_fixture()
    return DashboardRuntime(backend, backend.services, **kwargs)


# ── Refresh ───────────────────────────────────────────────────────────────────

class TestRefresh:
    async def test_snapshot_from_fixture(self):
        snapshot = await make_runtime().refresh()
        assert [r.id for r in snapshot.feed] == ["101", "102", "201", "202", "301"]
        assert snapshot.total_breaking_changes == 5
        assert (snapshot.online_count, snapshot.total_count) == (3, 4)
        assert snapshot.status_filter == "ALL"

    async def test_health_map(self):
        snapshot = await make_runtime().refresh()
        assert snapshot.services["order-service"].has_baseline is True
        assert snapshot.services["order-service"].baseline_version == "2.0.0"
        assert snapshot.services["product-service"].has_baseline is False
        # offline: baseline lookup failed, shown as no baseline
        assert snapshot.services["notification-service"].online is False
        assert snapshot.services["notification-service"].has_baseline is False

    async def test_status_filter(self):
        snapshot = await make_runtime().refresh("active")
        assert [r.id for r in snapshot.feed] == ["101", "202"]
        assert snapshot.status_filter == "ACTIVE"

    async def test_bad_filter_fails_before_any_call(self):
        backend = InMemoryBackend.from_fixture()
        with pytest.raises(ValueError):
            await make_runtime(backend).refresh("DELETED")
        assert backend.calls == []

    async def test_statistics_and_status_failures_degrade(self):
        backend = FlakyBackend.from_fixture()
        backend.fail = {"fetch_statistics", "fetch_all_service_status"}
        snapshot = await make_runtime(backend).refresh()
        assert snapshot.total_breaking_changes == 0
        assert snapshot.total_count == 4
        assert snapshot.online_count == 0
        assert len(snapshot.feed) == 5

    async def test_malformed_baseline_shows_no_baseline(self):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/api/baseline/a":
                return httpx.Response(200, json={"hasBaseline": True, "baseline": "v1"})
            if path == "/api/baseline/b":
                return httpx.Response(200, json={"hasBaseline": True, "baseline": {"version": "1.2.0"}})
            if path == "/api/analysis/status":
                return httpx.Response(200, json={"onlineCount": 2, "totalCount": 2, "services": {"a": True, "b": True}})
            if path == "/api/breaking-changes/statistics":
                return httpx.Response(200, json={"totalBreakingChanges": 0})
            return httpx.Response(200, json=[])

        backend = HttpContractMonitorBackend("http://monitor.test/api", transport=httpx.MockTransport(handler))
        async with backend:
            snapshot = await DashboardRuntime(backend, ["a", "b"]).refresh()

        assert snapshot.services["a"].has_baseline is False
        assert snapshot.services["b"].has_baseline is True
        assert snapshot.services["b"].baseline_version == "1.2.0"

    async def test_unexpected_error_degrades_to_fallback(self):
        class BrokenStats(InMemoryBackend):
            async def fetch_statistics(self):
                raise AttributeError("'str' object has no attribute 'get'")

        snapshot = await make_runtime(BrokenStats.from_fixture()).refresh()
        assert snapshot.total_breaking_changes == 0
        assert len(snapshot.feed) == 5

    async def test_filtered_refresh_still_caches_every_record(self):
        runtime = make_runtime()
        await runtime.refresh("IGNORED")
        assert runtime.get_change("101").status == ChangeStatus.ACTIVE


# ── Queries ───────────────────────────────────────────────────────────────────

class TestQueries:
    async def test_unknown_change_raises_key_error(self):
        runtime = make_runtime()
        await runtime.refresh()
        with pytest.raises(KeyError):
            runtime.get_change("999")

    async def test_insights(self):
        runtime = make_runtime()
        await runtime.refresh()
        docs = runtime.insights("101")
        assert list(docs) == [InsightField.SUGGESTION, InsightField.IMPACT, InsightField.EXPLANATION]
        assert runtime.insights("102") == {}

    async def test_allowed_actions(self):
        runtime = make_runtime()
        await runtime.refresh()
        assert runtime.allowed_actions("102") == [LifecycleAction.RESOLVE, LifecycleAction.IGNORE]
        assert runtime.allowed_actions("201") == []


# ── Lifecycle actions ─────────────────────────────────────────────────────────

class TestActions:
    async def test_resolve_updates_cache_and_backend(self):
        backend = InMemoryBackend.from_fixture()
        runtime = make_runtime(backend, actor="dashboard")
        await runtime.refresh()

        updated = await runtime.resolve("101")

        assert updated.status == ChangeStatus.RESOLVED
        assert updated.resolved_by == "dashboard"
        assert updated.resolution_notes == "Resolved"
        assert runtime.get_change("101").status == ChangeStatus.RESOLVED
        assert backend.record("101").status == ChangeStatus.RESOLVED
        assert ("resolve", "101", "dashboard", "Resolved") in backend.calls

    async def test_publishes_one_event_per_transition(self):
        runtime = make_runtime()
        await runtime.refresh()
        queue = runtime.subscribe()

        await runtime.acknowledge("101", actor="alex")

        event = queue.get_nowait()
        assert event.change_id == "101"
        assert event.action == "acknowledge"
        assert event.previous_status == ChangeStatus.ACTIVE
        assert event.status == ChangeStatus.ACKNOWLEDGED
        assert event.actor == "alex"
        assert queue.empty()

    async def test_invalid_transition_sends_nothing(self):
        backend = InMemoryBackend.from_fixture()
        runtime = make_runtime(backend)
        await runtime.refresh()
        queue = runtime.subscribe()

        with pytest.raises(InvalidTransition):
            await runtime.ignore("201")

        assert not any(call[0] == "ignore" for call in backend.calls)
        assert queue.empty()

    async def test_blank_actor_is_rejected(self):
        runtime = make_runtime()
        await runtime.refresh()
        with pytest.raises(InvalidTransition):
            await runtime.acknowledge("101", actor="  ")

    async def test_transport_failure_leaves_cache_unchanged(self):
        backend = FlakyBackend.from_fixture()
        backend.fail = {"resolve"}
        runtime = make_runtime(backend)
        await runtime.refresh()
        queue = runtime.subscribe()

        with pytest.raises(TransportFailure):
            await runtime.resolve("101")

        assert runtime.get_change("101").status == ChangeStatus.ACTIVE
        assert queue.empty()

    async def test_unsubscribed_queue_gets_nothing(self):
        runtime = make_runtime()
        await runtime.refresh()
        queue = runtime.subscribe()
        runtime.unsubscribe(queue)
        await runtime.ignore("101", reason="intentional")
        assert queue.empty()

    async def test_concurrent_transitions_on_one_record(self):
        backend = SlowWriteBackend.from_fixture()
        runtime = make_runtime(backend)
        await runtime.refresh()
        queue = runtime.subscribe()

        results = await asyncio.gather(
            runtime.resolve("101", actor="alice"),
            runtime.ignore("101", actor="bob"),
            return_exceptions=True,
        )

        assert results[0].status == ChangeStatus.RESOLVED
        assert isinstance(results[1], InvalidTransition)
        assert runtime.get_change("101").status == ChangeStatus.RESOLVED
        stored = backend.record("101")
        assert stored.status == ChangeStatus.RESOLVED
        assert stored.ignored_by is None
        assert queue.qsize() == 1

    async def test_transitions_on_different_records_do_not_block(self):
        runtime = make_runtime(SlowWriteBackend.from_fixture())
        await runtime.refresh()
        resolved, ignored = await asyncio.gather(
            runtime.resolve("101", actor="alice"),
            runtime.ignore("202", actor="bob"),
        )
        assert resolved.status == ChangeStatus.RESOLVED
        assert ignored.status == ChangeStatus.IGNORED

    async def test_refresh_after_transition_reflects_backend(self):
        runtime = make_runtime()
        await runtime.refresh()
        await runtime.ignore("102", actor="alex")
        snapshot = await runtime.refresh("IGNORED")
        assert [r.id for r in snapshot.feed] == ["102", "301"]


# ── Baseline and analysis ─────────────────────────────────────────────────────

class TestBaselineActions:
    async def test_set_latest_then_refresh(self):
        runtime = make_runtime()
        await runtime.set_latest_as_baseline("product-service")
        snapshot = await runtime.refresh()
        assert snapshot.services["product-service"].has_baseline is True

    async def test_clear_baseline(self):
        runtime = make_runtime()
        await runtime.clear_baseline("order-service")
        snapshot = await runtime.refresh()
        assert snapshot.services["order-service"].has_baseline is False

    async def test_failures_are_surfaced(self):
        runtime = make_runtime()
        with pytest.raises(TransportFailure):
            await runtime.analyze("notification-service")

    async def test_analyze(self):
        result = await make_runtime().analyze("order-service")
        assert result["breakingChanges"] == 2

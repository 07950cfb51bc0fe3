"""Dashboard runtime — the top-level orchestrator.

DashboardRuntime is the single entry point the presentation layer talks to.
It owns one backend, one ChangeAggregator and one LifecycleController, and
exposes the refresh cycle plus every user action the dashboard offers.

Refresh order inside refresh():
    1. Validate the status filter (before any I/O)
    2. Concurrently: statistics, all-service status, the aggregated feed,
       and every service's baseline
    3. Degrade each failed collaborator call to an empty/unknown result
    4. Summarize service health via ServiceHealthView
    5. Cache the unfiltered feed by id for lifecycle actions
    6. Filter the feed and return a DashboardSnapshot

Lifecycle actions (acknowledge / resolve / ignore) hold a per-record lock,
validate against the freshest cached copy of the record, forward the
transition to the backend, and publish a LifecycleEvent. They never re-fetch; subscribers decide when
to call refresh() again.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable

from aggregation.aggregator import ALL, ChangeAggregator, filter_by_status
from backend.base import ContractMonitorBackend, TransportFailure
from health.view import summarize
from insights.parser import parse_record
from lifecycle.controller import LifecycleAction, LifecycleController
from schemas.change import ChangeRecord, ChangeStatus
from schemas.events import LifecycleEvent
from schemas.health import BaselineInfo, ChangeStatistics, DashboardSnapshot, ServiceStatusReport
from schemas.insight import InsightDocument, InsightField

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "system"


class DashboardRuntime:
    """Orchestrates refreshes and lifecycle actions against one backend.

    Attributes:
        services: Monitored service names, in display order.
        actor: Identity recorded when an action is called without one.
        _backend: The backend collaborator every call goes through.
        _aggregator: Merges per-service recent changes into the feed.
        _controller: Validates and applies lifecycle transitions.
        _changes: Records from the last refresh (unfiltered), keyed by id.
        _subscribers: Queues receiving a LifecycleEvent per transition.
        _locks: Per-record locks serialising lifecycle transitions.
    """

    def __init__(
        self,
        backend: ContractMonitorBackend,
        services: Iterable[str],
        aggregator: ChangeAggregator | None = None,
        controller: LifecycleController | None = None,
        actor: str = DEFAULT_ACTOR,
    ) -> None:
        self.services = list(services)
        self.actor = actor
        self._backend = backend
        self._aggregator = aggregator or ChangeAggregator()
        self._controller = controller or LifecycleController()
        self._changes: dict[str, ChangeRecord] = {}
        self._subscribers: list[asyncio.Queue] = []
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def backend(self) -> ContractMonitorBackend:
        return self._backend

    # ── Change notifications ──────────────────────────────────────────────────

    def subscribe(self) -> asyncio.Queue:
        """Return a new queue that receives a LifecycleEvent per successful transition."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    # ── Refresh ───────────────────────────────────────────────────────────────

    async def refresh(
        self,
        status: ChangeStatus | str = ALL,
        event_queue: asyncio.Queue | None = None,
    ) -> DashboardSnapshot:
        """Re-read everything from the backend and return a fresh snapshot.

        Never fails because of the backend: statistics and status failures
        degrade to zero counts, a failed baseline lookup shows the service
        without a baseline, and failed per-service fetches drop out of the feed.

        Args:
            status: Feed filter, a ChangeStatus, its name, or "ALL".
            event_queue: Optional queue for the aggregator's FetchEvents.

        Returns:
            A DashboardSnapshot with the filtered feed and health map.

        Raises:
            ValueError: If status is not a valid filter. Raised before any
                backend call is made.
        """
        filter_by_status([], status)

        async with asyncio.TaskGroup() as tg:
            stats_task = tg.create_task(self._safely(
                "fetch_statistics", self._backend.fetch_statistics(), ChangeStatistics(),
            ))
            status_task = tg.create_task(self._safely(
                "fetch_all_service_status",
                self._backend.fetch_all_service_status(),
                ServiceStatusReport(),
            ))
            feed_task = tg.create_task(self._aggregator.aggregate(
                self.services, self._backend.fetch_recent_changes, event_queue,
            ))
            baseline_tasks = {
                name: tg.create_task(self._safely(
                    f"fetch_baseline({name})", self._backend.fetch_baseline(name), None,
                ))
                for name in self.services
            }

        stats: ChangeStatistics = stats_task.result()
        report: ServiceStatusReport = status_task.result()
        feed = feed_task.result()
        baselines: dict[str, BaselineInfo | None] = {
            name: task.result() for name, task in baseline_tasks.items()
        }

        self._changes = {record.id: record for record in feed}
        health = summarize(self.services, report.services, baselines)

        snapshot = DashboardSnapshot(
            total_breaking_changes=stats.total_breaking_changes,
            online_count=report.online_count or sum(h.online for h in health.values()),
            total_count=report.total_count or len(self.services),
            feed=filter_by_status(feed, status),
            services=health,
            status_filter=status,
        )
        logger.info(
            "Refresh complete: %d/%d services online, %d changes in feed (filter %s).",
            snapshot.online_count,
            snapshot.total_count,
            len(snapshot.feed),
            snapshot.status_filter,
        )
        return snapshot

    # ── Per-record queries ────────────────────────────────────────────────────

    def get_change(self, change_id: str) -> ChangeRecord:
        """Return the cached record from the last refresh.

        Raises:
            KeyError: If the id was not in the last refreshed feed.
        """
        try:
            return self._changes[str(change_id)]
        except KeyError:
            raise KeyError(f"Breaking change '{change_id}' is not in the current feed.") from None

    def allowed_actions(self, change_id: str) -> list[LifecycleAction]:
        return self._controller.allowed_actions(self.get_change(change_id))

    def insights(self, change_id: str) -> dict[InsightField, InsightDocument]:
        """Parse the record's insight fields on demand (card expansion)."""
        return parse_record(self.get_change(change_id))

    # ── Lifecycle actions ─────────────────────────────────────────────────────

    async def acknowledge(self, change_id: str, actor: str | None = None) -> ChangeRecord:
        """Acknowledge an ACTIVE change. Errors as for resolve()."""
        async with self._lock_for(change_id):
            record = self.get_change(change_id)
            updated = self._controller.acknowledge(record, self._actor(actor))
            await self._backend.acknowledge(record.id, updated.acknowledged_by)
            return self._commit(record, updated, LifecycleAction.ACKNOWLEDGE, updated.acknowledged_by)

    async def resolve(
        self,
        change_id: str,
        actor: str | None = None,
        notes: str | None = None,
    ) -> ChangeRecord:
        """Resolve a change.

        Args:
            change_id: Record to resolve. Must be in the current feed.
            actor: Who resolved it. None uses the runtime's default actor.
            notes: Resolution notes. None or blank records "Resolved".

        Returns:
            The record as it stands after the transition.

        Raises:
            KeyError: If the record is not in the current feed.
            InvalidTransition: If the record is already terminal, or actor
                is blank. Nothing is sent to the backend.
            TransportFailure: If the backend call failed. The cached record
                is left unchanged and no event is published.
        """
        async with self._lock_for(change_id):
            record = self.get_change(change_id)
            updated = self._controller.resolve(record, self._actor(actor), notes)
            await self._backend.resolve(record.id, updated.resolved_by, updated.resolution_notes)
            return self._commit(record, updated, LifecycleAction.RESOLVE, updated.resolved_by)

    async def ignore(
        self,
        change_id: str,
        actor: str | None = None,
        reason: str | None = None,
    ) -> ChangeRecord:
        """Ignore a change. reason None or blank records "Marked as intentional"."""
        async with self._lock_for(change_id):
            record = self.get_change(change_id)
            updated = self._controller.ignore(record, self._actor(actor), reason)
            await self._backend.ignore(record.id, updated.ignored_by, updated.ignored_reason)
            return self._commit(record, updated, LifecycleAction.IGNORE, updated.ignored_by)

    # ── Baseline and analysis actions ─────────────────────────────────────────

    async def set_latest_as_baseline(self, service_name: str) -> None:
        """Pin the service's latest spec as baseline. TransportFailure propagates."""
        await self._backend.set_latest_as_baseline(service_name)
        logger.info("Latest spec of '%s' set as baseline.", service_name)

    async def clear_baseline(self, service_name: str) -> None:
        await self._backend.clear_baseline(service_name)
        logger.info("Baseline of '%s' cleared.", service_name)

    async def analyze(self, service_name: str) -> dict:
        """Ask the backend to analyse a service now and return its summary."""
        result = await self._backend.analyze_service(service_name)
        logger.info("Analysis of '%s' complete: %s", service_name, result.get("message", "ok"))
        return result

    # ── Private helpers ───────────────────────────────────────────────────────

    def _actor(self, actor: str | None) -> str:
        return self.actor if actor is None else actor

    def _lock_for(self, change_id: str) -> asyncio.Lock:
        """One lock per record: a transition's check and write are never interleaved."""
        return self._locks.setdefault(str(change_id), asyncio.Lock())

    def _commit(
        self,
        before: ChangeRecord,
        after: ChangeRecord,
        action: LifecycleAction,
        actor: str,
    ) -> ChangeRecord:
        """Store the transitioned record and notify subscribers."""
        self._changes[after.id] = after
        event = LifecycleEvent(
            change_id=after.id,
            service_name=after.service_name,
            action=action.value,
            previous_status=before.status,
            status=after.status,
            actor=actor,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        return after

    async def _safely(self, operation: str, call, fallback):
        """Await a backend call, returning fallback if it raises."""
        try:
            return await call
        except TransportFailure as exc:
            logger.error("%s failed, using fallback. Error: %s", operation, exc)
            return fallback
        except Exception as exc:
            logger.exception("%s raised unexpectedly, using fallback. Error: %s", operation, exc)
            return fallback

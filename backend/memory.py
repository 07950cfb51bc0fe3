"""In-memory backend for demos and tests.

Fixture mode: when CONTRACT_MONITOR_URL is not set, the dashboard runs
against this backend loaded from backend/fixtures/dashboard.json, so the full
refresh / lifecycle / insight flow works without a running contract monitor.

It reproduces the server side effects the dashboard relies on: lifecycle
calls update the stored record's status and audit fields, baseline calls pin
and unpin, offline services fail their fetches with TransportFailure.
"""

import json
import logging
import pathlib
from datetime import datetime, timezone

from backend.base import ContractMonitorBackend, TransportFailure
from schemas.change import ChangeRecord, ChangeStatus
from schemas.health import BaselineInfo, ChangeStatistics, ServiceStatusReport

logger = logging.getLogger(__name__)

FIXTURE_PATH = pathlib.Path(__file__).parent / "fixtures" / "dashboard.json"


class InMemoryBackend(ContractMonitorBackend):
    """ContractMonitorBackend holding everything in dicts.

    The backend does not enforce lifecycle rules. Like the real server it
    applies whatever status it is told to. Validation is the
    LifecycleController's job.

    Attributes:
        services: Monitored service names, in display order.
        online: Service name → reachable. Offline services raise
            TransportFailure from fetch_recent_changes and fetch_baseline.
        calls: Every capability invoked, in order, as (name, args) tuples.
            Lets tests assert what the runtime forwarded.
    """

    def __init__(
        self,
        records: list[ChangeRecord] | None = None,
        services: list[str] | None = None,
        online: dict[str, bool] | None = None,
        baselines: dict[str, BaselineInfo] | None = None,
        latest_versions: dict[str, str] | None = None,
    ) -> None:
        self._records: dict[str, ChangeRecord] = {r.id: r for r in records or []}
        self.services = list(services) if services is not None else sorted(
            {r.service_name for r in self._records.values()}
        )
        self.online = dict(online) if online is not None else {s: True for s in self.services}
        self._baselines: dict[str, BaselineInfo] = dict(baselines or {})
        self._latest_versions: dict[str, str] = dict(latest_versions or {})
        self.calls: list[tuple] = []

    @classmethod
    def from_fixture(cls, path: pathlib.Path = FIXTURE_PATH) -> "InMemoryBackend":
        """Load the demo fixture.

        Falls back to a minimal inline data set if the fixture file is missing.
        """
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        else:
            logger.warning("%s not found, using minimal inline fallback.", path)
            data = _INLINE_FALLBACK

        return cls(
            records=[ChangeRecord.model_validate(item) for item in data["breakingChanges"]],
            services=data["services"],
            online=data.get("online"),
            baselines={
                name: BaselineInfo.model_validate(info)
                for name, info in data.get("baselines", {}).items()
            },
            latest_versions=data.get("latestVersions"),
        )

    def record(self, change_id: str) -> ChangeRecord:
        """Return the stored record. Raises KeyError if unknown."""
        return self._records[change_id]

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def fetch_recent_changes(self, service_name: str, limit: int) -> list[ChangeRecord]:
        self.calls.append(("fetch_recent_changes", service_name, limit))
        self._require_online(service_name, "fetch_recent_changes")
        changes = [r for r in self._records.values() if r.service_name == service_name]
        changes.sort(key=lambda r: r.detected_at, reverse=True)
        return changes[:limit]

    async def fetch_all_service_status(self) -> ServiceStatusReport:
        self.calls.append(("fetch_all_service_status",))
        services = {name: self.online.get(name, False) for name in self.services}
        return ServiceStatusReport(
            online_count=sum(services.values()),
            total_count=len(services),
            services=services,
        )

    async def fetch_statistics(self) -> ChangeStatistics:
        self.calls.append(("fetch_statistics",))
        by_type: dict[str, int] = {}
        for r in self._records.values():
            by_type[r.change_type] = by_type.get(r.change_type, 0) + 1
        return ChangeStatistics(total_breaking_changes=len(self._records), by_type=by_type)

    async def fetch_baseline(self, service_name: str) -> BaselineInfo:
        self.calls.append(("fetch_baseline", service_name))
        self._require_online(service_name, "fetch_baseline")
        return self._baselines.get(service_name, BaselineInfo(has_baseline=False))

    # ── Writes ────────────────────────────────────────────────────────────────

    async def acknowledge(self, change_id: str, actor: str) -> None:
        self.calls.append(("acknowledge", change_id, actor))
        self._update(change_id, "acknowledge", status=ChangeStatus.ACKNOWLEDGED,
                     acknowledged_by=actor, acknowledged_at=_now())

    async def resolve(self, change_id: str, actor: str, notes: str) -> None:
        self.calls.append(("resolve", change_id, actor, notes))
        self._update(change_id, "resolve", status=ChangeStatus.RESOLVED,
                     resolved_by=actor, resolved_at=_now(), resolution_notes=notes)

    async def ignore(self, change_id: str, actor: str, reason: str) -> None:
        self.calls.append(("ignore", change_id, actor, reason))
        self._update(change_id, "ignore", status=ChangeStatus.IGNORED,
                     ignored_by=actor, ignored_at=_now(), ignored_reason=reason)

    async def set_latest_as_baseline(self, service_name: str) -> None:
        self.calls.append(("set_latest_as_baseline", service_name))
        version = self._latest_versions.get(service_name)
        if version is None:
            raise TransportFailure(
                f"No spec recorded for '{service_name}'. Analyze it first.",
                operation="set_latest_as_baseline",
            )
        self._baselines[service_name] = BaselineInfo(
            has_baseline=True, baseline_set_at=_now(), version=version,
        )

    async def clear_baseline(self, service_name: str) -> None:
        self.calls.append(("clear_baseline", service_name))
        self._baselines.pop(service_name, None)

    async def analyze_service(self, service_name: str) -> dict:
        self.calls.append(("analyze_service", service_name))
        self._require_online(service_name, "analyze_service")
        count = sum(1 for r in self._records.values() if r.service_name == service_name)
        return {
            "message": f"Analysis complete for {service_name}",
            "serviceName": service_name,
            "breakingChanges": count,
        }

    # ── Private helpers ───────────────────────────────────────────────────────

    def _require_online(self, service_name: str, operation: str) -> None:
        if not self.online.get(service_name, False):
            raise TransportFailure(f"{service_name} is not reachable.", operation=operation)

    def _update(self, change_id: str, operation: str, **fields) -> None:
        if change_id not in self._records:
            raise TransportFailure(
                f"Breaking change not found with ID: {change_id}",
                operation=operation,
            )
        self._records[change_id] = self._records[change_id].model_copy(update=fields)


def _now() -> datetime:
    return datetime.now(timezone.utc)


_INLINE_FALLBACK: dict = {
    "services": ["user-service", "order-service"],
    "online": {"user-service": True, "order-service": True},
    "latestVersions": {"user-service": "1.0.0", "order-service": "1.0.0"},
    "breakingChanges": [
        {
            "id": 1,
            "serviceName": "order-service",
            "changeType": "FIELD_REMOVED",
            "path": "/api/orders.customerEmail",
            "description": "Response field customerEmail was removed",
            "detectedAt": "2025-01-01T10:00:00",
            "status": "ACTIVE",
        },
    ],
}

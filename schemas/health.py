"""Service health and dashboard summary schemas.

BaselineInfo, ServiceStatusReport and ChangeStatistics are the shapes the
backend collaborator returns. ServiceHealthSnapshot and DashboardSnapshot are
derived by this core on every refresh and never persisted.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from schemas.change import ChangeRecord


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BaselineInfo(_WireModel):
    """Baseline state of one service as reported by the backend.

    Attributes:
        has_baseline: True if a spec has been pinned as the comparison baseline.
        baseline_set_at: When the baseline was pinned, if known.
        version: Version string of the pinned spec, if known.
    """

    has_baseline: bool = False
    baseline_set_at: datetime | None = None
    version: str | None = None


class ServiceStatusReport(_WireModel):
    """Online status of every monitored service.

    Attributes:
        online_count: Number of services currently reachable.
        total_count: Number of services the backend monitors.
        services: Service name → reachable.
    """

    online_count: int = 0
    total_count: int = 0
    services: dict[str, bool] = Field(default_factory=dict)


class ChangeStatistics(_WireModel):
    """Backend-wide breaking change counts.

    Attributes:
        total_breaking_changes: Every change ever recorded, all services.
        by_type: change_type → count. Wire name "breakingChangesByType".
    """

    total_breaking_changes: int = 0
    by_type: dict[str, int] = Field(default_factory=dict, alias="breakingChangesByType")


class ServiceHealthSnapshot(_WireModel):
    """Per-service health summary shown on the dashboard.

    Attributes:
        online: Whether the service answered the backend's last probe.
        has_baseline: Whether a baseline spec is pinned. False when the
            baseline lookup failed or returned nothing.
        baseline_set_at: When the baseline was pinned. None without one.
        baseline_version: Version of the pinned spec, if reported.
    """

    online: bool
    has_baseline: bool
    baseline_set_at: datetime | None = None
    baseline_version: str | None = None


class DashboardSnapshot(_WireModel):
    """Everything one refresh cycle produced.

    Attributes:
        total_breaking_changes: Backend-wide count from the statistics call.
            Zero if that call failed.
        online_count: Services online according to the status call.
        total_count: Services monitored according to the status call,
            falling back to the number of configured services.
        feed: Merged recent changes, newest first, already status-filtered.
        services: Service name → ServiceHealthSnapshot, in configured order.
        status_filter: The filter that was applied to feed ("ALL" if none).
        refreshed_at: When the refresh completed.
    """

    total_breaking_changes: int
    online_count: int
    total_count: int
    feed: list[ChangeRecord]
    services: dict[str, ServiceHealthSnapshot]
    status_filter: str = "ALL"
    refreshed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("status_filter", mode="before")
    @classmethod
    def _filter_name(cls, value):
        value = getattr(value, "value", value)
        return value.upper() if isinstance(value, str) else value

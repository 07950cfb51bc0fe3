"""Breaking-change record schema.

A ChangeRecord is one breaking change detected by the contract monitor
backend in one service's API. Records arrive from the backend as camelCase
JSON; the model accepts both the wire names and the Python field names.

Everything on a record is owned by the backend except the lifecycle status
and its audit fields, which only LifecycleController advances. Records are
frozen: a transition produces an updated copy, never an in-place mutation.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ChangeStatus(str, Enum):
    """Lifecycle status of a breaking change.

    Extends str so values serialize as "ACTIVE" rather than
    "ChangeStatus.ACTIVE", which matches the backend's wire format.

    Values:
        ACTIVE: Detected and not yet looked at. The initial state.
        ACKNOWLEDGED: A team member has seen it and is working on it.
        RESOLVED: Fixed. Terminal.
        IGNORED: Intentional or irrelevant. Terminal.
    """

    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    IGNORED = "IGNORED"

    @property
    def is_terminal(self) -> bool:
        return self in (ChangeStatus.RESOLVED, ChangeStatus.IGNORED)


class AuditEntry(BaseModel):
    """One applied lifecycle transition.

    Attributes:
        action: "acknowledge", "resolve" or "ignore".
        actor: Identity of whoever performed the transition.
        at: When the transition was applied (UTC).
        note: Notes or reason supplied with the transition.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    action: str
    actor: str
    at: datetime
    note: str | None = None


class ChangeRecord(BaseModel):
    """A single breaking change in one service's API.

    Attributes:
        id: Opaque identifier assigned by the backend. Integer ids are
            coerced to strings so lookups never depend on the wire type.
        service_name: Service whose API changed (e.g. "order-service").
        change_type: Category tag owned by the backend, e.g. "FIELD_REMOVED",
            "TYPE_CHANGED", "ENDPOINT_REMOVED". Treated as opaque here.
        path: Affected API path or field.
        description: Human-readable summary of the change.
        detected_at: When the backend detected it. The only sort key used
            for the aggregate feed. Naive timestamps are read as UTC.
        old_version: Spec version before the change, if known.
        new_version: Spec version the change appeared in, if known.
        status: Lifecycle status. Missing or null upstream means ACTIVE.
        acknowledged_by, acknowledged_at: Set on acknowledge.
        resolved_by, resolved_at, resolution_notes: Set on resolve.
        ignored_by, ignored_at, ignored_reason: Set on ignore.
        audit_trail: Transitions applied through this core, oldest first.
        ai_suggestion: Free-text migration guidance.
        predicted_impact: Free-text cross-service impact prediction.
        plain_english_explanation: Free-text non-technical summary.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    service_name: str
    change_type: str
    path: str
    description: str = ""
    detected_at: datetime
    old_version: str | None = None
    new_version: str | None = None

    status: ChangeStatus = ChangeStatus.ACTIVE
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    ignored_by: str | None = None
    ignored_at: datetime | None = None
    ignored_reason: str | None = None
    audit_trail: tuple[AuditEntry, ...] = Field(default_factory=tuple)

    ai_suggestion: str | None = None
    predicted_impact: str | None = None
    plain_english_explanation: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        # The backend omits status on records created before lifecycle
        # tracking existed.
        if value is None or value == "":
            return ChangeStatus.ACTIVE
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("detected_at", "acknowledged_at", "resolved_at", "ignored_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def has_insights(self) -> bool:
        """True if any free-text analysis field is populated."""
        return any((self.ai_suggestion, self.predicted_impact, self.plain_english_explanation))

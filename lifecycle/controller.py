"""Breaking-change lifecycle controller.

Every breaking change moves through a small state machine:

    ACTIVE ──acknowledge──▶ ACKNOWLEDGED
    ACTIVE ──resolve──────▶ RESOLVED       (terminal)
    ACKNOWLEDGED ─resolve─▶ RESOLVED
    ACTIVE ──ignore───────▶ IGNORED        (terminal)
    ACKNOWLEDGED ─ignore──▶ IGNORED

Anything else, in particular any transition out of RESOLVED or IGNORED, is
rejected with InvalidTransition. Terminal records keep exactly the audit block
they were closed with.

The controller only validates and applies. It asks for no confirmation (the
presentation layer does that before calling in) and performs no I/O (the
runtime forwards the transition to the backend). All checks are deterministic.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from schemas.change import AuditEntry, ChangeRecord, ChangeStatus

logger = logging.getLogger(__name__)

ACKNOWLEDGE_NOTE = "Acknowledged by team"
DEFAULT_RESOLUTION_NOTES = "Resolved"
DEFAULT_IGNORE_REASON = "Marked as intentional"


class LifecycleAction(str, Enum):
    ACKNOWLEDGE = "acknowledge"
    RESOLVE = "resolve"
    IGNORE = "ignore"


# action → (statuses it may start from, status it produces)
TRANSITIONS: dict[LifecycleAction, tuple[frozenset[ChangeStatus], ChangeStatus]] = {
    LifecycleAction.ACKNOWLEDGE: (
        frozenset({ChangeStatus.ACTIVE}),
        ChangeStatus.ACKNOWLEDGED,
    ),
    LifecycleAction.RESOLVE: (
        frozenset({ChangeStatus.ACTIVE, ChangeStatus.ACKNOWLEDGED}),
        ChangeStatus.RESOLVED,
    ),
    LifecycleAction.IGNORE: (
        frozenset({ChangeStatus.ACTIVE, ChangeStatus.ACKNOWLEDGED}),
        ChangeStatus.IGNORED,
    ),
}


class InvalidTransition(Exception):
    """Raised when a lifecycle action is not permitted for a record.

    Surfaced verbatim to the caller for user-facing reporting. It is never
    retried, because retrying cannot change the record's current status.

    Attributes:
        change_id: The record the action was attempted on.
        status: The record's status at the time of the attempt.
        action: The attempted action.
    """

    def __init__(self, message: str, change_id: str, status: ChangeStatus, action: LifecycleAction):
        super().__init__(message)
        self.change_id = change_id
        self.status = status
        self.action = action


class LifecycleController:
    """Validates and applies status transitions on ChangeRecords.

    Records are frozen, so every successful transition returns a new record
    with the status advanced, the audit fields for that action set, and one
    AuditEntry appended to audit_trail. The input record is never touched.

    Attributes:
        _clock: Returns the current time. Injected so tests can pin it.
    """

    def __init__(self, clock=None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def allowed_actions(self, record: ChangeRecord) -> list[LifecycleAction]:
        """Return the actions permitted from the record's current status.

        Empty for terminal records. The dashboard uses this to decide which
        action buttons a change card shows.
        """
        return [
            action
            for action, (sources, _) in TRANSITIONS.items()
            if record.status in sources
        ]

    def check(self, record: ChangeRecord, action: LifecycleAction | str) -> ChangeStatus:
        """Validate a transition without applying it.

        Args:
            record: The record as the caller last saw it.
            action: The action to validate.

        Returns:
            The status the record would move to.

        Raises:
            InvalidTransition: If the record's status does not permit the action.
        """
        action = LifecycleAction(action)
        sources, target = TRANSITIONS[action]

        if record.status not in sources:
            if record.status.is_terminal:
                reason = f"it is already {record.status.value} and terminal"
            else:
                reason = f"it is {record.status.value}"
            raise InvalidTransition(
                f"Cannot {action.value} breaking change '{record.id}': {reason}.",
                change_id=record.id,
                status=record.status,
                action=action,
            )

        return target

    def acknowledge(self, record: ChangeRecord, actor: str) -> ChangeRecord:
        """Move an ACTIVE record to ACKNOWLEDGED.

        Raises:
            InvalidTransition: If the record is not ACTIVE or actor is blank.
        """
        return self._apply(record, LifecycleAction.ACKNOWLEDGE, actor, ACKNOWLEDGE_NOTE)

    def resolve(self, record: ChangeRecord, actor: str, notes: str | None = None) -> ChangeRecord:
        """Move an ACTIVE or ACKNOWLEDGED record to RESOLVED.

        Args:
            record: The record to resolve.
            actor: Who resolved it. Required.
            notes: Resolution notes. Blank or None falls back to "Resolved"
                since the caller has already confirmed the action.

        Raises:
            InvalidTransition: If the record is terminal or actor is blank.
        """
        return self._apply(record, LifecycleAction.RESOLVE, actor, notes or DEFAULT_RESOLUTION_NOTES)

    def ignore(self, record: ChangeRecord, actor: str, reason: str | None = None) -> ChangeRecord:
        """Move an ACTIVE or ACKNOWLEDGED record to IGNORED.

        Args:
            record: The record to ignore.
            actor: Who ignored it. Required.
            reason: Why. Blank or None falls back to "Marked as intentional".

        Raises:
            InvalidTransition: If the record is terminal or actor is blank.
        """
        return self._apply(record, LifecycleAction.IGNORE, actor, reason or DEFAULT_IGNORE_REASON)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _apply(self, record: ChangeRecord, action: LifecycleAction, actor: str, note: str) -> ChangeRecord:
        try:
            target = self.check(record, action)
            if not actor or not actor.strip():
                raise InvalidTransition(
                    f"Cannot {action.value} breaking change '{record.id}': an actor is required.",
                    change_id=record.id,
                    status=record.status,
                    action=action,
                )
        except InvalidTransition as exc:
            logger.warning("Rejected lifecycle transition: %s", exc)
            raise

        actor = actor.strip()
        now = self._clock()
        update: dict = {"status": target}

        if action is LifecycleAction.ACKNOWLEDGE:
            update.update(acknowledged_by=actor, acknowledged_at=now)
        elif action is LifecycleAction.RESOLVE:
            update.update(resolved_by=actor, resolved_at=now, resolution_notes=note)
        else:
            update.update(ignored_by=actor, ignored_at=now, ignored_reason=note)

        entry = AuditEntry(action=action.value, actor=actor, at=now, note=note)
        update["audit_trail"] = (*record.audit_trail, entry)

        logger.info(
            "Breaking change '%s' (%s): %s → %s by %s.",
            record.id,
            record.service_name,
            record.status.value,
            target.value,
            actor,
        )
        return record.model_copy(update=update)

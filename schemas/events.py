"""Dashboard event schemas.

Two kinds of events flow out of the core while it works:

- FetchEvent: emitted by the ChangeAggregator as each per-service fetch
  starts and settles, so the live terminal display can show progress.
- LifecycleEvent: the "lifecycle changed" notification published after a
  successful status transition. Subscribers react by refreshing the feed and
  the baseline view; the core itself never re-fetches.

Producers work whether or not anything is listening to these events.
"""

from enum import Enum

from pydantic import BaseModel

from schemas.change import ChangeStatus


class EventType(str, Enum):
    """The lifecycle stages a per-service fetch can emit events for.

    Extends str so values serialize to plain strings ("started", "complete")
    rather than "EventType.STARTED" in logs and display output.

    Values:
        STARTED: The fetch has been dispatched.
        COMPLETE: The fetch returned records.
        ERROR: The fetch failed and contributed nothing to the feed.
    """

    STARTED = "started"
    COMPLETE = "complete"
    ERROR = "error"


class FetchEvent(BaseModel):
    """A single event emitted during the aggregation fan-out.

    Attributes:
        service_name: Service the fetch was for. Maps to the panel heading
            in the live display.
        event_type: Stage this event represents.
        message: Human-readable detail ("3 changes", "connection refused").
        timestamp_ms: Milliseconds since the aggregate call started.
    """

    service_name: str
    event_type: EventType
    message: str
    timestamp_ms: float


class LifecycleEvent(BaseModel):
    """Published once per successful lifecycle transition.

    Attributes:
        change_id: Identifier of the transitioned record.
        service_name: Owning service, so subscribers can refresh just that
            service's baseline view if they want to.
        action: "acknowledge", "resolve" or "ignore".
        previous_status: Status before the transition.
        status: Status after the transition.
        actor: Who performed it.
        timestamp: ISO-8601 UTC time the transition was applied.
    """

    change_id: str
    service_name: str
    action: str
    previous_status: ChangeStatus
    status: ChangeStatus
    actor: str
    timestamp: str

"""Breaking-change aggregator.

The ChangeAggregator fans out one recent-changes query per service, waits for
every query to settle, and merges the results into a single feed. It handles
two concerns the backend does not:

1. Fault isolation: one service being offline (or failing in any other way)
   contributes an empty list and never fails the feed or its sibling fetches.

2. Ordering: the merged feed is sorted newest first by detected_at only.
   The sort is stable over service order, so equal timestamps keep a
   deterministic order no matter which fetch finished first.

filter_by_status() narrows an already merged feed for display.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, Sequence

from schemas.change import ChangeRecord, ChangeStatus
from schemas.events import EventType, FetchEvent

logger = logging.getLogger(__name__)

DEFAULT_PER_SERVICE_LIMIT = 5
DEFAULT_WINDOW = 10
ALL = "ALL"

FetchRecent = Callable[[str, int], Awaitable[Sequence[ChangeRecord]]]


class ChangeAggregator:
    """Merges per-service breaking changes into one time-ordered feed.

    Uses asyncio.TaskGroup to dispatch every service fetch at once. Each
    fetch runs in an isolated task with its own exception boundary, so the
    TaskGroup never sees an exception and never cancels siblings.

    Attributes:
        per_service_limit: Most records requested from (and kept for) one
            service. Defaults to 5.
        window: Most records in the merged feed. Defaults to 10.
        timeout_seconds: Optional per-fetch timeout. None (the default)
            leaves timeouts to the transport.
    """

    def __init__(
        self,
        per_service_limit: int = DEFAULT_PER_SERVICE_LIMIT,
        window: int = DEFAULT_WINDOW,
        timeout_seconds: float | None = None,
    ) -> None:
        if per_service_limit < 0 or window < 0:
            raise ValueError("per_service_limit and window must be non-negative.")
        self.per_service_limit = per_service_limit
        self.window = window
        self.timeout_seconds = timeout_seconds

    async def aggregate(
        self,
        service_names: Iterable[str],
        fetch_recent: FetchRecent,
        event_queue: asyncio.Queue | None = None,
    ) -> list[ChangeRecord]:
        """Fetch recent changes from every service and merge them.

        Steps:
            1. Dispatch fetch_recent(service, per_service_limit) for every
               service concurrently
            2. Wait for all of them to succeed or fail
            3. Concatenate the results in service order
            4. Stable-sort descending by detected_at
            5. Truncate to the window

        Args:
            service_names: Services to query. Duplicates are queried once.
            fetch_recent: Async callable returning a service's most recent
                records. Typically ContractMonitorBackend.fetch_recent_changes.
            event_queue: Optional asyncio.Queue to emit FetchEvents into.
                If None, events are skipped. The merge is unaffected by
                whether anything is listening.

        Returns:
            Up to `window` records, newest first. Empty if every fetch
            failed or returned nothing.
        """
        services = list(dict.fromkeys(service_names))
        if not services:
            return []

        start = time.perf_counter()

        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(
                    self._fetch_safely(service, fetch_recent, event_queue, start),
                    name=f"fetch:{service}",
                )
                for service in services
            ]

        merged: list[ChangeRecord] = []
        for task in tasks:
            merged.extend(task.result())

        # list.sort is stable with reverse=True: ties keep service order.
        merged.sort(key=lambda r: r.detected_at, reverse=True)
        feed = merged[: self.window]

        logger.info(
            "Aggregated %d changes from %d services into a feed of %d.",
            len(merged),
            len(services),
            len(feed),
        )
        return feed

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _fetch_safely(
        self,
        service: str,
        fetch_recent: FetchRecent,
        event_queue: asyncio.Queue | None,
        start: float,
    ) -> list[ChangeRecord]:
        """Fetch one service's records, turning every failure into [].

        This method never raises, which is what keeps one failing service
        from propagating into the TaskGroup and cancelling the others.
        """

        async def emit(event_type: EventType, message: str) -> None:
            if event_queue is not None:
                await event_queue.put(FetchEvent(
                    service_name=service,
                    event_type=event_type,
                    message=message,
                    timestamp_ms=(time.perf_counter() - start) * 1000,
                ))

        await emit(EventType.STARTED, "fetching...")

        try:
            if self.timeout_seconds is None:
                records = await fetch_recent(service, self.per_service_limit)
            else:
                records = await asyncio.wait_for(
                    fetch_recent(service, self.per_service_limit),
                    timeout=self.timeout_seconds,
                )
            records = list(records)[: self.per_service_limit]

        except asyncio.TimeoutError:
            await emit(EventType.ERROR, f"timed out after {self.timeout_seconds:.1f}s")
            logger.error(
                "Fetch for '%s' timed out after %.1fs, treating as offline.",
                service,
                self.timeout_seconds,
            )
            return []

        except Exception as exc:
            await emit(EventType.ERROR, str(exc) or type(exc).__name__)
            logger.error("Fetch for '%s' failed, treating as offline. Error: %s", service, exc)
            return []

        noun = "change" if len(records) == 1 else "changes"
        await emit(EventType.COMPLETE, f"{len(records)} {noun}")
        return records


def filter_by_status(
    records: Sequence[ChangeRecord],
    status: ChangeStatus | str = ALL,
) -> list[ChangeRecord]:
    """Return the records whose status matches, preserving order.

    Args:
        records: A merged feed.
        status: A ChangeStatus, its name in any case, or "ALL".

    Returns:
        Every record, in the same order, for "ALL". Otherwise the subsequence
        with that status. Records that arrived without a status count as
        ACTIVE; the model applies that default on load.

    Raises:
        ValueError: If status is not "ALL" or a ChangeStatus name.
    """
    if isinstance(status, str) and not isinstance(status, ChangeStatus):
        if status.upper() == ALL:
            return list(records)
        try:
            status = ChangeStatus(status.upper())
        except ValueError:
            valid = ", ".join([ALL, *(s.value for s in ChangeStatus)])
            raise ValueError(f"Unknown status filter '{status}'. Must be one of: {valid}") from None

    return [r for r in records if r.status == status]

"""Terminal display tests: live fetch panels and static renderables."""

import asyncio

from rich.console import Console

from backend import InMemoryBackend
from core.runtime import DashboardRuntime
from display.live import LiveDisplay
from display.render import audit_lines, feed_table, health_table, insight_panel
from insights.parser import parse
from schemas.events import EventType, FetchEvent
from schemas.insight import InsightField


def make_event(service, event_type, message="", ms=10.0) -> FetchEvent:
    return FetchEvent(service_name=service, event_type=event_type, message=message, timestamp_ms=ms)


def render_text(renderable) -> str:
    console = Console(width=200, record=True)
    console.print(renderable)
    return console.export_text()


# ── LiveDisplay ───────────────────────────────────────────────────────────────

class TestLiveDisplay:
    def test_services_start_waiting(self):
        display = LiveDisplay(["a", "b"])
        assert display.status_of("a") == "waiting"

    def test_event_sequence(self):
        display = LiveDisplay(["a", "b"])
        display.apply(make_event("a", EventType.STARTED))
        assert display.status_of("a") == "fetching"
        display.apply(make_event("a", EventType.COMPLETE, "2 changes"))
        display.apply(make_event("b", EventType.ERROR, "connection refused"))
        assert display.status_of("a") == "complete"
        assert display.status_of("b") == "error"

        text = render_text(display.render())
        assert "2 changes" in text
        assert "connection refused" in text

    def test_unknown_service_is_ignored(self):
        display = LiveDisplay(["a"])
        display.apply(make_event("z", EventType.STARTED))
        assert display.status_of("a") == "waiting"

    def test_error_message_with_brackets_renders(self):
        display = LiveDisplay(["a"])
        display.apply(make_event("a", EventType.ERROR, "bad [status] 500"))
        assert "bad [status] 500" in render_text(display.render())

    async def test_consume_until_sentinel(self):
        display = LiveDisplay(["a"])
        queue: asyncio.Queue = asyncio.Queue()
        await queue.put(make_event("a", EventType.STARTED))
        await queue.put(make_event("a", EventType.COMPLETE, "1 change"))
        await queue.put(None)
        await display.consume(queue)
        assert display.status_of("a") == "complete"

    async def test_consume_alongside_refresh(self):
        backend = InMemoryBackend.from_fixture()
        runtime = DashboardRuntime(backend, backend.services)
        display = LiveDisplay(runtime.services)
        queue: asyncio.Queue = asyncio.Queue()

        consumer = asyncio.create_task(display.consume(queue))
        await runtime.refresh(event_queue=queue)
        await queue.put(None)
        await consumer

        assert display.status_of("order-service") == "complete"
        assert display.status_of("notification-service") == "error"


# ── Static renderables ────────────────────────────────────────────────────────

class TestRender:
    async def test_tables(self):
        backend = InMemoryBackend.from_fixture()
        snapshot = await DashboardRuntime(backend, backend.services).refresh()

        health = render_text(health_table(snapshot))
        assert "3/4 online" in health
        assert "v2.0.0" in health

        feed = render_text(feed_table(snapshot))
        assert "FIELD REMOVED" in feed
        assert "Insights available" in feed

    def test_insight_panel(self):
        doc = parse(
            "### Steps\n1. **Add v2**\n- keep old\n- - **Note:** careful",
            InsightField.SUGGESTION,
        )
        text = render_text(insight_panel(doc))
        assert "Migration suggestion" in text
        assert "1. Add v2" in text
        assert "Note: careful" in text

    def test_audit_lines(self):
        backend = InMemoryBackend.from_fixture()
        assert "Variants were never released" in audit_lines(backend.record("301")).plain
        assert audit_lines(backend.record("101")) is None

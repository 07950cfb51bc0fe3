"""Schema validation tests.

These tests verify that the Pydantic models accept the backend's camelCase
wire format, apply their defaults, and stay immutable. No backend required.
"""

from datetime import datetime, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from schemas.change import ChangeRecord, ChangeStatus
from schemas.events import EventType, FetchEvent, LifecycleEvent
from schemas.health import BaselineInfo, ChangeStatistics, DashboardSnapshot, ServiceStatusReport
from schemas.insight import (
    Bullet,
    ImpactLine,
    InsightBlock,
    InsightDocument,
    InsightField,
    MainHeader,
    PlainLine,
)


# ── Helpers ──────────────────────────────────────────────────────────────────

def make_wire_record(**overrides) -> dict:
    defaults = {
        "id": 101,
        "serviceName": "order-service",
        "changeType": "FIELD_REMOVED",
        "path": "/api/orders.customerEmail",
        "description": "Response field customerEmail was removed",
        "detectedAt": "2025-03-10T11:42:00",
        "status": "ACTIVE",
    }
    return {**defaults, **overrides}


# ── ChangeRecord ──────────────────────────────────────────────────────────────

class TestChangeRecord:
    def test_accepts_camel_case_wire_format(self):
        r = ChangeRecord.model_validate(make_wire_record())
        assert r.service_name == "order-service"
        assert r.change_type == "FIELD_REMOVED"
        assert r.status == ChangeStatus.ACTIVE

    def test_accepts_python_field_names(self):
        r = ChangeRecord(
            id="1",
            service_name="user-service",
            change_type="ENDPOINT_REMOVED",
            path="/api/users",
            detected_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        assert r.service_name == "user-service"

    def test_integer_id_is_coerced_to_string(self):
        r = ChangeRecord.model_validate(make_wire_record(id=42))
        assert r.id == "42"

    def test_missing_status_defaults_to_active(self):
        wire = make_wire_record()
        del wire["status"]
        assert ChangeRecord.model_validate(wire).status == ChangeStatus.ACTIVE

    def test_null_status_defaults_to_active(self):
        r = ChangeRecord.model_validate(make_wire_record(status=None))
        assert r.status == ChangeStatus.ACTIVE

    def test_lowercase_status_is_accepted(self):
        r = ChangeRecord.model_validate(make_wire_record(status="resolved"))
        assert r.status == ChangeStatus.RESOLVED

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError):
            ChangeRecord.model_validate(make_wire_record(status="DELETED"))

    def test_naive_timestamp_is_read_as_utc(self):
        r = ChangeRecord.model_validate(make_wire_record())
        assert r.detected_at.tzinfo is not None
        assert r.detected_at.utcoffset().total_seconds() == 0

    def test_unknown_wire_fields_are_ignored(self):
        r = ChangeRecord.model_validate(make_wire_record(severity="HIGH"))
        assert not hasattr(r, "severity")

    def test_record_is_frozen(self):
        r = ChangeRecord.model_validate(make_wire_record())
        with pytest.raises(ValidationError):
            r.status = ChangeStatus.RESOLVED

    def test_has_insights(self):
        assert not ChangeRecord.model_validate(make_wire_record()).has_insights
        r = ChangeRecord.model_validate(make_wire_record(aiSuggestion="- do X"))
        assert r.has_insights

    def test_terminal_statuses(self):
        assert ChangeStatus.RESOLVED.is_terminal
        assert ChangeStatus.IGNORED.is_terminal
        assert not ChangeStatus.ACTIVE.is_terminal
        assert not ChangeStatus.ACKNOWLEDGED.is_terminal

    def test_dumps_back_to_wire_names(self):
        r = ChangeRecord.model_validate(make_wire_record())
        data = r.model_dump(mode="json", by_alias=True)
        assert data["serviceName"] == "order-service"
        assert data["status"] == "ACTIVE"


# ── Insight blocks ────────────────────────────────────────────────────────────

class TestInsightDocument:
    def test_blocks_validate_by_kind(self):
        adapter = TypeAdapter(InsightBlock)
        assert isinstance(adapter.validate_python({"kind": "bullet", "text": "x"}), Bullet)
        block = adapter.validate_python({"kind": "main_header", "index": 1, "title": "Add auth"})
        assert block == MainHeader(index=1, title="Add auth")

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(InsightBlock).validate_python({"kind": "table", "rows": []})

    def test_document_round_trips_through_json(self):
        doc = InsightDocument(
            field=InsightField.IMPACT,
            blocks=[
                ImpactLine(rank=1, service_name="order-service", confidence_percent=80,
                           description="Will reject old payloads"),
                PlainLine(text="Review before deploying"),
            ],
        )
        restored = InsightDocument.model_validate_json(doc.model_dump_json())
        assert restored == doc

    def test_empty_document(self):
        assert InsightDocument(field=None, blocks=[]).is_empty
        assert not InsightDocument(field=None, blocks=[Bullet(text="x")]).is_empty

    def test_field_values_match_record_attributes(self):
        for field in InsightField:
            assert field.value in ChangeRecord.model_fields


# ── Health ────────────────────────────────────────────────────────────────────

class TestHealthSchemas:
    def test_status_report_from_wire(self):
        report = ServiceStatusReport.model_validate(
            {"onlineCount": 1, "totalCount": 2, "services": {"a": True, "b": False}}
        )
        assert report.online_count == 1
        assert report.services == {"a": True, "b": False}

    def test_statistics_by_type_alias(self):
        stats = ChangeStatistics.model_validate(
            {"totalBreakingChanges": 3, "breakingChangesByType": {"FIELD_REMOVED": 3}}
        )
        assert stats.total_breaking_changes == 3
        assert stats.by_type == {"FIELD_REMOVED": 3}

    def test_baseline_defaults_to_none(self):
        assert BaselineInfo().has_baseline is False

    def test_snapshot_filter_accepts_enum(self):
        snapshot = DashboardSnapshot(
            total_breaking_changes=0,
            online_count=0,
            total_count=0,
            feed=[],
            services={},
            status_filter=ChangeStatus.ACTIVE,
        )
        assert snapshot.status_filter == "ACTIVE"


# ── Events ────────────────────────────────────────────────────────────────────

class TestEvents:
    def test_event_type_serializes_as_plain_string(self):
        event = FetchEvent(
            service_name="order-service",
            event_type=EventType.COMPLETE,
            message="2 changes",
            timestamp_ms=12.5,
        )
        assert event.model_dump(mode="json")["event_type"] == "complete"

    def test_lifecycle_event(self):
        event = LifecycleEvent(
            change_id="101",
            service_name="order-service",
            action="resolve",
            previous_status=ChangeStatus.ACTIVE,
            status=ChangeStatus.RESOLVED,
            actor="alex",
            timestamp="2025-03-10T12:00:00+00:00",
        )
        assert event.status == ChangeStatus.RESOLVED

"""Unit tests for the event system.

Tests cover:
- FormEvent creation
- Event serialization (to_dict, to_jsonl) and deserialization (from_dict)
- EventEmitter subscriptions and dispatching
- Listener error isolation
"""

import json
from datetime import datetime, timezone

import pytest

from frm.events import EventEmitter, FormEvent
from frm.types import EventType


class TestFormEventCreation:
    """Test FormEvent creation."""

    def test_create_event_with_required_fields(self):
        """Should create event with all required fields."""
        ts = datetime.now(timezone.utc)
        event = FormEvent(
            event_id="evt_001",
            type=EventType.DRAFT_CREATED,
            workspace_id="ws_1",
            form_id=3,
            ts=ts,
        )
        assert event.event_id == "evt_001"
        assert event.type == EventType.DRAFT_CREATED
        assert event.form_id == 3
        assert event.ts == ts
        assert event.payload is None

    def test_create_event_with_string_type(self):
        """Should convert a string type to EventType."""
        event = FormEvent(
            event_id="evt_002",
            type="form.published",
            workspace_id="ws_1",
            form_id=3,
            ts=datetime.now(timezone.utc),
        )
        assert event.type == EventType.FORM_PUBLISHED

    def test_new_generates_id_and_timestamp(self):
        """Should generate a unique evt_ ID and a UTC timestamp."""
        a = FormEvent.new(EventType.FORM_DELETED, "ws_1", 3)
        b = FormEvent.new(EventType.FORM_DELETED, "ws_1", 3)
        assert a.event_id.startswith("evt_")
        assert a.event_id != b.event_id
        assert a.ts.tzinfo is not None

    def test_event_is_immutable(self):
        """Should not allow modification after creation."""
        event = FormEvent.new(EventType.DRAFT_CREATED, "ws_1", 1)
        with pytest.raises(AttributeError):
            event.form_id = 2


class TestEventSerialization:
    """Test event serialization and deserialization."""

    def test_to_dict(self):
        """Should serialize all fields."""
        ts = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
        event = FormEvent(
            event_id="evt_003",
            type=EventType.SUBMISSION_RECEIVED,
            workspace_id="ws_1",
            form_id=7,
            ts=ts,
            payload={"submission_id": 12},
        )
        assert event.to_dict() == {
            "event_id": "evt_003",
            "type": "submission.received",
            "workspace_id": "ws_1",
            "form_id": 7,
            "ts": "2024-01-15T10:30:00+00:00",
            "payload": {"submission_id": 12},
        }

    def test_to_dict_without_payload(self):
        """Should omit an absent payload."""
        assert "payload" not in FormEvent.new(EventType.DRAFT_REAPED, "ws_1", 1).to_dict()

    def test_to_jsonl_format(self):
        """Should serialize to single-line compact JSON."""
        jsonl = FormEvent.new(EventType.CLONE_CREATED, "ws_1", 1, {"source_form_id": 2}).to_jsonl()
        assert "\n" not in jsonl
        assert jsonl.count(" ") == 0
        parsed = json.loads(jsonl)
        assert parsed["type"] == "clone.created"
        assert parsed["payload"]["source_form_id"] == 2

    def test_from_dict_handles_z_timezone(self):
        """Should handle a 'Z' timezone suffix."""
        event = FormEvent.from_dict({
            "event_id": "evt_004",
            "type": "draft.reaped",
            "workspace_id": "ws_1",
            "form_id": 5,
            "ts": "2024-01-15T10:30:00Z",
        })
        assert event.ts.tzinfo is not None
        assert event.ts.year == 2024
        assert event.payload is None

    def test_roundtrip_serialization(self):
        """Should survive to_dict() then from_dict()."""
        original = FormEvent.new(EventType.FORM_PUBLISHED, "ws_1", 9, {"draft_id": 10})
        assert FormEvent.from_dict(json.loads(original.to_jsonl())) == original


class TestEventEmitterSubscriptions:
    """Test EventEmitter subscription and dispatch."""

    def test_subscribe_to_specific_event_type(self):
        """Should only deliver events of the subscribed type."""
        emitter = EventEmitter()
        seen = []
        emitter.on(EventType.FORM_PUBLISHED, seen.append)
        emitter.emit(FormEvent.new(EventType.DRAFT_CREATED, "ws_1", 1))
        emitter.emit(FormEvent.new(EventType.FORM_PUBLISHED, "ws_1", 1))
        assert [e.type for e in seen] == [EventType.FORM_PUBLISHED]

    def test_wildcard_receives_everything(self):
        """Should deliver every event to wildcard listeners."""
        emitter = EventEmitter()
        seen = []
        emitter.on_any(seen.append)
        for event_type in (EventType.DRAFT_CREATED, EventType.FORM_DELETED):
            emitter.emit(FormEvent.new(event_type, "ws_1", 1))
        assert len(seen) == 2

    def test_type_specific_before_wildcard(self):
        """Should call type-specific listeners before wildcard listeners."""
        emitter = EventEmitter()
        calls = []
        emitter.on_any(lambda e: calls.append("any"))
        emitter.on(EventType.DRAFT_CREATED, lambda e: calls.append("typed"))
        emitter.emit(FormEvent.new(EventType.DRAFT_CREATED, "ws_1", 1))
        assert calls == ["typed", "any"]

    def test_unsubscribe(self):
        """Should stop delivering after off/off_any."""
        emitter = EventEmitter()
        seen = []
        emitter.on(EventType.DRAFT_CREATED, seen.append)
        emitter.on_any(seen.append)
        emitter.off(EventType.DRAFT_CREATED, seen.append)
        emitter.off_any(seen.append)
        emitter.emit(FormEvent.new(EventType.DRAFT_CREATED, "ws_1", 1))
        assert seen == []

    def test_unsubscribe_unknown_listener(self):
        """Should ignore removing a listener that was never added."""
        emitter = EventEmitter()
        emitter.off(EventType.DRAFT_CREATED, print)
        emitter.off_any(print)

    def test_listener_exceptions_are_isolated(self, caplog):
        """Should keep dispatching and log when a listener raises."""
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        emitter.on(EventType.DRAFT_CREATED, broken)
        emitter.on(EventType.DRAFT_CREATED, seen.append)
        emitter.emit(FormEvent.new(EventType.DRAFT_CREATED, "ws_1", 1))
        assert len(seen) == 1
        assert "event listener failed" in caplog.text

    def test_clear_and_listener_count(self):
        """Should count listeners and remove them all on clear."""
        emitter = EventEmitter()
        emitter.on(EventType.DRAFT_CREATED, print)
        emitter.on(EventType.DRAFT_CREATED, repr)
        emitter.on_any(print)
        assert emitter.listener_count(EventType.DRAFT_CREATED) == 2
        assert emitter.listener_count(EventType.FORM_DELETED) == 0
        assert emitter.listener_count() == 3
        emitter.clear()
        assert emitter.listener_count() == 0

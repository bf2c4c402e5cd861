"""Lifecycle events for frm.

This module provides the event record and emitter used to notify the
composing application about drafts being created, forms being published or
deleted, submissions being received and stale drafts being reaped.

Listeners run synchronously. A failing listener is logged and never affects
other listeners or the operation that emitted the event.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from frm.models import parse_ts, utcnow
from frm.types import EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormEvent:
    """A single lifecycle event.

    Attributes:
        event_id: Unique event identifier (e.g., "evt_3f2a...")
        type: Event type from EventType enum
        workspace_id: Workspace the event happened in
        form_id: ID of the form the event relates to
        ts: UTC timestamp when the event occurred
        payload: Optional event-specific data

    Examples:
        >>> event = FormEvent.new(EventType.FORM_PUBLISHED, "ws_1", 7, {"draft_id": 9})
        >>> event.type
        <EventType.FORM_PUBLISHED: 'form.published'>
    """
    event_id: str
    type: EventType
    workspace_id: str
    form_id: Optional[int]
    ts: datetime
    payload: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            object.__setattr__(self, "type", EventType(self.type))

    @classmethod
    def new(
        cls,
        event_type: EventType,
        workspace_id: str,
        form_id: Optional[int],
        payload: Optional[Dict[str, Any]] = None,
    ) -> "FormEvent":
        return cls(
            event_id=f"evt_{uuid.uuid4().hex[:16]}",
            type=event_type,
            workspace_id=workspace_id,
            form_id=form_id,
            ts=utcnow(),
            payload=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result: Dict[str, Any] = {
            "event_id": self.event_id,
            "type": self.type.value,
            "workspace_id": self.workspace_id,
            "form_id": self.form_id,
            "ts": self.ts.isoformat(),
        }
        if self.payload is not None:
            result["payload"] = self.payload
        return result

    def to_jsonl(self) -> str:
        """Single-line JSON, suitable for appending to a JSONL log."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormEvent":
        return cls(
            event_id=data["event_id"],
            type=EventType(data["type"]),
            workspace_id=data["workspace_id"],
            form_id=data.get("form_id"),
            ts=parse_ts(data["ts"]),
            payload=data.get("payload"),
        )


EventListener = Callable[[FormEvent], None]
"""Type alias for event listener callbacks."""


class EventEmitter:
    """Dispatches FormEvents to registered listeners.

    Features:
    - Type-specific subscriptions
    - Wildcard subscriptions
    - Synchronous dispatch in registration order
    - Error isolation: listener exceptions are logged and suppressed

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on(EventType.DRAFT_CREATED, seen.append)
        >>> emitter.emit(FormEvent.new(EventType.DRAFT_CREATED, "ws_1", 1))
        >>> len(seen)
        1
    """

    def __init__(self):
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Subscribe to a specific event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        """Subscribe to all event types."""
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Unsubscribe from a specific event type."""
        if event_type in self._listeners:
            try:
                self._listeners[event_type].remove(listener)
            except ValueError:
                pass  # not registered

    def off_any(self, listener: EventListener) -> None:
        """Unsubscribe from the wildcard subscription."""
        try:
            self._any_listeners.remove(listener)
        except ValueError:
            pass  # not registered

    def emit(self, event: FormEvent) -> None:
        """Dispatch an event: type-specific listeners first, then wildcard listeners."""
        for listener in list(self._listeners.get(event.type, [])) + list(self._any_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("event listener failed for %s (%s)", event.type.value, event.event_id)

    def clear(self) -> None:
        """Remove all event listeners."""
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count listeners for one type, or all listeners (including wildcard) when no type is given."""
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(ls) for ls in self._listeners.values())


__all__ = [
    "FormEvent",
    "EventListener",
    "EventEmitter",
]

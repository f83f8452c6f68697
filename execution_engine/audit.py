"""
Execution Engine - Audit Log.

============================================================
PURPOSE
============================================================
Append-only record of everything the execution path did:
decisions, risk checks, chase attempts, fills, orders,
brackets, state transitions and timeouts.

AuditLog fans out to any number of sinks. A failing sink is
logged and skipped; auditing never aborts trading logic.

============================================================
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from core.clock import ClockProtocol, SystemClock

from .types import StateTransitionEvent

if TYPE_CHECKING:
    from .repository import ExecutionRepository
    from .state_machine import TradeStateMachine


logger = logging.getLogger(__name__)


# ============================================================
# EVENTS
# ============================================================

class AuditEventType(Enum):
    """Kind of audit event."""

    DECISION = "DECISION"
    RISK_CHECK = "RISK_CHECK"
    RISK_EVENT = "RISK_EVENT"
    CHASE_ATTEMPT = "CHASE_ATTEMPT"
    FILL = "FILL"
    ORDER = "ORDER"
    BRACKET = "BRACKET"
    STATE_TRANSITION = "STATE_TRANSITION"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True)
class AuditEvent:
    """One audit record."""

    event_type: AuditEventType
    trade_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: f"audit-{uuid.uuid4().hex[:12]}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "trade_id": self.trade_id,
            "payload": dict(self.payload),
            "timestamp": self.timestamp.isoformat(),
        }


def json_safe(value: Any) -> Any:
    """Coerce enums, dataclasses and datetimes to JSON-friendly values."""
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Enum):
        return json_safe(value.value)
    if hasattr(value, "to_dict"):
        return json_safe(value.to_dict())
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ============================================================
# SINKS
# ============================================================

class AuditSink(ABC):
    """Destination for audit events."""

    @abstractmethod
    def write(self, event: AuditEvent) -> None:
        pass


class InMemoryAuditSink(AuditSink):
    """Keeps events in memory; used by tests and dry runs."""

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def write(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def for_trade(self, trade_id: str) -> List[AuditEvent]:
        return [e for e in self.events if e.trade_id == trade_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingAuditSink(AuditSink):
    """Writes events to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO):
        self._log = log or logging.getLogger("execution_engine.audit.events")
        self._level = level

    def write(self, event: AuditEvent) -> None:
        self._log.log(
            self._level,
            f"[{event.event_type.value}] trade={event.trade_id} {event.payload}",
        )


class SqlAuditSink(AuditSink):
    """Writes events to the execution_events table."""

    def __init__(self, repository: "ExecutionRepository"):
        self._repository = repository

    def write(self, event: AuditEvent) -> None:
        self._repository.save_event(event)


# ============================================================
# AUDIT LOG
# ============================================================

class AuditLog:
    """
    Fan-out audit recorder.

    Usage:
        audit = AuditLog([InMemoryAuditSink(), LoggingAuditSink()])
        audit.attach(state_machine)
        audit.record(AuditEventType.FILL, trade_id, {"fill_price": 1.25})
    """

    def __init__(
        self,
        sinks: Optional[List[AuditSink]] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._sinks: List[AuditSink] = list(sinks) if sinks is not None else [InMemoryAuditSink()]
        self._clock = clock or SystemClock()

    @property
    def sinks(self) -> List[AuditSink]:
        return list(self._sinks)

    def add_sink(self, sink: AuditSink) -> None:
        self._sinks.append(sink)

    def record(
        self,
        event_type: AuditEventType,
        trade_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Write an event to every sink. Never raises."""
        event = AuditEvent(
            event_type=event_type,
            trade_id=trade_id,
            payload=json_safe(payload or {}),
            timestamp=self._clock.now(),
        )
        for sink in self._sinks:
            try:
                sink.write(event)
            except Exception as e:
                logger.error(f"Audit sink {type(sink).__name__} failed for {event_type.value}: {e}")
        return event

    def attach(self, state_machine: "TradeStateMachine") -> Callable[[], None]:
        """Record every state transition. Returns the unsubscribe callable."""

        def on_transition(event: StateTransitionEvent) -> None:
            self.record(
                AuditEventType.STATE_TRANSITION,
                event.trade_id,
                {
                    "from_state": event.from_state.value,
                    "to_state": event.to_state.value,
                    "error": event.error,
                    "metadata": event.metadata,
                },
            )

        return state_machine.on_transition(on_transition)

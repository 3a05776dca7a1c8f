"""
Orchestration Event Bus - side channel for run lifecycle

Sessions and pipelines publish here; the terminal client and tests subscribe.
Nothing on the bus is required for pipeline correctness: a failing subscriber
is logged and the publisher carries on.

Event Types:
  • run_started       • run_completed     • run_failed
  • run_absorbed      • state_changed     • structure_updated
  • recording_failed  • change_applied    • change_failed
"""

from typing import Dict, Any, List, Optional, Callable, Union
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from collections import defaultdict, deque
import asyncio
import json
import threading

from promptsite.core.logging_config import logger


class EventType(str, Enum):
    """All event types in the orchestration system"""

    # Run lifecycle
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"
    RUN_ABSORBED = "run_absorbed"

    # Session
    STATE_CHANGED = "state_changed"
    STRUCTURE_UPDATED = "structure_updated"

    # Bookkeeping
    RECORDING_FAILED = "recording_failed"

    # Modification
    CHANGE_APPLIED = "change_applied"
    CHANGE_FAILED = "change_failed"


@dataclass
class OrchestratorEvent:
    """An event in the orchestration system"""
    type: EventType
    project_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)
    source: Optional[str] = None  # Component that emitted the event
    correlation_id: Optional[str] = None  # Run id of the emitting run

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "project_id": self.project_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "correlation_id": self.correlation_id
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


# Handlers may be plain functions or coroutine functions
EventHandler = Callable[[OrchestratorEvent], Any]


class EventBus:
    """
    In-process pub/sub.

    Features:
    - Per-type and wildcard ("*") subscriptions
    - Project-scoped subscriptions
    - Sync and async handlers
    - Bounded event history
    """

    def __init__(self, max_history: int = 500):
        self._lock = threading.Lock()
        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self._wildcard_handlers: List[EventHandler] = []
        self._project_handlers: Dict[str, Dict[EventType, List[EventHandler]]] = defaultdict(lambda: defaultdict(list))
        self._history: deque = deque(maxlen=max_history)

    def subscribe(
        self,
        event_type: Union[EventType, str],
        handler: EventHandler,
        project_id: Optional[str] = None
    ):
        """
        Subscribe to events.

        Args:
            event_type: Event type to subscribe to, or "*" for all
            handler: Function or coroutine function called with the event
            project_id: Optional project filter
        """
        with self._lock:
            if event_type == "*":
                self._wildcard_handlers.append(handler)
                return
            event_type = EventType(event_type)
            if project_id:
                self._project_handlers[project_id][event_type].append(handler)
            else:
                self._handlers[event_type].append(handler)
            logger.debug(f"[EventBus] Registered handler for {event_type.value}")

    def unsubscribe(
        self,
        event_type: Union[EventType, str],
        handler: EventHandler,
        project_id: Optional[str] = None
    ):
        """Unsubscribe from events"""
        with self._lock:
            if event_type == "*":
                handlers = self._wildcard_handlers
            elif project_id:
                handlers = self._project_handlers[project_id][EventType(event_type)]
            else:
                handlers = self._handlers[EventType(event_type)]
            if handler in handlers:
                handlers.remove(handler)

    async def publish(self, event: OrchestratorEvent):
        """
        Publish an event to all subscribers.

        Handlers are called in order:
        1. Project-specific handlers
        2. Event-type handlers
        3. Wildcard handlers
        """
        with self._lock:
            self._history.append(event)

            handlers = []
            if event.project_id in self._project_handlers:
                handlers.extend(self._project_handlers[event.project_id][event.type])
            handlers.extend(self._handlers[event.type])
            handlers.extend(self._wildcard_handlers)

        logger.debug(f"[EventBus] Publishing {event.type.value} for {event.project_id}")

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"[EventBus] Handler error for {event.type.value}: {e}")

    async def emit(
        self,
        event_type: EventType,
        project_id: Any,
        data: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> OrchestratorEvent:
        """Build and publish an event"""
        event = OrchestratorEvent(
            type=event_type,
            project_id=str(project_id),
            data=data or {},
            source=source,
            correlation_id=correlation_id
        )
        await self.publish(event)
        return event

    # ========== History & Debugging ==========

    def get_history(
        self,
        project_id: Optional[str] = None,
        event_type: Optional[EventType] = None,
        limit: int = 100
    ) -> List[OrchestratorEvent]:
        """Get event history with optional filters"""
        with self._lock:
            events = list(self._history)

        if project_id:
            events = [e for e in events if e.project_id == str(project_id)]
        if event_type:
            events = [e for e in events if e.type == event_type]
        return events[-limit:]


# ========== Global Instance ==========

_event_bus: Optional[EventBus] = None
_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Get the global event bus instance"""
    global _event_bus
    if _event_bus is None:
        with _bus_lock:
            if _event_bus is None:
                _event_bus = EventBus()
                logger.info("[EventBus] Global event bus initialized")
    return _event_bus

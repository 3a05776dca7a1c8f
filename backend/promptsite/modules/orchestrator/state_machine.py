"""
State Machine for a project session

┌──────────────────────────────────────────────┐
│  IDLE → LOADING → READY                      │
│            ↑    ↘                            │
│            └───── ERROR                      │
│  READY / ERROR → LOADING on a new command    │
└──────────────────────────────────────────────┘

All transitions are validated and recorded in a bounded history.
"""

from typing import Dict, Any, Optional, List, Set
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import threading

from promptsite.core.logging_config import logger


class SessionState(str, Enum):
    """Top-level state the UI observes"""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


SESSION_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.IDLE: {SessionState.LOADING},
    SessionState.LOADING: {SessionState.READY, SessionState.ERROR},
    SessionState.READY: {SessionState.LOADING},
    SessionState.ERROR: {SessionState.LOADING},
}


@dataclass
class StateTransition:
    """Record of a state transition"""
    from_state: str
    to_state: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_state,
            "to": self.to_state,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "metadata": self.metadata
        }


class StateMachine:
    """
    Generic state machine with validated transitions.

    Features:
    - Validates transitions against allowed transitions
    - Maintains transition history
    - Thread-safe
    """

    def __init__(
        self,
        name: str,
        initial_state: Enum,
        transitions: Dict[Enum, Set[Enum]],
        max_history: int = 50
    ):
        self.name = name
        self._state = initial_state
        self._transitions = transitions
        self._lock = threading.Lock()
        self._history: deque = deque(maxlen=max_history)

    @property
    def state(self) -> Enum:
        with self._lock:
            return self._state

    def can_transition(self, to_state: Enum) -> bool:
        with self._lock:
            return to_state in self._transitions.get(self._state, set())

    def transition(
        self,
        to_state: Enum,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Transition to new state.

        Returns:
            True if transition succeeded, False if it is not allowed
        """
        with self._lock:
            allowed = self._transitions.get(self._state, set())
            if to_state not in allowed:
                logger.warning(
                    f"[{self.name}] Invalid transition: {self._state.value} → {to_state.value}. "
                    f"Allowed: {sorted(s.value for s in allowed)}"
                )
                return False

            transition = StateTransition(
                from_state=self._state.value,
                to_state=to_state.value,
                reason=reason,
                metadata=metadata or {}
            )
            self._history.append(transition)

            old_state = self._state
            self._state = to_state

        logger.info(
            f"[{self.name}] State transition: {old_state.value} → {to_state.value}"
            + (f" ({reason})" if reason else "")
        )

        return True

    def get_history(self, limit: int = 10) -> List[StateTransition]:
        with self._lock:
            return list(self._history)[-limit:]


class SessionStateMachine(StateMachine):
    """Specialized state machine for one project session"""

    def __init__(self, session_id: str):
        super().__init__(
            name=f"Session:{session_id}",
            initial_state=SessionState.IDLE,
            transitions=SESSION_TRANSITIONS
        )
        self.session_id = session_id

    def load(self, reason: str) -> bool:
        return self.transition(SessionState.LOADING, reason=reason)

    def ready(self, preview_url: str) -> bool:
        return self.transition(
            SessionState.READY,
            reason="Preview available",
            metadata={"preview_url": preview_url}
        )

    def fail(self, error: str, stage: Optional[str] = None) -> bool:
        return self.transition(
            SessionState.ERROR,
            reason=f"Failed: {error}",
            metadata={"stage": stage} if stage else None
        )

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.LOADING

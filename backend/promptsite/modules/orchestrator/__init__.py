"""
Orchestration Module - drives a project from prompt to preview

Components:
- DedupGuard: at most one in-flight run per project
- GenerationPipeline: generate → parse → write → package → build → record
- ModificationPipeline: analyze → resolve files → rewrite → write
- SessionStateMachine: idle → loading → ready/error
- EventBus: side channel for lifecycle and recording-failure events
- ProjectSession: commands in, status out

Usage:
    from promptsite.modules.orchestrator import ProjectSession
    from promptsite.services.registry import build_stage_services

    session = ProjectSession(build_stage_services())
    await session.initialize(project_id=42, prompt="build a todo app")
"""

from promptsite.modules.orchestrator.dedup_guard import (
    Admission,
    DedupGuard,
    dedup_guard,
    get_dedup_guard,
    project_key,
)
from promptsite.modules.orchestrator.event_bus import (
    EventBus,
    EventType,
    OrchestratorEvent,
    get_event_bus,
)
from promptsite.modules.orchestrator.state_machine import (
    SESSION_TRANSITIONS,
    SessionState,
    SessionStateMachine,
    StateMachine,
    StateTransition,
)
from promptsite.modules.orchestrator.generation_pipeline import (
    GenerationPipeline,
    GenerationResult,
)
from promptsite.modules.orchestrator.modification_pipeline import (
    ModificationPipeline,
    ModificationResult,
    summarize_change,
)
from promptsite.modules.orchestrator.project_session import (
    ChatMessage,
    ProjectSession,
    SessionStatus,
)

__all__ = [
    "Admission",
    "DedupGuard",
    "dedup_guard",
    "get_dedup_guard",
    "project_key",
    "EventBus",
    "EventType",
    "OrchestratorEvent",
    "get_event_bus",
    "SESSION_TRANSITIONS",
    "SessionState",
    "SessionStateMachine",
    "StateMachine",
    "StateTransition",
    "GenerationPipeline",
    "GenerationResult",
    "ModificationPipeline",
    "ModificationResult",
    "summarize_change",
    "ChatMessage",
    "ProjectSession",
    "SessionStatus",
]

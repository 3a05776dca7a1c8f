"""
Project Session - the orchestrator the UI talks to

Owns the top-level state (idle → loading → ready/error), admits runs through
the process-wide Dedup Guard, and keeps the modification chat log.

Runs are fire-and-complete: each command launches its run as a task and
awaits it through asyncio.shield, so a caller that stops waiting does not
abort the run. The run still finishes, updates this session and releases its
guard slot.

Usage:
    session = ProjectSession(build_stage_services())
    url = await session.generate("build a todo app", project_id=42)
    await session.apply_change("add a dark mode toggle")
    print(session.status().to_dict())
"""

from typing import Any, Awaitable, Dict, List, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
import asyncio
import uuid

from promptsite.core.config import Settings, settings as default_settings
from promptsite.core.exceptions import DuplicateRunError, OrchestratorError, RecordingError
from promptsite.core.logging_config import logger
from promptsite.modules.orchestrator.dedup_guard import DedupGuard, get_dedup_guard, project_key
from promptsite.modules.orchestrator.event_bus import EventBus, EventType, get_event_bus
from promptsite.modules.orchestrator.generation_pipeline import GenerationPipeline
from promptsite.modules.orchestrator.modification_pipeline import ModificationPipeline
from promptsite.modules.orchestrator.state_machine import SessionState, SessionStateMachine
from promptsite.schemas.artifacts import ChangeRequest, Structure
from promptsite.schemas.pipeline import PipelineRun, PipelineStage, RunKind
from promptsite.schemas.project import ProjectId
from promptsite.services.registry import StageServices


GENERATION_FAILED_MESSAGE = "Failed to generate code"
LOAD_FAILED_MESSAGE = "Failed to load project"
DEPLOYMENT_URL_MISSING_MESSAGE = "Project deployment URL not found"
CHANGE_FAILED_MESSAGE = "Sorry, I encountered an error while applying the changes."
NO_PROJECT_MESSAGE = "Open or generate a project before requesting changes."


@dataclass
class ChatMessage:
    """One entry of the append-only modification log"""
    content: str
    type: str  # "user" | "assistant"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=datetime.utcnow)
    success: Optional[bool] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(content=content, type="user")

    @classmethod
    def assistant(cls, content: str, success: bool, error: Optional[Dict[str, Any]] = None) -> "ChatMessage":
        return cls(content=content, type="assistant", success=success, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "error": self.error
        }


@dataclass
class SessionStatus:
    """Read-only snapshot for the UI"""
    session_id: str
    state: SessionState
    project_id: Optional[ProjectId]
    preview_url: Optional[str]
    error: Optional[str]
    failure: Optional[Dict[str, Any]]
    recording_error: Optional[Dict[str, Any]]
    has_structure: bool
    messages: List[ChatMessage]
    transitions: List[Dict[str, Any]]
    active_run: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "project_id": self.project_id,
            "preview_url": self.preview_url,
            "error": self.error,
            "failure": self.failure,
            "recording_error": self.recording_error,
            "has_structure": self.has_structure,
            "messages": [m.to_dict() for m in self.messages],
            "transitions": self.transitions,
            "active_run": self.active_run
        }


class ProjectSession:
    """One user's view of one project: commands in, status out"""

    def __init__(
        self,
        services: StageServices,
        guard: Optional[DedupGuard] = None,
        event_bus: Optional[EventBus] = None,
        config: Optional[Settings] = None,
        session_id: Optional[str] = None
    ):
        config = config or default_settings
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.services = services
        self.guard = guard or get_dedup_guard()
        self.events = event_bus or get_event_bus()
        self.machine = SessionStateMachine(self.session_id)

        self.generation = GenerationPipeline(
            services, self.events, recording_failure_fatal=config.RECORDING_FAILURE_FATAL
        )
        self.modification = ModificationPipeline(
            services, working_directory=config.PROJECT_WORKING_DIRECTORY
        )

        self.project_id: Optional[ProjectId] = None
        self.preview_url: Optional[str] = None
        self.error: Optional[str] = None
        self.failure: Optional[OrchestratorError] = None
        self.recording_error: Optional[RecordingError] = None
        self.structure: Optional[Structure] = None
        self.messages: List[ChatMessage] = []

        self._tasks: Set[asyncio.Task] = set()

    # ========== Commands ==========

    async def initialize(
        self,
        project_id: Optional[ProjectId] = None,
        prompt: Optional[str] = None,
        existing: bool = False
    ) -> Optional[str]:
        """
        Entry point used when the UI opens a session.

        existing=True loads a finished project without generating anything;
        otherwise a prompt starts generation. With neither the session stays idle.
        """
        if existing and project_id is not None:
            return await self.load_existing(project_id)
        if prompt and prompt.strip():
            return await self.generate(prompt, project_id=project_id)

        logger.debug(f"[Session:{self.session_id}] Nothing to initialize")
        return None

    async def load_existing(self, project_id: ProjectId) -> Optional[str]:
        """Fetch a project's recorded preview; never runs generation"""
        if self.machine.is_loading:
            await self._absorbed(project_id, "load", "session is already loading")
            return None
        if (
            self.project_id is not None
            and project_key(self.project_id) == project_key(project_id)
            and self.machine.state != SessionState.IDLE
        ):
            logger.debug(f"[Session:{self.session_id}] Project {project_id} already loaded")
            return self.preview_url

        self._switch_project(project_id)
        await self._enter_loading(f"Loading project {project_id}")
        return await self._launch(self._load(project_id))

    async def generate(self, prompt: str, project_id: Optional[ProjectId] = None) -> Optional[str]:
        """
        Run the generation pipeline.

        Returns:
            The preview URL, or None when the run failed or the trigger was absorbed

        Raises:
            DuplicateRunError: a modification run occupies the project
        """
        if not prompt or not prompt.strip():
            logger.debug(f"[Session:{self.session_id}] Ignoring empty prompt")
            return None
        if self.machine.is_loading:
            await self._absorbed(project_id, RunKind.GENERATE.value, "session is already loading")
            return None

        key = self._guard_key(project_id)
        admission = self.guard.admit(key, RunKind.GENERATE)
        if not admission.admitted:
            if admission.is_identical(RunKind.GENERATE):
                await self._absorbed(key, RunKind.GENERATE.value, admission.reason)
                return None
            raise DuplicateRunError(key, admission.active_kind.value, RunKind.GENERATE.value)

        run = admission.run
        self._switch_project(project_id)
        self.recording_error = None
        await self._enter_loading(f"Generating project ({run.run_id})")
        await self.events.emit(
            EventType.RUN_STARTED, key, {"kind": run.kind.value}, source="session",
            correlation_id=run.run_id
        )
        return await self._launch(self._execute_generation(run, prompt, project_id))

    async def apply_change(self, requirement: str) -> Optional[ChatMessage]:
        """
        Run the modification pipeline against the current project.

        Appends the user message and exactly one assistant message. The
        session state, preview URL and error are left as they were.

        Returns:
            The assistant message, or None for a blank or absorbed request
        """
        if not requirement or not requirement.strip():
            return None
        requirement = requirement.strip()

        if self.project_id is None:
            self.messages.append(ChatMessage.user(requirement))
            return self._reply_failure(OrchestratorError(
                "No project loaded", code="NO_PROJECT", user_message=NO_PROJECT_MESSAGE
            ), NO_PROJECT_MESSAGE)

        key = project_key(self.project_id)
        admission = self.guard.admit(key, RunKind.MODIFY)
        if not admission.admitted:
            if admission.is_identical(RunKind.MODIFY):
                await self._absorbed(key, RunKind.MODIFY.value, admission.reason)
                return None
            self.messages.append(ChatMessage.user(requirement))
            error = DuplicateRunError(key, admission.active_kind.value, RunKind.MODIFY.value)
            return self._reply_failure(error, error.user_message)

        run = admission.run
        self.messages.append(ChatMessage.user(requirement))
        await self.events.emit(
            EventType.RUN_STARTED, key, {"kind": run.kind.value}, source="session",
            correlation_id=run.run_id
        )
        return await self._launch(self._execute_modification(run, requirement))

    # ========== Observation ==========

    def status(self) -> SessionStatus:
        active = None
        if self.project_id is not None or self.machine.is_loading:
            run = self.guard.active(self._guard_key(self.project_id))
            active = run.to_dict() if run else None

        return SessionStatus(
            session_id=self.session_id,
            state=self.machine.state,
            project_id=self.project_id,
            preview_url=self.preview_url,
            error=self.error,
            failure=self.failure.to_dict() if self.failure else None,
            recording_error=self.recording_error.to_dict() if self.recording_error else None,
            has_structure=self.structure is not None,
            messages=list(self.messages),
            transitions=[t.to_dict() for t in self.machine.get_history()],
            active_run=active
        )

    @property
    def state(self) -> SessionState:
        return self.machine.state

    async def wait_for_runs(self) -> None:
        """Wait for every run this session launched, including orphaned ones"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ========== Run bodies ==========

    async def _load(self, project_id: ProjectId) -> Optional[str]:
        try:
            project = await self.services.store.get(project_id)
        except OrchestratorError as e:
            await self._enter_error(e.with_stage(PipelineStage.FETCH_PROJECT), LOAD_FAILED_MESSAGE)
            return None

        if not project.deployment_url:
            await self._enter_error(
                OrchestratorError(
                    f"Project {project_id} has no deployment URL",
                    code="DEPLOYMENT_URL_NOT_FOUND",
                    stage=PipelineStage.FETCH_PROJECT
                ),
                DEPLOYMENT_URL_MISSING_MESSAGE
            )
            return None

        await self._enter_ready(project.deployment_url)
        return project.deployment_url

    async def _execute_generation(
        self, run: PipelineRun, prompt: str, project_id: Optional[ProjectId]
    ) -> Optional[str]:
        try:
            result = await self.generation.run(
                run, prompt, project_id=project_id, on_structure=self._set_structure
            )
        except OrchestratorError as e:
            await self._enter_error(e, e.user_message)
            await self.events.emit(
                EventType.RUN_FAILED, run.project_key, e.to_dict(), source="session",
                correlation_id=run.run_id
            )
            return None
        except asyncio.CancelledError:
            self._fail_in_place(run, "Run cancelled", "RUN_CANCELLED")
            raise
        except Exception as e:
            logger.log_error_with_context(e, context=f"generation run {run.run_id}")
            self._fail_in_place(run, str(e), "INTERNAL_ERROR")
            raise
        finally:
            self.guard.release(run)

        self.recording_error = result.recording_error
        await self._enter_ready(result.preview_url)
        await self.events.emit(
            EventType.RUN_COMPLETED,
            run.project_key,
            {
                "kind": run.kind.value,
                "preview_url": result.preview_url,
                "short_circuited": result.short_circuited,
                "duration_ms": run.duration_ms
            },
            source="session",
            correlation_id=run.run_id
        )
        return result.preview_url

    async def _execute_modification(self, run: PipelineRun, requirement: str) -> ChatMessage:
        if self.structure is None:
            logger.warning(
                f"[Session:{self.session_id}] No structure in memory for project "
                f"{self.project_id}; analyzing against an empty structure"
            )
        request = ChangeRequest(requirement=requirement, structure=self.structure or {})

        try:
            result = await self.modification.run(run, self.project_id, request)
        except OrchestratorError as e:
            await self.events.emit(
                EventType.CHANGE_FAILED, run.project_key, e.to_dict(), source="session",
                correlation_id=run.run_id
            )
            return self._reply_failure(e, CHANGE_FAILED_MESSAGE)
        except asyncio.CancelledError:
            self.messages.append(ChatMessage.assistant(CHANGE_FAILED_MESSAGE, success=False))
            raise
        except Exception:
            self.messages.append(ChatMessage.assistant(CHANGE_FAILED_MESSAGE, success=False))
            raise
        finally:
            self.guard.release(run)

        message = ChatMessage.assistant(result.summary, success=True)
        self.messages.append(message)
        await self.events.emit(
            EventType.CHANGE_APPLIED,
            run.project_key,
            {"files": result.change_set.paths, "duration_ms": run.duration_ms},
            source="session",
            correlation_id=run.run_id
        )
        return message

    # ========== Helpers ==========

    async def _launch(self, coro: Awaitable[Any]) -> Any:
        """Start the run as a task and wait for it without letting our cancellation reach it"""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._run_finished)
        return await asyncio.shield(task)

    def _run_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[Session:{self.session_id}] Run task ended with {type(error).__name__}: {error}")

    def _guard_key(self, project_id: Optional[ProjectId]) -> str:
        if project_id is None:
            return f"draft:{self.session_id}"
        return project_key(project_id)

    def _switch_project(self, project_id: Optional[ProjectId]) -> None:
        """Point the session at project_id, dropping what belonged to another project"""
        if self._guard_key(project_id) != self._guard_key(self.project_id):
            self.preview_url = None
            self.recording_error = None
            self.structure = None
        self.project_id = project_id

    def _set_structure(self, structure: Structure) -> None:
        self.structure = structure

    def _reply_failure(self, error: OrchestratorError, content: str) -> ChatMessage:
        message = ChatMessage.assistant(content, success=False, error=error.to_dict())
        self.messages.append(message)
        return message

    async def _absorbed(self, project_id: Any, kind: str, reason: Optional[str]) -> None:
        logger.info(f"[Session:{self.session_id}] Absorbed duplicate {kind}: {reason}")
        await self.events.emit(
            EventType.RUN_ABSORBED,
            project_id if project_id is not None else self._guard_key(None),
            {"kind": kind, "reason": reason},
            source="session"
        )

    async def _enter_loading(self, reason: str) -> None:
        previous = self.machine.state
        self.error = None
        self.failure = None
        if self.machine.load(reason):
            await self._state_changed(previous, SessionState.LOADING)

    async def _enter_ready(self, preview_url: str) -> None:
        self.preview_url = preview_url
        self.error = None
        self.failure = None
        if self.machine.ready(preview_url):
            await self._state_changed(SessionState.LOADING, SessionState.READY)

    async def _enter_error(self, error: OrchestratorError, message: str) -> None:
        self.error = message
        self.failure = error
        if self.machine.fail(error.message, stage=error.stage):
            await self._state_changed(SessionState.LOADING, SessionState.ERROR)

    def _fail_in_place(self, run: PipelineRun, message: str, code: str) -> None:
        """Leave loading without awaiting (cancellation / unexpected errors)"""
        run.fail()
        self.failure = OrchestratorError(message, code=code, stage=run.stage)
        self.error = GENERATION_FAILED_MESSAGE
        self.machine.fail(message, stage=self.failure.stage)

    async def _state_changed(self, old: SessionState, new: SessionState) -> None:
        await self.events.emit(
            EventType.STATE_CHANGED,
            self.project_id if self.project_id is not None else self._guard_key(None),
            {"from": old.value, "to": new.value, "session_id": self.session_id},
            source="session"
        )

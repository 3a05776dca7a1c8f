"""
Generation Pipeline - prompt to deployed preview

    fetch_project ─► generate ─► parse ─► structure ─► write ─► package ─► build ─► record
         │
         └─ deployment URL already recorded: return it, nothing else runs

Every stage is a hard dependency on the previous one. The first failure
aborts the run, marks the project `error` in the store (best effort) and
propagates with the failing stage attached. Nothing is retried here.
"""

from typing import Awaitable, Callable, List, Optional, TypeVar
from dataclasses import dataclass, field
import time

from promptsite.core.config import settings
from promptsite.core.exceptions import (
    OrchestratorError,
    PartialWriteError,
    RecordingError,
    UpstreamServiceError,
)
from promptsite.core.logging_config import logger, set_project_id, set_run_id
from promptsite.modules.orchestrator.event_bus import EventBus, EventType, get_event_bus
from promptsite.schemas.artifacts import Structure
from promptsite.schemas.pipeline import PipelineRun, PipelineStage
from promptsite.schemas.project import ProjectId, ProjectStatus, ProjectUpdate
from promptsite.services.registry import StageServices
from promptsite.utils.response_parser import parse_generation_output

T = TypeVar("T")

StructureCallback = Callable[[Structure], None]


@dataclass
class GenerationResult:
    """Successful terminal outcome of a generation run"""
    preview_url: str
    structure: Optional[Structure] = None
    files: List[str] = field(default_factory=list)
    short_circuited: bool = False
    recording_error: Optional[RecordingError] = None


async def run_stage(run: PipelineRun, stage: PipelineStage, awaitable: Awaitable[T]) -> T:
    """Await one external call as `stage`, timing it and tagging failures"""
    run.enter(stage)
    logger.log_stage_event(stage.value, "started")
    started = time.monotonic()
    try:
        result = await awaitable
    except OrchestratorError as e:
        e.with_stage(stage)
        logger.log_stage_event(
            stage.value, "failed", (time.monotonic() - started) * 1000, error_code=e.code
        )
        raise
    logger.log_stage_event(stage.value, "completed", (time.monotonic() - started) * 1000)
    return result


class GenerationPipeline:
    """Runs the create-project sequence against the stage services"""

    def __init__(
        self,
        services: StageServices,
        event_bus: Optional[EventBus] = None,
        recording_failure_fatal: Optional[bool] = None
    ):
        self.services = services
        self.events = event_bus or get_event_bus()
        self.recording_failure_fatal = (
            settings.RECORDING_FAILURE_FATAL
            if recording_failure_fatal is None else recording_failure_fatal
        )

    async def run(
        self,
        run: PipelineRun,
        prompt: str,
        project_id: Optional[ProjectId] = None,
        on_structure: Optional[StructureCallback] = None
    ) -> GenerationResult:
        """
        Execute one generation run.

        Args:
            run: The admitted PipelineRun; its stage and outcome are updated in place
            prompt: Natural-language project description
            project_id: Existing project record, if any
            on_structure: Receives the parsed structure before files are written

        Returns:
            GenerationResult with the preview URL

        Raises:
            OrchestratorError: subclass identifying the failed stage
        """
        set_run_id(run.run_id)
        set_project_id(run.project_key)
        logger.info(f"Generation run {run.run_id} started for {run.project_key}")

        if project_id is not None:
            try:
                project = await run_stage(
                    run, PipelineStage.FETCH_PROJECT, self.services.store.get(project_id)
                )
            except OrchestratorError:
                run.fail()
                raise

            if project.deployment_url:
                logger.info(
                    f"Project {project_id} already deployed at {project.deployment_url}; "
                    "skipping generation"
                )
                run.succeed()
                return GenerationResult(preview_url=project.deployment_url, short_circuited=True)

            await self._mark_best_effort(
                run, project_id, ProjectUpdate(status=ProjectStatus.BUILDING)
            )

        try:
            preview_url, structure, paths = await self._generate_and_deploy(
                run, prompt, on_structure
            )
        except OrchestratorError as e:
            e.with_stage(run.stage)
            run.fail()
            logger.warning(f"Generation run {run.run_id} failed at {e.stage}: {e.message}")
            if project_id is not None:
                await self._mark_best_effort(
                    run, project_id, ProjectUpdate(status=ProjectStatus.ERROR)
                )
            raise

        recording_error = None
        if project_id is not None:
            recording_error = await self._record(run, project_id, preview_url)

        run.succeed()
        logger.info(
            f"Generation run {run.run_id} completed in {run.duration_ms:.0f}ms: {preview_url}"
        )
        return GenerationResult(
            preview_url=preview_url,
            structure=structure,
            files=paths,
            recording_error=recording_error
        )

    async def _generate_and_deploy(
        self,
        run: PipelineRun,
        prompt: str,
        on_structure: Optional[StructureCallback]
    ):
        services = self.services

        raw = await run_stage(run, PipelineStage.GENERATE, services.generation.generate(prompt))

        run.enter(PipelineStage.PARSE)
        artifacts = parse_generation_output(raw)
        logger.log_stage_event(PipelineStage.PARSE.value, "completed", files=len(artifacts.files))

        run.enter(PipelineStage.STRUCTURE)
        if on_structure is not None:
            on_structure(artifacts.structure)
        await self.events.emit(
            EventType.STRUCTURE_UPDATED,
            run.project_key,
            {"files": artifacts.paths},
            source="generation_pipeline",
            correlation_id=run.run_id
        )

        result = await run_stage(
            run, PipelineStage.WRITE, services.writer.write_files(artifacts.files)
        )
        if result.is_partial:
            raise PartialWriteError(result.failed, result.requested, stage=PipelineStage.WRITE)

        archive = await run_stage(
            run, PipelineStage.PACKAGE, services.packaging.package_current_tree()
        )

        preview_url = await run_stage(
            run, PipelineStage.BUILD, services.builder.build_and_deploy(archive)
        )
        if not preview_url or not preview_url.strip():
            raise UpstreamServiceError(
                "build", "build/deploy returned an empty preview URL", stage=PipelineStage.BUILD
            )

        return preview_url.strip(), artifacts.structure, artifacts.paths

    async def _record(
        self, run: PipelineRun, project_id: ProjectId, preview_url: str
    ) -> Optional[RecordingError]:
        """Persist {deploymentUrl, status: ready}; fatal only when configured"""
        try:
            await run_stage(
                run,
                PipelineStage.RECORD,
                self.services.store.update(
                    project_id,
                    ProjectUpdate(deployment_url=preview_url, status=ProjectStatus.READY)
                )
            )
        except OrchestratorError as e:
            error = RecordingError(project_id, e.message)
            if self.recording_failure_fatal:
                run.fail()
                raise error from e
            await self._report_recording_failure(run, error)
            return error
        return None

    async def _mark_best_effort(
        self, run: PipelineRun, project_id: ProjectId, patch: ProjectUpdate
    ) -> None:
        """Bookkeeping status write that never aborts the run"""
        try:
            await self.services.store.update(project_id, patch)
        except OrchestratorError as e:
            error = RecordingError(project_id, e.message, stage=run.stage or PipelineStage.FETCH_PROJECT)
            error.details["status"] = patch.status.value if patch.status else None
            await self._report_recording_failure(run, error)

    async def _report_recording_failure(self, run: PipelineRun, error: RecordingError) -> None:
        logger.warning(
            f"Recording failure (non-fatal) for run {run.run_id}: {error.message}",
            extra={"event_type": "recording_failed", "error_code": error.code}
        )
        await self.events.emit(
            EventType.RECORDING_FAILED,
            run.project_key,
            error.to_dict(),
            source="generation_pipeline",
            correlation_id=run.run_id
        )

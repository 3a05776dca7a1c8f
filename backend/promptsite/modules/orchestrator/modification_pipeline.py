"""
Modification Pipeline - apply a change to an existing project

    analyze ─► resolve_files ─► rewrite ─► write ─► summary

Works on the live source tree only. The deployed preview and the project's
recorded deployment URL and status are never touched, and build/deploy is
not re-run.
"""

from typing import List, Optional
from dataclasses import dataclass

from promptsite.core.config import settings
from promptsite.core.exceptions import OrchestratorError, PartialWriteError, ProjectFileNotFoundError
from promptsite.core.logging_config import logger, set_project_id, set_run_id
from promptsite.modules.orchestrator.generation_pipeline import run_stage
from promptsite.schemas.artifacts import ChangeAnalysis, ChangeRequest, ChangeSet, FileArtifact
from promptsite.schemas.pipeline import PipelineRun, PipelineStage
from promptsite.schemas.project import ProjectId
from promptsite.services.registry import StageServices
from promptsite.utils.prompts import build_analysis_prompt, build_rewrite_prompt
from promptsite.utils.response_parser import parse_change_analysis, parse_change_set


SUCCESS_HEADLINE = "Changes applied successfully!"


@dataclass
class ModificationResult:
    summary: str
    change_set: ChangeSet
    analysis: ChangeAnalysis


def summarize_change(change_set: ChangeSet, analysis: ChangeAnalysis) -> str:
    """Human-readable report of a successful modification"""
    created = set(analysis.files_to_create)
    updated = [p for p in change_set.paths if p not in created]
    added = [p for p in change_set.paths if p in created]

    parts = [SUCCESS_HEADLINE]
    if updated:
        parts.append(f"Updated {len(updated)} file(s): {', '.join(updated)}.")
    if added:
        parts.append(f"Created {len(added)} file(s): {', '.join(added)}.")
    if analysis.dependencies:
        parts.append(f"New dependencies: {', '.join(analysis.dependencies)}.")
    return " ".join(parts)


def _same_path(path: str) -> str:
    return path[2:] if path.startswith("./") else path


class ModificationPipeline:
    """Runs the change sequence against the stage services"""

    def __init__(self, services: StageServices, working_directory: Optional[str] = None):
        self.services = services
        self.working_directory = working_directory or settings.PROJECT_WORKING_DIRECTORY

    async def run(
        self,
        run: PipelineRun,
        project_id: ProjectId,
        change_request: ChangeRequest
    ) -> ModificationResult:
        """
        Execute one modification run.

        Raises:
            OrchestratorError: subclass identifying the failed stage
        """
        set_run_id(run.run_id)
        set_project_id(run.project_key)
        logger.info(f"Modification run {run.run_id} started for project {project_id}")

        try:
            result = await self._apply(run, change_request)
        except OrchestratorError as e:
            e.with_stage(run.stage)
            run.fail()
            logger.warning(f"Modification run {run.run_id} failed at {e.stage}: {e.message}")
            raise

        run.succeed()
        logger.info(
            f"Modification run {run.run_id} wrote {len(result.change_set.files)} file(s) "
            f"in {run.duration_ms:.0f}ms"
        )
        return result

    async def _apply(self, run: PipelineRun, change_request: ChangeRequest) -> ModificationResult:
        services = self.services

        raw = await run_stage(
            run,
            PipelineStage.ANALYZE,
            services.generation.analyze_change(build_analysis_prompt(change_request))
        )
        analysis = parse_change_analysis(raw)
        logger.info(
            f"Analysis selected {len(analysis.files_to_modify)} file(s) to modify, "
            f"{len(analysis.files_to_create)} to create"
        )

        current: List[FileArtifact] = []
        if analysis.files_to_modify:
            current = await self._resolve(run, analysis.files_to_modify)

        raw = await run_stage(
            run,
            PipelineStage.REWRITE,
            services.generation.rewrite_files(
                current, build_rewrite_prompt(change_request.requirement, analysis)
            )
        )
        change_set = parse_change_set(raw)

        result = await run_stage(
            run,
            PipelineStage.WRITE,
            services.writer.write_files(change_set.files, base_directory=self.working_directory)
        )
        if result.is_partial:
            raise PartialWriteError(result.failed, result.requested, stage=PipelineStage.WRITE)

        return ModificationResult(
            summary=summarize_change(change_set, analysis),
            change_set=change_set,
            analysis=analysis
        )

    async def _resolve(self, run: PipelineRun, paths: List[str]) -> List[FileArtifact]:
        """Live contents of exactly `paths`, in the order they were named"""
        files = await run_stage(
            run,
            PipelineStage.RESOLVE_FILES,
            self.services.file_selection.resolve_files(paths, self.working_directory)
        )
        by_path = {_same_path(f.path): f for f in files}

        missing = [p for p in paths if p not in by_path]
        if missing:
            raise ProjectFileNotFoundError(missing, stage=PipelineStage.RESOLVE_FILES)

        return [FileArtifact(path=p, content=by_path[p].content) for p in paths]

from promptsite.schemas.project import (
    Project,
    ProjectCreate,
    ProjectId,
    ProjectStatus,
    ProjectUpdate,
)
from promptsite.schemas.artifacts import (
    ChangeAnalysis,
    ChangeRequest,
    ChangeSet,
    FileArtifact,
    GeneratedArtifactSet,
    Structure,
    WriteResult,
)
from promptsite.schemas.pipeline import PipelineRun, PipelineStage, RunKind, RunOutcome

__all__ = [
    "Project",
    "ProjectCreate",
    "ProjectId",
    "ProjectStatus",
    "ProjectUpdate",
    "ChangeAnalysis",
    "ChangeRequest",
    "ChangeSet",
    "FileArtifact",
    "GeneratedArtifactSet",
    "Structure",
    "WriteResult",
    "PipelineRun",
    "PipelineStage",
    "RunKind",
    "RunOutcome",
]

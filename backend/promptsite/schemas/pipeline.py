"""
Pipeline run bookkeeping types.

A PipelineRun lives only in memory for the duration of one command; only its
terminal effect (deployment URL + status) ever reaches the project store.
"""

from typing import Dict, Any, Optional
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
import uuid


class RunKind(str, Enum):
    """Kind of pipeline run occupying a project"""
    GENERATE = "generate"
    MODIFY = "modify"


class RunOutcome(str, Enum):
    """Terminal outcome of a pipeline run"""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class PipelineStage(str, Enum):
    """One external-service call within a pipeline run"""
    # Generation
    FETCH_PROJECT = "fetch_project"
    GENERATE = "generate"
    PARSE = "parse"
    STRUCTURE = "structure"
    WRITE = "write"
    PACKAGE = "package"
    BUILD = "build"
    RECORD = "record"

    # Modification
    ANALYZE = "analyze"
    RESOLVE_FILES = "resolve_files"
    REWRITE = "rewrite"


@dataclass
class PipelineRun:
    """One in-flight execution of the generation or modification sequence"""
    project_key: str
    kind: RunKind
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: datetime = field(default_factory=datetime.utcnow)
    stage: Optional[PipelineStage] = None
    outcome: RunOutcome = RunOutcome.PENDING
    finished_at: Optional[datetime] = None

    def enter(self, stage: PipelineStage) -> None:
        self.stage = stage

    def succeed(self) -> None:
        self.outcome = RunOutcome.SUCCESS
        self.finished_at = datetime.utcnow()

    def fail(self) -> None:
        self.outcome = RunOutcome.FAILURE
        self.finished_at = datetime.utcnow()

    @property
    def is_finished(self) -> bool:
        return self.outcome != RunOutcome.PENDING

    @property
    def duration_ms(self) -> float:
        end = self.finished_at or datetime.utcnow()
        return (end - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "project_key": self.project_key,
            "kind": self.kind.value,
            "stage": self.stage.value if self.stage else None,
            "outcome": self.outcome.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

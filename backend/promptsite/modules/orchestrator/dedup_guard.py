"""
Dedup Guard - at most one in-flight pipeline run per project

A lock-protected occupancy table keyed by project identity. admit() and
release() are safe to call from asyncio tasks and from plain threads; neither
can fail.
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass
import threading

from promptsite.core.logging_config import logger
from promptsite.schemas.pipeline import PipelineRun, RunKind


@dataclass
class Admission:
    """Outcome of asking the guard for a slot"""
    admitted: bool
    run: Optional[PipelineRun] = None
    reason: Optional[str] = None
    active_kind: Optional[RunKind] = None

    def is_identical(self, kind: RunKind) -> bool:
        """Rejected because a run of the same kind already occupies the project"""
        return not self.admitted and self.active_kind == kind


def project_key(project_id: Any) -> str:
    """Normalize a project id so 42 and "42" share one slot"""
    return str(project_id).strip()


class DedupGuard:
    """Process-lifetime map of project key -> active PipelineRun"""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Dict[str, PipelineRun] = {}

    def admit(self, project_id: Any, kind: RunKind) -> Admission:
        key = project_key(project_id)
        with self._lock:
            current = self._active.get(key)
            if current is not None:
                reason = (
                    f"project {key} already has an active {current.kind.value} run "
                    f"({current.run_id})"
                )
                logger.info(f"[DedupGuard] Rejected {kind.value}: {reason}")
                return Admission(admitted=False, reason=reason, active_kind=current.kind)

            run = PipelineRun(project_key=key, kind=kind)
            self._active[key] = run

        logger.debug(f"[DedupGuard] Admitted {kind.value} run {run.run_id} for {key}")
        return Admission(admitted=True, run=run)

    def release(self, run: PipelineRun) -> bool:
        """Free the slot if it still belongs to this run"""
        with self._lock:
            if self._active.get(run.project_key) is not run:
                return False
            del self._active[run.project_key]

        logger.debug(f"[DedupGuard] Released run {run.run_id} for {run.project_key}")
        return True

    def active(self, project_id: Any) -> Optional[PipelineRun]:
        with self._lock:
            return self._active.get(project_key(project_id))

    def active_keys(self) -> List[str]:
        with self._lock:
            return list(self._active.keys())

    def clear(self):
        """Drop every entry (test isolation only)"""
        with self._lock:
            self._active.clear()


# Global singleton
dedup_guard = DedupGuard()


def get_dedup_guard() -> DedupGuard:
    """Get the process-wide guard"""
    return dedup_guard

"""
Custom Exceptions for PromptSite
================================

Every failure a pipeline run can end in has its own class here, so the
session can store a typed failure (code + failing stage) and show exactly one
human-readable message for it.

Usage:
    from promptsite.core.exceptions import OutputParseError, UpstreamServiceError

    if not files:
        raise OutputParseError("No <file> sections found", stage=PipelineStage.PARSE)

    try:
        await store.update(project_id, patch)
    except UpstreamServiceError as e:
        raise RecordingError(project_id, str(e)) from e
"""

from typing import Optional, Any, Dict, List, Union
from enum import Enum


def _stage_value(stage: Optional[Union[Enum, str]]) -> Optional[str]:
    if stage is None:
        return None
    return stage.value if isinstance(stage, Enum) else str(stage)


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors"""

    default_user_message = "Something went wrong"

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        stage: Optional[Union[Enum, str]] = None,
        user_message: Optional[str] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.stage = _stage_value(stage)
        self._user_message = user_message
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Message safe to show in the UI"""
        return self._user_message or self.default_user_message

    def with_stage(self, stage: Union[Enum, str]) -> "OrchestratorError":
        """Attach the failing stage if the raiser did not know it"""
        if self.stage is None:
            self.stage = _stage_value(stage)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "stage": self.stage,
            "details": self.details
        }


# ============================================
# Resource Errors (NotFound)
# ============================================

class ResourceNotFoundError(OrchestratorError):
    """Base class for not found errors"""

    default_user_message = "Failed to load project"

    def __init__(self, resource_type: str, resource_id: Any, stage: Optional[Union[Enum, str]] = None):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
            stage=stage
        )


class ProjectNotFoundError(ResourceNotFoundError):
    """Project record missing from the store"""

    def __init__(self, project_id: Any, stage: Optional[Union[Enum, str]] = None):
        super().__init__("Project", project_id, stage=stage)


class ProjectFileNotFoundError(ResourceNotFoundError):
    """Files named by the change analysis do not exist in the live source tree"""

    default_user_message = "Sorry, I encountered an error while applying the changes."

    def __init__(self, paths: List[str], stage: Optional[Union[Enum, str]] = None):
        super().__init__("File", ", ".join(paths), stage=stage)
        self.details["paths"] = list(paths)


# ============================================
# Model output errors (ParseFailure)
# ============================================

class OutputParseError(OrchestratorError):
    """Model output is malformed or missing a required section"""

    default_user_message = "The generated output could not be understood. Please try again."

    def __init__(self, message: str, stage: Optional[Union[Enum, str]] = None, **details: Any):
        super().__init__(message, code="PARSE_FAILURE", details=details, stage=stage)


# ============================================
# Stage service errors
# ============================================

class PartialWriteError(OrchestratorError):
    """Write service persisted only part of the submitted files"""

    default_user_message = "Not all project files could be saved."

    def __init__(
        self,
        failed_paths: List[str],
        requested: int,
        stage: Optional[Union[Enum, str]] = None
    ):
        super().__init__(
            f"Write service failed to persist {len(failed_paths) or 'some'} of {requested} files",
            code="PARTIAL_WRITE_FAILURE",
            details={"failed_paths": list(failed_paths), "requested": requested},
            stage=stage
        )


class UpstreamServiceError(OrchestratorError):
    """An external service call errored, timed out or answered garbage"""

    default_user_message = "A backend service failed. Please try again."

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        stage: Optional[Union[Enum, str]] = None
    ):
        super().__init__(
            f"{service}: {message}",
            code="UPSTREAM_FAILURE",
            details={"service": service},
            stage=stage
        )
        self.service = service
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


# ============================================
# Run admission / bookkeeping errors
# ============================================

class DuplicateRunError(OrchestratorError):
    """Another pipeline run already occupies this project"""

    default_user_message = "Another operation is already running for this project."

    def __init__(self, project_key: str, active_kind: str, requested_kind: str):
        super().__init__(
            f"Project '{project_key}' is busy with a '{active_kind}' run; "
            f"'{requested_kind}' rejected",
            code="DUPLICATE_RUN_REJECTED",
            details={
                "project_key": project_key,
                "active_kind": active_kind,
                "requested_kind": requested_kind
            }
        )


class RecordingError(OrchestratorError):
    """Post-success bookkeeping write to the project store failed"""

    default_user_message = "Your preview is live, but it could not be saved to the project."

    def __init__(self, project_id: Any, message: str, stage: Optional[Union[Enum, str]] = "record"):
        super().__init__(
            f"Failed to record result for project '{project_id}': {message}",
            code="RECORDING_FAILURE",
            details={"project_id": str(project_id)},
            stage=stage
        )


# ============================================
# Helper function for UI responses
# ============================================

def error_response(error: OrchestratorError) -> Dict[str, Any]:
    """Convert exception to the UI error payload"""
    return {
        "success": False,
        "message": error.user_message,
        "error": error.to_dict()
    }

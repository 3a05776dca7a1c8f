"""
File artifacts exchanged between pipeline stages.

GeneratedArtifactSet comes out of the generation parser and feeds the write
stage; ChangeSet is the same shape scoped to the files a modification touched.
Both are immutable once built.
"""

from typing import Any, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, field_validator


Structure = Union[Dict[str, Any], List[Any]]


@dataclass(frozen=True)
class FileArtifact:
    """A single (path, content) pair"""
    path: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "content": self.content}


def _check_unique(files: Tuple[FileArtifact, ...]) -> None:
    seen = set()
    for f in files:
        if f.path in seen:
            raise ValueError(f"Duplicate path in artifact set: {f.path}")
        seen.add(f.path)


@dataclass(frozen=True)
class GeneratedArtifactSet:
    """Ordered files plus the structural description of the generated project"""
    structure: Structure
    files: Tuple[FileArtifact, ...]

    def __post_init__(self):
        if not self.files:
            raise ValueError("Artifact set must contain at least one file")
        _check_unique(self.files)

    @property
    def paths(self) -> List[str]:
        return [f.path for f in self.files]

    def to_payload(self) -> List[Dict[str, str]]:
        return [f.to_dict() for f in self.files]


@dataclass(frozen=True)
class ChangeSet:
    """Files selected and rewritten by one modification run"""
    files: Tuple[FileArtifact, ...]

    def __post_init__(self):
        if not self.files:
            raise ValueError("Change set must contain at least one file")
        _check_unique(self.files)

    @property
    def paths(self) -> List[str]:
        return [f.path for f in self.files]

    def to_payload(self) -> List[Dict[str, str]]:
        return [f.to_dict() for f in self.files]


@dataclass
class ChangeRequest:
    """User requirement plus the structure it should be applied against"""
    requirement: str
    structure: Structure = field(default_factory=dict)


class ChangeAnalysis(BaseModel):
    """Structured decision returned by the analysis stage"""
    files_to_modify: List[str] = Field(default_factory=list)
    files_to_create: List[str] = Field(default_factory=list)
    reasoning: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("files_to_modify", "files_to_create")
    @classmethod
    def strip_paths(cls, v: List[str]) -> List[str]:
        paths = []
        for p in v:
            p = p.strip()
            if not p:
                raise ValueError("file paths must be non-empty")
            if p not in paths:
                paths.append(p)
        return paths

    @property
    def is_empty(self) -> bool:
        return not self.files_to_modify and not self.files_to_create


@dataclass
class WriteResult:
    """Acknowledgement from the write service"""
    requested: int
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    success: bool = True

    @property
    def is_partial(self) -> bool:
        if not self.success or self.failed:
            return True
        # Services that report written paths must cover every file
        return bool(self.written) and len(self.written) < self.requested

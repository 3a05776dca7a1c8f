"""
Collaborator contracts consumed by the pipelines.

Anything that satisfies these protocols can be plugged into a pipeline; the
HTTP gateway clients in this package are the production implementations and
the test suite uses in-memory fakes.
"""

from typing import List, Optional, Protocol, Sequence

from promptsite.schemas.artifacts import FileArtifact, WriteResult
from promptsite.schemas.project import Project, ProjectCreate, ProjectId, ProjectUpdate


class ProjectStore(Protocol):
    async def get(self, project_id: ProjectId) -> Project: ...

    async def create(self, data: ProjectCreate) -> Project: ...

    async def update(self, project_id: ProjectId, patch: ProjectUpdate) -> Project: ...

    async def delete(self, project_id: ProjectId) -> None: ...

    async def list_by_owner(self, owner_id: ProjectId) -> List[Project]: ...


class GenerationService(Protocol):
    """All operations return raw, unstructured model text"""

    async def generate(self, prompt: str) -> str: ...

    async def analyze_change(self, prompt: str) -> str: ...

    async def rewrite_files(self, files: Sequence[FileArtifact], prompt: str) -> str: ...


class FileSelectionService(Protocol):
    async def resolve_files(
        self, paths: Sequence[str], working_directory: str
    ) -> List[FileArtifact]: ...


class WriteService(Protocol):
    async def write_files(
        self, files: Sequence[FileArtifact], base_directory: Optional[str] = None
    ) -> WriteResult: ...


class PackagingService(Protocol):
    async def package_current_tree(self) -> str: ...


class BuildService(Protocol):
    async def build_and_deploy(self, archive_reference: str) -> str: ...

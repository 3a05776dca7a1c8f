"""
In-memory stage services for testing
Record every call so tests can assert on what the pipelines did and did not touch
"""
from typing import Any, Dict, List, Optional, Sequence, Union
import asyncio
import json

from promptsite.core.exceptions import ProjectNotFoundError
from promptsite.schemas.artifacts import FileArtifact, WriteResult
from promptsite.schemas.project import Project, ProjectCreate, ProjectStatus, ProjectUpdate
from promptsite.services.registry import StageServices


Output = Union[str, Exception]

# Scenario project: a two-file todo app
TODO_FILES = {
    "index.html": "<!doctype html><div id=\"root\"></div>",
    "app.js": "console.log('todo')",
}

TODO_STRUCTURE = {"index.html": "entry page", "app.js": "todo logic"}


def generation_output(files: Dict[str, str], structure: Optional[Any] = None) -> str:
    """Build well-formed generation output for the given files"""
    if structure is None:
        structure = {path: "generated file" for path in files}
    sections = [f"<structure>\n{json.dumps(structure)}\n</structure>"]
    for path, content in files.items():
        sections.append(f'<file path="{path}">\n{content}\n</file>')
    return "\n".join(sections)


def _resolve(output: Output) -> str:
    if isinstance(output, Exception):
        raise output
    return output


class FakeProjectStore:
    """Project records kept in a dict keyed by str(id)"""

    def __init__(self):
        self.projects: Dict[str, Project] = {}
        self.get_calls: List[Any] = []
        self.updates: List[tuple] = []
        self.update_error: Optional[Exception] = None
        self._next_id = 100

    def add(self, project_id: Any, deployment_url: Optional[str] = None,
            status: ProjectStatus = ProjectStatus.PENDING, user_id: Any = 7) -> Project:
        project = Project(
            id=project_id,
            name=f"Project {project_id}",
            deployment_url=deployment_url,
            status=status,
            user_id=user_id
        )
        self.projects[str(project_id)] = project
        return project

    async def get(self, project_id):
        self.get_calls.append(project_id)
        key = str(project_id)
        if key not in self.projects:
            raise ProjectNotFoundError(project_id)
        return self.projects[key].model_copy()

    async def create(self, data: ProjectCreate):
        self._next_id += 1
        project = Project(
            id=self._next_id,
            name=data.name,
            description=data.description,
            project_type=data.project_type,
            user_id=data.user_id,
            status=ProjectStatus.PENDING
        )
        self.projects[str(project.id)] = project
        return project

    async def update(self, project_id, patch: ProjectUpdate):
        self.updates.append((project_id, patch.to_payload()))
        if self.update_error is not None:
            raise self.update_error
        key = str(project_id)
        if key not in self.projects:
            raise ProjectNotFoundError(project_id)
        changes = patch.model_dump(exclude_unset=True)
        self.projects[key] = self.projects[key].model_copy(update=changes)
        return self.projects[key]

    async def delete(self, project_id):
        self.projects.pop(str(project_id), None)

    async def list_by_owner(self, owner_id):
        return [p for p in self.projects.values() if str(p.user_id) == str(owner_id)]


class FakeGenerationService:
    """Returns canned outputs; `gate` holds generate() until the test releases it"""

    def __init__(
        self,
        generate_output: Output = "",
        analysis_output: Output = "",
        rewrite_output: Output = ""
    ):
        self.generate_output = generate_output
        self.analysis_output = analysis_output
        self.rewrite_output = rewrite_output
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def generate(self, prompt: str) -> str:
        self.calls.append(("generate", prompt))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        return _resolve(self.generate_output)

    async def analyze_change(self, prompt: str) -> str:
        self.calls.append(("analyze_change", prompt))
        return _resolve(self.analysis_output)

    async def rewrite_files(self, files: Sequence[FileArtifact], prompt: str) -> str:
        self.calls.append(("rewrite_files", [f.path for f in files], prompt))
        return _resolve(self.rewrite_output)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeFileSelectionService:
    def __init__(self, files: Optional[Dict[str, str]] = None):
        self.files = files or {}
        self.calls: List[tuple] = []

    async def resolve_files(self, paths, working_directory):
        self.calls.append((list(paths), working_directory))
        return [FileArtifact(path=p, content=self.files[p]) for p in paths if p in self.files]


class FakeWriteService:
    def __init__(self, result: Optional[WriteResult] = None):
        self.result = result
        self.calls: List[tuple] = []

    async def write_files(self, files, base_directory=None):
        files = list(files)
        self.calls.append((files, base_directory))
        if self.result is not None:
            return self.result
        return WriteResult(requested=len(files), written=[f.path for f in files])


class FakePackagingService:
    def __init__(self, archive: Output = "https://archive.example/tree.zip"):
        self.archive = archive
        self.calls = 0

    async def package_current_tree(self):
        self.calls += 1
        return _resolve(self.archive)


class FakeBuildService:
    def __init__(self, preview_url: Output = "https://preview.example/42"):
        self.preview_url = preview_url
        self.calls: List[str] = []

    async def build_and_deploy(self, archive_reference):
        self.calls.append(archive_reference)
        return _resolve(self.preview_url)


def make_services(
    store: Optional[FakeProjectStore] = None,
    generation: Optional[FakeGenerationService] = None,
    file_selection: Optional[FakeFileSelectionService] = None,
    writer: Optional[FakeWriteService] = None,
    packaging: Optional[FakePackagingService] = None,
    builder: Optional[FakeBuildService] = None
) -> StageServices:
    return StageServices(
        store=store or FakeProjectStore(),
        generation=generation or FakeGenerationService(),
        file_selection=file_selection or FakeFileSelectionService(),
        writer=writer or FakeWriteService(),
        packaging=packaging or FakePackagingService(),
        builder=builder or FakeBuildService()
    )

from typing import Any, List

from pydantic import ValidationError

from promptsite.core.exceptions import ProjectNotFoundError, UpstreamServiceError
from promptsite.schemas.project import Project, ProjectCreate, ProjectId, ProjectUpdate
from promptsite.services.http_base import ServiceHttpClient


SERVICE = "project-store"
PROJECTS_PATH = "/api/projects"


class HttpProjectStore:
    """Project record store behind the gateway's /api/projects resource"""

    def __init__(self, http: ServiceHttpClient):
        self.http = http

    async def _call(self, method: str, path: str, project_id: Any = None, **kwargs) -> Any:
        try:
            return await self.http.request_json(SERVICE, method, path, **kwargs)
        except UpstreamServiceError as e:
            if e.status_code == 404 and project_id is not None:
                raise ProjectNotFoundError(project_id) from e
            raise

    @staticmethod
    def _to_project(body: Any) -> Project:
        if not isinstance(body, dict):
            raise UpstreamServiceError(SERVICE, "expected a project object")
        try:
            return Project.model_validate(body)
        except ValidationError as e:
            raise UpstreamServiceError(SERVICE, f"invalid project record: {e.error_count()} error(s)") from e

    async def get(self, project_id: ProjectId) -> Project:
        body = await self._call("GET", f"{PROJECTS_PATH}/{project_id}", project_id=project_id)
        return self._to_project(body)

    async def create(self, data: ProjectCreate) -> Project:
        body = await self._call(
            "POST", PROJECTS_PATH,
            json=data.model_dump(by_alias=True, mode="json")
        )
        return self._to_project(body)

    async def update(self, project_id: ProjectId, patch: ProjectUpdate) -> Project:
        body = await self._call(
            "PUT", f"{PROJECTS_PATH}/{project_id}",
            project_id=project_id,
            json=patch.to_payload()
        )
        if body is None:
            # Some stores acknowledge updates with an empty body
            return await self.get(project_id)
        return self._to_project(body)

    async def delete(self, project_id: ProjectId) -> None:
        await self._call("DELETE", f"{PROJECTS_PATH}/{project_id}", project_id=project_id)

    async def list_by_owner(self, owner_id: ProjectId) -> List[Project]:
        body = await self._call("GET", f"{PROJECTS_PATH}/user/{owner_id}")
        if not isinstance(body, list):
            raise UpstreamServiceError(SERVICE, "expected a list of projects")
        return [self._to_project(item) for item in body]

"""
Unit Tests for the gateway-backed stage services
Tests for: project store, generation, file selection, write, packaging, build
"""
import json

import httpx
import pytest

from promptsite.core.exceptions import ProjectNotFoundError, UpstreamServiceError
from promptsite.schemas.artifacts import FileArtifact
from promptsite.schemas.project import ProjectCreate, ProjectStatus, ProjectUpdate
from promptsite.services.deploy_service import HttpBuildService
from promptsite.services.generation_service import HttpGenerationService
from promptsite.services.http_base import ServiceHttpClient
from promptsite.services.project_store import HttpProjectStore
from promptsite.services.workspace_service import (
    HttpFileSelectionService,
    HttpPackagingService,
    HttpWriteService,
)


BASE_URL = "http://gateway.test"


class Gateway:
    """Routes requests to canned responses and records what was sent"""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status=200, body=None, raw=None, error=None):
        self.routes[(method, path)] = (status, body, raw, error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body, raw, error = self.routes.get(
            (request.method, request.url.path), (404, {"error": "no route"}, None, None)
        )
        if error is not None:
            raise error
        if raw is not None:
            return httpx.Response(status, content=raw)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def sent_json(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
def gateway():
    return Gateway()


@pytest.fixture
async def http(gateway):
    client = ServiceHttpClient(
        base_url=BASE_URL,
        client=httpx.AsyncClient(transport=httpx.MockTransport(gateway.handler), base_url=BASE_URL)
    )
    yield client
    await client.aclose()


class TestServiceHttpClient:
    @pytest.mark.asyncio
    async def test_server_error_keeps_status_code(self, http, gateway):
        gateway.on("GET", "/zipFolder", status=500, body={"error": "boom"})

        with pytest.raises(UpstreamServiceError) as exc:
            await http.request_json("packaging", "GET", "/zipFolder")

        assert exc.value.status_code == 500
        assert exc.value.details["service"] == "packaging"

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_failure(self, http, gateway):
        gateway.on("POST", "/buildrun", error=httpx.ReadTimeout("slow"))

        with pytest.raises(UpstreamServiceError) as exc:
            await http.request_json("build", "POST", "/buildrun", json={})

        assert "timed out" in exc.value.message

    @pytest.mark.asyncio
    async def test_non_json_body(self, http, gateway):
        gateway.on("GET", "/zipFolder", raw=b"<html>oops</html>")

        with pytest.raises(UpstreamServiceError):
            await http.request_json("packaging", "GET", "/zipFolder")

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self, http, gateway):
        gateway.on("DELETE", "/api/projects/1", status=204)

        assert await http.request_json("project-store", "DELETE", "/api/projects/1") is None


class TestHttpProjectStore:
    @pytest.mark.asyncio
    async def test_get_maps_camel_case_record(self, http, gateway):
        gateway.on("GET", "/api/projects/42", body={
            "id": 42, "name": "Todo", "deploymentUrl": "https://preview.example/42",
            "status": "ready", "userId": 7
        })

        project = await HttpProjectStore(http).get(42)

        assert project.deployment_url == "https://preview.example/42"
        assert project.status == ProjectStatus.READY
        assert project.is_deployed

    @pytest.mark.asyncio
    async def test_missing_project(self, http, gateway):
        with pytest.raises(ProjectNotFoundError) as exc:
            await HttpProjectStore(http).get(404)

        assert exc.value.code == "PROJECT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_sends_only_set_fields(self, http, gateway):
        gateway.on("PUT", "/api/projects/42", body={"id": 42, "status": "ready"})

        await HttpProjectStore(http).update(
            42, ProjectUpdate(deployment_url="https://preview.example/42", status=ProjectStatus.READY)
        )

        assert gateway.sent_json() == {"deploymentUrl": "https://preview.example/42", "status": "ready"}

    @pytest.mark.asyncio
    async def test_update_with_empty_ack_refetches(self, http, gateway):
        gateway.on("PUT", "/api/projects/42", status=204)
        gateway.on("GET", "/api/projects/42", body={"id": 42, "status": "building"})

        project = await HttpProjectStore(http).update(42, ProjectUpdate(status=ProjectStatus.BUILDING))

        assert project.status == ProjectStatus.BUILDING
        assert [r.method for r in gateway.requests] == ["PUT", "GET"]

    @pytest.mark.asyncio
    async def test_create_and_list(self, http, gateway):
        gateway.on("POST", "/api/projects", body={"id": 101, "name": "Project", "userId": 7})
        gateway.on("GET", "/api/projects/user/7", body=[{"id": 101}, {"id": 102}])
        store = HttpProjectStore(http)

        created = await store.create(ProjectCreate(user_id=7, name="Project", description="todo"))
        projects = await store.list_by_owner(7)

        assert created.id == 101
        assert gateway.sent_json(0)["userId"] == 7
        assert [p.id for p in projects] == [101, 102]

    @pytest.mark.asyncio
    async def test_server_error_is_not_not_found(self, http, gateway):
        gateway.on("GET", "/api/projects/42", status=500, body={})

        with pytest.raises(UpstreamServiceError) as exc:
            await HttpProjectStore(http).get(42)

        assert not isinstance(exc.value, ProjectNotFoundError)


class TestHttpGenerationService:
    @pytest.mark.asyncio
    async def test_generate_returns_text(self, http, gateway):
        gateway.on("POST", "/generateFrontend", body={"content": [{"type": "text", "text": "<structure>"}]})

        text = await HttpGenerationService(http).generate("build a todo app")

        assert text == "<structure>"
        assert gateway.sent_json() == {"prompt": "build a todo app"}

    @pytest.mark.asyncio
    async def test_rewrite_sends_files(self, http, gateway):
        gateway.on("POST", "/modify", body={"content": [{"text": "[]"}]})

        await HttpGenerationService(http).rewrite_files([FileArtifact("src/App.jsx", "x")], "make it dark")

        assert gateway.sent_json() == {
            "files": [{"path": "src/App.jsx", "content": "x"}],
            "prompt": "make it dark"
        }

    @pytest.mark.asyncio
    async def test_body_without_text(self, http, gateway):
        gateway.on("POST", "/generateChanges", body={"content": []})

        with pytest.raises(UpstreamServiceError):
            await HttpGenerationService(http).analyze_change("add a footer")


class TestWorkspaceServices:
    @pytest.mark.asyncio
    async def test_resolve_files(self, http, gateway):
        gateway.on("POST", "/extractFilesToChange", body={
            "files": [{"path": "src/App.jsx", "content": "export default App"}]
        })

        files = await HttpFileSelectionService(http).resolve_files(["src/App.jsx"], "./react-base-temp")

        assert files == [FileArtifact("src/App.jsx", "export default App")]
        sent = gateway.sent_json()
        assert sent["pwd"] == "./react-base-temp"
        assert sent["paths"] == ["src/App.jsx"]

    @pytest.mark.asyncio
    async def test_resolve_files_without_list(self, http, gateway):
        gateway.on("POST", "/extractFilesToChange", body={"ok": True})

        with pytest.raises(UpstreamServiceError):
            await HttpFileSelectionService(http).resolve_files(["src/App.jsx"], ".")

    @pytest.mark.asyncio
    async def test_write_reports_failed_paths(self, http, gateway):
        gateway.on("POST", "/write-files", body={"success": False, "written": ["a"], "failed": ["b"]})

        result = await HttpWriteService(http).write_files(
            [FileArtifact("a", "1"), FileArtifact("b", "2")], base_directory="./react-base-temp"
        )

        assert result.is_partial
        assert result.failed == ["b"]
        assert gateway.sent_json()["baseDir"] == "./react-base-temp"

    @pytest.mark.asyncio
    async def test_write_plain_ack(self, http, gateway):
        gateway.on("POST", "/write-files", body={"message": "ok"})

        result = await HttpWriteService(http).write_files([FileArtifact("a", "1")])

        assert not result.is_partial
        assert "baseDir" not in gateway.sent_json()

    @pytest.mark.asyncio
    async def test_package_returns_public_url(self, http, gateway):
        gateway.on("GET", "/zipFolder", body={"data": {"publicUrl": "https://archive.example/tree.zip"}})

        assert await HttpPackagingService(http).package_current_tree() == "https://archive.example/tree.zip"

    @pytest.mark.asyncio
    async def test_package_without_url(self, http, gateway):
        gateway.on("GET", "/zipFolder", body={"data": {}})

        with pytest.raises(UpstreamServiceError):
            await HttpPackagingService(http).package_current_tree()


class TestHttpBuildService:
    @pytest.mark.asyncio
    async def test_build_returns_preview_url(self, http, gateway):
        gateway.on("POST", "/buildrun", body={"previewUrl": "https://preview.example/42"})

        url = await HttpBuildService(http).build_and_deploy("https://archive.example/tree.zip")

        assert url == "https://preview.example/42"
        assert gateway.sent_json() == {"zipUrl": "https://archive.example/tree.zip"}

    @pytest.mark.asyncio
    async def test_build_without_preview_url(self, http, gateway):
        gateway.on("POST", "/buildrun", body={"previewUrl": ""})

        with pytest.raises(UpstreamServiceError) as exc:
            await HttpBuildService(http).build_and_deploy("https://archive.example/tree.zip")

        assert exc.value.details["service"] == "build"

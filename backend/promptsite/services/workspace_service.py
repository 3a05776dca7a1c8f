"""
Source tree services: file selection, file writes and packaging.
"""

from typing import Any, List, Optional, Sequence
import json

from promptsite.core.exceptions import UpstreamServiceError
from promptsite.schemas.artifacts import FileArtifact, WriteResult
from promptsite.services.http_base import ServiceHttpClient


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


class HttpFileSelectionService:
    """Reads live file contents from the project working directory"""

    SERVICE = "file-selection"
    PATH = "/extractFilesToChange"

    def __init__(self, http: ServiceHttpClient):
        self.http = http

    async def resolve_files(
        self, paths: Sequence[str], working_directory: str
    ) -> List[FileArtifact]:
        body = await self.http.request_json(
            self.SERVICE, "POST", self.PATH,
            json={
                "pwd": working_directory,
                "paths": list(paths),
                # The endpoint also accepts the analysis JSON it was originally fed
                "analysisResult": json.dumps({"files_to_modify": list(paths)}),
            }
        )
        items = body.get("files") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise UpstreamServiceError(self.SERVICE, "response has no 'files' list")

        files = []
        for item in items:
            if (
                not isinstance(item, dict)
                or not isinstance(item.get("path"), str)
                or not isinstance(item.get("content"), str)
            ):
                raise UpstreamServiceError(self.SERVICE, "file entry without path/content")
            files.append(FileArtifact(path=item["path"], content=item["content"]))
        return files


class HttpWriteService:
    """Persists (path, content) pairs into a source tree"""

    SERVICE = "write"
    PATH = "/write-files"

    def __init__(self, http: ServiceHttpClient):
        self.http = http

    async def write_files(
        self, files: Sequence[FileArtifact], base_directory: Optional[str] = None
    ) -> WriteResult:
        payload = {"files": [f.to_dict() for f in files]}
        if base_directory:
            payload["baseDir"] = base_directory

        body = await self.http.request_json(self.SERVICE, "POST", self.PATH, json=payload)
        if not isinstance(body, dict):
            # Plain 2xx without a report is a full acknowledgement
            return WriteResult(requested=len(files))

        return WriteResult(
            requested=len(files),
            written=_string_list(body.get("written")),
            failed=_string_list(body.get("failed")),
            success=body.get("success", True) is not False
        )


class HttpPackagingService:
    """Zips the current source tree and returns a public archive URL"""

    SERVICE = "packaging"
    PATH = "/zipFolder"

    def __init__(self, http: ServiceHttpClient):
        self.http = http

    async def package_current_tree(self) -> str:
        body = await self.http.request_json(self.SERVICE, "GET", self.PATH)
        data = body.get("data") if isinstance(body, dict) else None
        url = data.get("publicUrl") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise UpstreamServiceError(self.SERVICE, "response has no data.publicUrl")
        return url.strip()

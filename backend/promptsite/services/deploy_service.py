from promptsite.core.exceptions import UpstreamServiceError
from promptsite.services.http_base import ServiceHttpClient


class HttpBuildService:
    """Builds an archived source tree and deploys it to a preview host"""

    SERVICE = "build"
    PATH = "/buildrun"

    def __init__(self, http: ServiceHttpClient):
        self.http = http

    async def build_and_deploy(self, archive_reference: str) -> str:
        body = await self.http.request_json(
            self.SERVICE, "POST", self.PATH, json={"zipUrl": archive_reference}
        )
        url = body.get("previewUrl") if isinstance(body, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise UpstreamServiceError(self.SERVICE, "response has no previewUrl")
        return url.strip()

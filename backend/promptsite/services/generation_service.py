"""
Natural-language code generation backends.

Both backends return raw model text and leave all parsing to the pipelines.
"""

from typing import Any, Optional, Sequence

from promptsite.core.exceptions import UpstreamServiceError
from promptsite.utils.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    GENERATION_SYSTEM_PROMPT,
    REWRITE_SYSTEM_PROMPT,
    render_files_for_prompt,
)
from promptsite.schemas.artifacts import FileArtifact
from promptsite.services.http_base import ServiceHttpClient
from promptsite.utils.claude_client import ClaudeClient
from promptsite.utils.response_parser import extract_message_text


SERVICE = "generation"


class HttpGenerationService:
    """Generation endpoints of the gateway; each answers a Messages-API shaped body"""

    GENERATE_PATH = "/generateFrontend"
    ANALYZE_PATH = "/generateChanges"
    REWRITE_PATH = "/modify"

    def __init__(self, http: ServiceHttpClient):
        self.http = http

    async def _text(self, path: str, payload: dict) -> str:
        body: Any = await self.http.request_json(SERVICE, "POST", path, json=payload)
        try:
            return extract_message_text(body)
        except ValueError as e:
            raise UpstreamServiceError(SERVICE, f"{path}: {e}") from e

    async def generate(self, prompt: str) -> str:
        return await self._text(self.GENERATE_PATH, {"prompt": prompt})

    async def analyze_change(self, prompt: str) -> str:
        return await self._text(self.ANALYZE_PATH, {"prompt": prompt})

    async def rewrite_files(self, files: Sequence[FileArtifact], prompt: str) -> str:
        return await self._text(
            self.REWRITE_PATH,
            {"files": [f.to_dict() for f in files], "prompt": prompt}
        )


class ClaudeGenerationService:
    """Calls Claude directly instead of going through the gateway"""

    def __init__(self, client: Optional[ClaudeClient] = None):
        self.client = client or ClaudeClient()

    async def generate(self, prompt: str) -> str:
        return await self.client.generate(prompt, system_prompt=GENERATION_SYSTEM_PROMPT)

    async def analyze_change(self, prompt: str) -> str:
        return await self.client.generate(
            prompt, system_prompt=ANALYSIS_SYSTEM_PROMPT, temperature=0.0
        )

    async def rewrite_files(self, files: Sequence[FileArtifact], prompt: str) -> str:
        return await self.client.generate(
            render_files_for_prompt(files, prompt),
            system_prompt=REWRITE_SYSTEM_PROMPT
        )

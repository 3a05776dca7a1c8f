"""
Wires the stage clients a session needs from settings.
"""

from dataclasses import dataclass
from typing import Optional

from promptsite.core.config import Settings, settings as default_settings
from promptsite.core.logging_config import logger
from promptsite.services.deploy_service import HttpBuildService
from promptsite.services.generation_service import ClaudeGenerationService, HttpGenerationService
from promptsite.services.http_base import ServiceHttpClient
from promptsite.services.interfaces import (
    BuildService,
    FileSelectionService,
    GenerationService,
    PackagingService,
    ProjectStore,
    WriteService,
)
from promptsite.services.project_store import HttpProjectStore
from promptsite.services.workspace_service import (
    HttpFileSelectionService,
    HttpPackagingService,
    HttpWriteService,
)


@dataclass
class StageServices:
    """Every collaborator the pipelines call"""
    store: ProjectStore
    generation: GenerationService
    file_selection: FileSelectionService
    writer: WriteService
    packaging: PackagingService
    builder: BuildService
    http: Optional[ServiceHttpClient] = None

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()


def build_stage_services(
    config: Optional[Settings] = None,
    http: Optional[ServiceHttpClient] = None
) -> StageServices:
    """Build gateway clients, swapping in Claude for generation when configured"""
    config = config or default_settings
    http = http or ServiceHttpClient(
        base_url=config.SERVICE_BASE_URL,
        request_timeout=config.SERVICE_REQUEST_TIMEOUT,
        connect_timeout=config.SERVICE_CONNECT_TIMEOUT
    )

    if config.uses_claude_backend():
        generation: GenerationService = ClaudeGenerationService()
    else:
        generation = HttpGenerationService(http)

    logger.info(
        f"Stage services ready: gateway={config.SERVICE_BASE_URL}, "
        f"generation={config.GENERATION_BACKEND}"
    )

    return StageServices(
        store=HttpProjectStore(http),
        generation=generation,
        file_selection=HttpFileSelectionService(http),
        writer=HttpWriteService(http),
        packaging=HttpPackagingService(http),
        builder=HttpBuildService(http),
        http=http
    )

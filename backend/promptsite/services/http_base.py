"""
Shared HTTP transport for the stage service gateway.

Every stage client talks JSON to the same gateway. This wrapper owns the
httpx.AsyncClient, applies timeouts, and turns every transport problem into an
UpstreamServiceError so the pipelines only ever see the orchestrator taxonomy.
"""

from typing import Any, Optional
import time

import httpx

from promptsite.core.config import settings
from promptsite.core.exceptions import UpstreamServiceError
from promptsite.core.logging_config import logger


class ServiceHttpClient:
    """Thin JSON client around httpx.AsyncClient"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None
    ):
        self.base_url = (base_url or settings.SERVICE_BASE_URL).rstrip("/")
        if client is None:
            read = float(request_timeout or settings.SERVICE_REQUEST_TIMEOUT)
            client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(
                    connect=float(connect_timeout or settings.SERVICE_CONNECT_TIMEOUT),
                    read=read,
                    write=read,
                    pool=read
                )
            )
        self._client = client

    async def request_json(
        self,
        service: str,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict] = None
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Args:
            service: Logical service name used in logs and errors
            method: HTTP method
            path: Path relative to the gateway base URL
            json: Optional JSON body
            params: Optional query parameters

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            UpstreamServiceError: transport failure, timeout, non-2xx status
                or an undecodable body. The original status code is kept on
                the error so callers can map 404s.
        """
        started = time.perf_counter()
        status_code = None
        try:
            response = await self._client.request(method, path, json=json, params=params)
            status_code = response.status_code
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamServiceError(service, f"request timed out ({type(e).__name__})") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(
                service,
                f"{method} {path} returned HTTP {e.response.status_code}",
                status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise UpstreamServiceError(service, f"request failed: {e}") from e
        finally:
            logger.log_service_call(
                service, method, path, status_code,
                (time.perf_counter() - started) * 1000
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamServiceError(
                service, f"{method} {path} returned a non-JSON body", status_code=status_code
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ServiceHttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

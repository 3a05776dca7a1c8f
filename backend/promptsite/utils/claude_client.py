from anthropic import AsyncAnthropic, APIStatusError, APIError, APIConnectionError, APITimeoutError
from typing import Optional
import asyncio
import random
import httpx

from promptsite.core.config import settings
from promptsite.core.exceptions import UpstreamServiceError
from promptsite.core.logging_config import logger

RETRYABLE_ERRORS = ['overloaded_error', 'rate_limit_error', 'api_error']
RETRYABLE_STATUS = [429, 500, 502, 503, 529]


class ClaudeClient:
    """Claude API client wrapper with retry and exponential backoff"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: Optional[int] = None,
        client: Optional[AsyncAnthropic] = None
    ):
        self.model = model or settings.CLAUDE_MODEL
        self.max_retries = settings.CLAUDE_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = settings.CLAUDE_RETRY_BASE_DELAY
        self.max_delay = settings.CLAUDE_RETRY_MAX_DELAY

        if client is None:
            api_key = api_key or settings.ANTHROPIC_API_KEY
            if not api_key:
                raise ValueError("Anthropic API key not provided. Set ANTHROPIC_API_KEY env var.")

            client_kwargs = {"api_key": api_key}
            if settings.ANTHROPIC_BASE_URL and settings.ANTHROPIC_BASE_URL.strip():
                client_kwargs["base_url"] = settings.ANTHROPIC_BASE_URL.strip()
                logger.info(f"Using custom Claude API base URL: {settings.ANTHROPIC_BASE_URL}")

            timeout = float(settings.SERVICE_REQUEST_TIMEOUT)
            client_kwargs["timeout"] = httpx.Timeout(
                connect=float(settings.SERVICE_CONNECT_TIMEOUT),
                read=timeout,
                write=timeout,
                pool=timeout
            )
            # Retries are handled here so they show up in our logs
            client_kwargs["max_retries"] = 0
            client = AsyncAnthropic(**client_kwargs)

        self.async_client = client

    def _is_retryable_error(self, error: Exception) -> bool:
        """Check if an error is retryable (overload, rate limit, network issues)"""
        if isinstance(error, (APIConnectionError, APITimeoutError)):
            return True

        if isinstance(error, (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)):
            return True

        if isinstance(error, APIStatusError):
            if isinstance(error.body, dict):
                error_type = error.body.get('error', {}).get('type', '')
                if error_type in RETRYABLE_ERRORS:
                    return True
            return error.status_code in RETRYABLE_STATUS

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay with exponential backoff and jitter"""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        jitter = delay * random.uniform(0, 0.25)
        return delay + jitter

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None
    ) -> str:
        """
        Generate a non-streaming response and return its text

        Raises:
            UpstreamServiceError: non-retryable API error, or retries exhausted
        """
        if max_tokens is None:
            max_tokens = settings.CLAUDE_MAX_TOKENS
        if temperature is None:
            temperature = settings.CLAUDE_TEMPERATURE

        logger.info(f"Claude API: model={self.model}, max_tokens={max_tokens}, prompt_len={len(prompt)}")

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.async_client.messages.create(
                    model=self.model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system_prompt or "",
                    messages=[{"role": "user", "content": prompt}]
                )
                text = "".join(
                    block.text for block in response.content
                    if getattr(block, "type", None) == "text"
                )
                logger.info(
                    f"Claude API response: id={response.id}, "
                    f"tokens={response.usage.input_tokens + response.usage.output_tokens}, "
                    f"stop={response.stop_reason}"
                )
                return text

            except (APIError, httpx.HTTPError) as e:
                error_type = type(e).__name__
                if self._is_retryable_error(e) and attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.warning(
                        f"Claude API error [{error_type}] (attempt {attempt + 1}/{self.max_retries + 1}), "
                        f"retrying in {delay:.1f}s...",
                        extra={
                            "event_type": "claude_api_retry",
                            "error_type": error_type,
                            "attempt": attempt + 1,
                            "retry_delay": delay
                        }
                    )
                    await asyncio.sleep(delay)
                    continue

                status_code = getattr(e, "status_code", None)
                raise UpstreamServiceError(
                    "claude", f"{error_type}: {e}", status_code=status_code
                ) from e

        raise UpstreamServiceError("claude", "max retries exceeded")

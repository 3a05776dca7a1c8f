from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from pathlib import Path


GENERATION_BACKENDS = ("http", "claude")


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "PromptSite"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # ==========================================
    # Stage services gateway
    # ==========================================
    SERVICE_BASE_URL: str = "http://localhost:3000"
    SERVICE_REQUEST_TIMEOUT: int = 300  # generation calls can take minutes
    SERVICE_CONNECT_TIMEOUT: int = 30  # seconds

    # Live source tree the modification pipeline reads from and writes to
    PROJECT_WORKING_DIRECTORY: str = "./react-base-temp"
    DEFAULT_PROJECT_TYPE: str = "frontend"

    # ==========================================
    # Pipeline behaviour
    # ==========================================
    # When False a failed write-back of {deploymentUrl, status} is reported
    # on the event bus and the run still succeeds with its preview URL.
    RECORDING_FAILURE_FATAL: bool = False

    # ==========================================
    # Generation backend
    # ==========================================
    GENERATION_BACKEND: str = "http"  # http | claude
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = ""  # Empty means use default Anthropic URL
    CLAUDE_MODEL: str = "claude-sonnet-4-20250514"
    CLAUDE_MAX_TOKENS: int = 16000
    CLAUDE_TEMPERATURE: float = 0.2
    CLAUDE_MAX_RETRIES: int = 3
    CLAUDE_RETRY_BASE_DELAY: float = 2.0  # seconds
    CLAUDE_RETRY_MAX_DELAY: float = 30.0  # seconds

    @field_validator("SERVICE_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("GENERATION_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in GENERATION_BACKENDS:
            raise ValueError(
                f"GENERATION_BACKEND must be one of {', '.join(GENERATION_BACKENDS)}"
            )
        return v

    @property
    def working_directory(self) -> Path:
        return Path(self.PROJECT_WORKING_DIRECTORY).expanduser()

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def uses_claude_backend(self) -> bool:
        """Check whether generation calls go straight to the Anthropic API"""
        return self.GENERATION_BACKEND == "claude"

    class Config:
        env_file = ".env"
        extra = "ignore"


# Create settings instance
settings = Settings()

"""
PromptSite - Centralized Logging Configuration
Supports both development (plain text) and production (JSON structured) logging
"""

import logging
import sys
import json
import traceback
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from promptsite.core.config import settings


# Context variables for run tracing
run_id_var: ContextVar[str] = ContextVar('run_id', default='')
project_id_var: ContextVar[str] = ContextVar('project_id', default='')


def get_run_id() -> str:
    """Get current pipeline run ID from context"""
    return run_id_var.get() or ''


def set_run_id(run_id: str) -> None:
    """Set pipeline run ID in context"""
    run_id_var.set(run_id)


def get_project_id() -> str:
    """Get current project ID from context"""
    return project_id_var.get() or ''


def set_project_id(project_id: str) -> None:
    """Set project ID in context"""
    project_id_var.set(project_id)


_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'run_id', 'project_id'
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging in production
    Outputs logs in a format easily parsed by log aggregation tools
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        run_id = get_run_id()
        if run_id:
            log_data["run_id"] = run_id

        project_id = get_project_id()
        if project_id:
            log_data["project_id"] = project_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        # Extra fields passed via logger.x(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """
    Formatter that includes context variables (run_id, project_id)
    Used for development with readable output
    """

    def format(self, record: logging.LogRecord) -> str:
        record.run_id = get_run_id() or '-'
        record.project_id = get_project_id() or '-'
        return super().format(record)


class PromptSiteLogger(logging.Logger):
    """
    Custom logger with convenience methods for structured logging
    """

    def log_stage_event(self, stage: str, event: str, duration_ms: Optional[float] = None,
                        **kwargs) -> None:
        """Log a pipeline stage transition"""
        self.info(
            f"Stage {stage}: {event}" +
            (f" ({duration_ms:.0f}ms)" if duration_ms is not None else ""),
            extra={
                "event_type": "pipeline_stage",
                "stage": stage,
                "stage_event": event,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_service_call(self, service: str, method: str, path: str,
                         status_code: Optional[int], duration_ms: float, **kwargs) -> None:
        """Log an outbound stage service request"""
        self.debug(
            f"{service} {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={
                "event_type": "service_call",
                "service": service,
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        """Log error with full context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def setup_logging() -> PromptSiteLogger:
    """Setup logging configuration based on environment"""

    logging.setLoggerClass(PromptSiteLogger)

    logger = logging.getLogger("promptsite")
    logger.__class__ = PromptSiteLogger  # Ensure it's our custom class
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logger.handlers.clear()

    is_production = settings.is_production()

    if is_production:
        json_formatter = JSONFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(json_formatter)
        logger.addHandler(console_handler)

        if settings.LOG_FILE:
            log_file = Path(settings.LOG_FILE)
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(json_formatter)
            logger.addHandler(file_handler)

    else:
        detailed_format = (
            "%(asctime)s | %(levelname)-8s | "
            "[%(run_id)s] [%(project_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )
        simple_format = "%(levelname)-8s | %(message)s"

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.WARNING)
        console_handler.setFormatter(ContextualFormatter(simple_format))
        logger.addHandler(console_handler)

        if settings.LOG_FILE:
            log_file = Path(settings.LOG_FILE)
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10485760,  # 10MB
                backupCount=5
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(ContextualFormatter(detailed_format))
            logger.addHandler(file_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)

    logger.debug(
        "Logging initialized",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
            "json_logging": is_production
        }
    )

    return logger


# Create logger instance
logger: PromptSiteLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_run_id',
    'set_run_id',
    'get_project_id',
    'set_project_id',
    'PromptSiteLogger',
]

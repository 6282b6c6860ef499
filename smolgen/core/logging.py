"""
Smolgen Logging Configuration
Structured logging setup with file rotation and workflow monitoring
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from .config import get_settings

settings = get_settings()


def setup_logging() -> logging.Logger:
    """Set up structured logging for Smolgen"""

    # Create logs directory
    log_dir = Path(settings.LOG_FILE_PATH).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        format=settings.LOG_FORMAT,
        handlers=[]  # Will be set below
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)

    if settings.is_development:
        console_formatter = logging.Formatter(
            '\033[92m%(asctime)s\033[0m - '
            '\033[94m%(name)s\033[0m - '
            '\033[%(levelno)s;1m%(levelname)s\033[0m - '
            '%(message)s',
            datefmt='%H:%M:%S'
        )
    else:
        # JSON formatter for production
        console_formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(name)s %(levelname)s %(message)s'
        )

    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # File handler with rotation
    file_handler = logging.handlers.RotatingFileHandler(
        settings.LOG_FILE_PATH,
        maxBytes=settings.LOG_MAX_SIZE,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)

    file_formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(pathname)s %(lineno)d %(funcName)s %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if not settings.is_development
            else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Adjust third-party library log levels
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger("smolgen.workflow").setLevel(logging.INFO)
    logging.getLogger("smolgen.audio").setLevel(logging.DEBUG)
    logging.getLogger("smolgen.providers").setLevel(logging.INFO)

    logger = logging.getLogger("smolgen")
    logger.info(f"Logging configured - Level: {settings.LOG_LEVEL}")

    return logger


class WorkflowLogger:
    """Specialized logger for generation workflow runs and steps"""

    def __init__(self):
        self.logger = structlog.get_logger("smolgen.workflow")

    def log_run_start(self, run_id: str, **kwargs: Any) -> None:
        """Log start of a workflow run"""
        self.logger.info("Workflow run started", run_id=run_id, **kwargs)

    def log_run_complete(self, run_id: str, duration_ms: float, **kwargs: Any) -> None:
        """Log completion of a workflow run"""
        self.logger.info(
            "Workflow run completed",
            run_id=run_id,
            duration_ms=duration_ms,
            **kwargs
        )

    def log_run_error(self, run_id: str, error: str, **kwargs: Any) -> None:
        """Log a workflow run that did not complete"""
        self.logger.error("Workflow run failed", run_id=run_id, error=error, **kwargs)

    def log_step_start(self, step: str, attempt: int, **kwargs: Any) -> None:
        """Log start of a workflow step attempt"""
        self.logger.debug("Workflow step started", step=step, attempt=attempt, **kwargs)

    def log_step_complete(self, step: str, duration_ms: float, attempts: int, **kwargs: Any) -> None:
        """Log completion of a workflow step"""
        self.logger.info(
            "Workflow step completed",
            step=step,
            duration_ms=duration_ms,
            attempts=attempts,
            **kwargs
        )

    def log_step_retry(self, step: str, attempt: int, error: str, delay_s: float) -> None:
        """Log a failed step attempt that will be retried"""
        self.logger.warning(
            "Workflow step attempt failed, retrying",
            step=step,
            attempt=attempt,
            error=error,
            delay_s=delay_s
        )

    def log_step_error(self, step: str, error: str, attempts: int, retryable: bool = True) -> None:
        """Log a step that gave up"""
        self.logger.error(
            "Workflow step failed",
            step=step,
            error=error,
            attempts=attempts,
            retryable=retryable
        )

    def log_step_skipped(self, step: str, reason: str) -> None:
        """Log a step whose output was already known"""
        self.logger.info("Workflow step skipped", step=step, reason=reason)

    def log_sleep(self, name: str, seconds: float) -> None:
        """Log an explicit workflow sleep"""
        self.logger.info("Workflow sleeping", name=name, seconds=seconds)


class AudioLogger:
    """Specialized logger for fingerprinting and swap detection"""

    def __init__(self):
        self.logger = structlog.get_logger("smolgen.audio")

    def log_fingerprint(self, audio_url: str, byte_length: int, **kwargs: Any) -> None:
        """Log a captured fingerprint"""
        self.logger.debug(
            "Audio fingerprint captured",
            audio_url=audio_url,
            byte_length=byte_length,
            **kwargs
        )

    def log_fingerprint_warning(self, message: str, **kwargs: Any) -> None:
        """Log a recoverable fingerprinting problem"""
        self.logger.warning(message, **kwargs)

    def log_url_change(self, music_id: str, previous_url: str = None, audio_url: str = None) -> None:
        """Log an audio URL that appeared or changed between polls"""
        self.logger.info(
            "Audio URL changed" if previous_url else "Audio URL appeared",
            music_id=music_id,
            previous_url=previous_url,
            audio_url=audio_url
        )

    def log_swap(self, method: str, original_id: str, candidate_id: str, **kwargs: Any) -> None:
        """Log a detected song swap"""
        self.logger.warning(
            "Song swap detected",
            method=method,
            original_id=original_id,
            candidate_id=candidate_id,
            **kwargs
        )

    def log_match_summary(self, swapped: bool, matched: int, total: int) -> None:
        """Log the outcome of fingerprint matching"""
        self.logger.info(
            "Fingerprint matching finished",
            swapped=swapped,
            matched=matched,
            total=total
        )


class ProviderLogger:
    """Specialized logger for calls to external generation providers"""

    def __init__(self):
        self.logger = structlog.get_logger("smolgen.providers")

    def log_request_start(self, provider: str, operation: str, **kwargs: Any) -> None:
        """Log an outgoing provider request"""
        self.logger.info(
            "Provider request started",
            provider=provider,
            operation=operation,
            **kwargs
        )

    def log_request_complete(self, provider: str, operation: str, duration_ms: float, **kwargs: Any) -> None:
        """Log a successful provider request"""
        self.logger.info(
            "Provider request completed",
            provider=provider,
            operation=operation,
            duration_ms=duration_ms,
            **kwargs
        )

    def log_request_error(self, provider: str, operation: str, error: str, **kwargs: Any) -> None:
        """Log a failed provider request"""
        self.logger.error(
            "Provider request failed",
            provider=provider,
            operation=operation,
            error=error,
            **kwargs
        )


# Create global logger instances
workflow_logger = WorkflowLogger()
audio_logger = AudioLogger()
provider_logger = ProviderLogger()

# Export for convenience
__all__ = [
    "setup_logging",
    "WorkflowLogger",
    "AudioLogger",
    "ProviderLogger",
    "workflow_logger",
    "audio_logger",
    "provider_logger"
]

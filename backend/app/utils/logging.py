"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- user_id
- event_id
- duration_ms

Usage:
    from app.utils.logging import configure_logging, log_generation_completed

    configure_logging('imagestudio-api', 'INFO')
    log_generation_completed(logger, user_id='456', kind='text_to_image', duration_ms=812.4)
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Console handler (container logs)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    event_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional user ID
        event_id: Optional generation event ID
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if event_id:
        extra["event_id"] = event_id
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Generation and quota events

def log_generation_completed(
    logger: logging.Logger,
    user_id: str,
    kind: str,
    event_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    current_count: Optional[int] = None,
    limit: Optional[int] = None,
    **kwargs
):
    """
    Log a delivered generation.

    Args:
        logger: Logger instance
        user_id: User ID (required)
        kind: Generation kind (required)
        event_id: Recorded GenerationEvent ID, None if recording failed
        duration_ms: Optional end-to-end duration
        current_count: Count in today's window after recording
        limit: Daily limit
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="generation_completed",
        user_id=user_id,
        event_id=event_id,
        duration_ms=duration_ms,
        kind=kind,
        **kwargs
    )
    if current_count is not None:
        extra["current_count"] = current_count
    if limit is not None:
        extra["limit"] = limit

    logger.info(f"Generation completed: {kind} for user {user_id}", extra=extra)


def log_quota_exceeded(
    logger: logging.Logger,
    user_id: str,
    current_count: int,
    limit: int,
    stage: str = "check",
    **kwargs
):
    """
    Log a request turned away by the daily limit.

    Args:
        logger: Logger instance
        user_id: User ID (required)
        current_count: Events in today's window
        limit: Daily limit
        stage: "check" (before upstream) or "record" (lost an admission race)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="quota_exceeded",
        user_id=user_id,
        current_count=current_count,
        limit=limit,
        stage=stage,
        **kwargs
    )
    logger.info(f"Daily limit reached for user {user_id}: {current_count}/{limit}", extra=extra)


def log_quota_unavailable(
    logger: logging.Logger,
    user_id: str,
    error: str,
    **kwargs
):
    """Log a quota check that could not be completed (request denied)."""
    extra = _build_log_extra(
        event="quota_unavailable",
        user_id=user_id,
        error=str(error),
        **kwargs
    )
    logger.error(f"Quota check unavailable for user {user_id} - {error}", extra=extra)


def log_quota_record_failed(
    logger: logging.Logger,
    user_id: str,
    kind: str,
    error: str,
    include_traceback: bool = True,
    **kwargs
):
    """
    Log a generation that was delivered but could not be recorded.
    These undercount the user's quota and must be monitored.

    Args:
        logger: Logger instance
        user_id: User ID (required)
        kind: Generation kind (required)
        error: Error message (required)
        include_traceback: Whether to include stack trace
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="quota_record_failed",
        user_id=user_id,
        kind=kind,
        error=str(error),
        **kwargs
    )
    message = f"Quota record failed for user {user_id} ({kind}) - {error}"

    if include_traceback:
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            logger.error(message, extra=extra, exc_info=exc_info)
            return
    logger.error(message, extra=extra)


# Provider event functions

def log_provider_request(
    logger: logging.Logger,
    provider: str,
    operation: str,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log an upstream provider request.

    Args:
        logger: Logger instance
        provider: Provider name (required)
        operation: Operation name (required)
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="provider_request",
        duration_ms=duration_ms,
        provider=provider,
        operation=operation,
        **kwargs
    )

    logger.info(f"Provider request: {provider}.{operation}", extra=extra)


def log_provider_failure(
    logger: logging.Logger,
    provider: str,
    operation: str,
    error: str,
    duration_ms: Optional[float] = None,
    status_code: Optional[int] = None,
    **kwargs
):
    """
    Log an upstream provider failure.

    Args:
        logger: Logger instance
        provider: Provider name (required)
        operation: Operation name (required)
        error: Error message (required)
        duration_ms: Optional duration in milliseconds
        status_code: Upstream HTTP status, if any
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="provider_failure",
        duration_ms=duration_ms,
        provider=provider,
        operation=operation,
        error=str(error),
        **kwargs
    )
    if status_code is not None:
        extra["status_code"] = status_code

    logger.error(f"Provider failure: {provider}.{operation} - {error}", extra=extra)


def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)

"""
Structured logging configuration for the Origin mint backend.

Provides JSON-formatted logging with correlation IDs and security-focused logging.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from origin_backend.core.config import settings
from origin_backend.core.security import mask_sensitive_data, sanitize_log_data

# Context variable for correlation ID (used across request lifecycle)
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

CORRELATION_HEADER = "X-Request-ID"

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'exc_info', 'exc_text', 'stack_info',
    'message', 'asctime',
}


class RedactingFilter(logging.Filter):
    """
    Masks private keys, JWTs and bearer tokens in log messages.

    Applied on handlers so records from third-party loggers are covered too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        # Format first: a label in msg and its secret in args only match together
        message = record.getMessage()
        sanitized = sanitize_log_data(message, max_length=10_000)
        if sanitized != message:
            record.msg = sanitized
            record.args = None
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging with security context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if self._is_sensitive_field(key):
                extra_fields[key] = "[REDACTED]"
            else:
                extra_fields[key] = value

        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=self._json_default)

    def _is_sensitive_field(self, key: str) -> bool:
        """Check if field contains sensitive data"""
        sensitive_keywords = {
            'password', 'secret', 'private', 'token', 'jwt', 'credential',
            'authorization', 'signed', 'api_key'
        }

        key_lower = key.lower()
        return any(keyword in key_lower for keyword in sensitive_keywords)

    def _json_default(self, obj: Any) -> str:
        """JSON serializer for objects not serializable by default"""
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
    """

    # Clear any existing handlers
    logging.root.handlers.clear()

    if enable_json:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    redacting_filter = RedactingFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redacting_filter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.addHandler(console_handler)

    # Reduce noise from external libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def get_correlation_id() -> str:
    """
    Get or create a correlation ID for request tracking.

    Returns:
        str: Correlation ID for current context
    """
    correlation_id = correlation_id_ctx.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    """
    Set correlation ID for current context.

    Args:
        correlation_id: Correlation ID to set
    """
    correlation_id_ctx.set(correlation_id)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID to each request and echoes it back."""

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(CORRELATION_HEADER)
        correlation_id = incoming[:64] if incoming else str(uuid.uuid4())
        token = correlation_id_ctx.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def get_security_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for security events.

    Args:
        name: Logger name

    Returns:
        Logger instance configured for security logging
    """
    return logging.getLogger(f"security.{name}")


def log_security_event(
    event_type: str,
    message: str,
    ip_address: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a security event with structured data.

    Args:
        event_type: Type of security event (auth, access, error, etc.)
        message: Human-readable message
        ip_address: Optional IP address
        extra_data: Additional structured data; secret-looking keys are masked
        level: Logging level for the event
    """
    logger = get_security_logger("events")

    security_data: Dict[str, Any] = {
        "event_type": event_type,
        "correlation_id": get_correlation_id(),
    }

    if ip_address:
        security_data["ip_address"] = ip_address
    if extra_data:
        security_data.update(mask_sensitive_data(extra_data))

    logger.log(level, message, extra=security_data)


def init_application_logging() -> None:
    """Initialize logging for the FastAPI application"""

    is_dev = settings.dev_mode
    log_level = "DEBUG" if is_dev else settings.log_level
    enable_json = settings.use_json_logs

    setup_logging(
        log_level=log_level,
        enable_json=enable_json,
    )

    logger = logging.getLogger("origin_backend.startup")
    logger.info(
        "Structured logging initialized",
        extra={
            "dev_mode": is_dev,
            "json_logging": enable_json,
            "log_level": log_level,
        }
    )

"""
Centralized structured logging for blog-auth.

Provides:
- setup_logging(): configure structlog + stdlib once at startup
- get_logger(): get a configured logger instance
- hash_ip(): hash IP addresses for privacy in production

Production renders JSON; development renders a colored console. Sensitive
fields (passwords, tokens, secrets, OTP codes) are redacted before rendering.
"""

from __future__ import annotations

import hashlib
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import EventDict, Processor

# Sensitive fields to redact from logs
REDACTED_FIELDS = {
    "password",
    "password_hash",
    "new_password",
    "current_password",
    "token",
    "otp",
    "code",
    "authorization",
    "cookie",
    "secret",
    "key",
}

_SENSITIVE_FRAGMENTS = ("password", "token", "secret", "otp_code")
_PRESERVED_KEYS = {"level", "event", "timestamp", "logger", "otp_type"}

# Updated by setup_logging(); read by hash_ip()
_hash_ips = False


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to event dict."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact sensitive fields from logs."""
    for key in list(event_dict.keys()):
        if key in _PRESERVED_KEYS:
            continue
        lowered = key.lower()
        if lowered in REDACTED_FIELDS or any(
            fragment in lowered for fragment in _SENSITIVE_FRAGMENTS
        ):
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_structlog(log_format: str = "console") -> None:
    """
    Configure structlog with appropriate processors for the environment.

    json: one JSON object per line for log shipping
    console: pretty console formatting with colors
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            pad_event=15,
            sort_keys=False,
        )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_stdlib_logging(log_level: str = "INFO") -> None:
    """Route stdlib logging to stdout and quiet noisy third-party loggers."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for noisy in ("httpx", "httpcore", "pymongo", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def setup_logging(
    log_level: str = "INFO", log_format: str = "console", env: str = "development"
) -> None:
    """
    Initialize the logging system for the application.

    Should be called once, early in application startup (create_app()).
    """
    global _hash_ips
    _hash_ips = env == "production"

    configure_stdlib_logging(log_level)
    configure_structlog(log_format)

    get_logger(__name__).info(
        "logging_initialized", env=env, log_level=log_level, log_format=log_format
    )


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("login_success", user_id="123", auth_method="local")
    """
    return structlog.get_logger(name)


def hash_ip(ip_address: Optional[str]) -> Optional[str]:
    """
    Hash an IP address for privacy in production.

    In production: returns the first 16 hex chars of its SHA-256.
    Elsewhere: returns the original IP for easier debugging.
    """
    if ip_address is None:
        return None
    if _hash_ips and ip_address:
        return hashlib.sha256(ip_address.encode()).hexdigest()[:16]
    return ip_address


__all__ = [
    "configure_structlog",
    "get_logger",
    "hash_ip",
    "redact_sensitive_fields",
    "setup_logging",
]

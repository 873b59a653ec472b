"""
Structured logging using structlog.
Outputs JSON in production, colored console in development.

Every event carries the service name and version. PageSpeed API keys and
Redis passwords are masked before rendering, since upstream error messages
echo the request URL back.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from seo_ranking.core.config import get_settings

SERVICE_NAME = "seo-readiness"

_LEVEL_TO_SEVERITY = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}

_API_KEY_RE = re.compile(r"([?&]key=)[^&\s]+")
_DSN_PASSWORD_RE = re.compile(r"(://[^:/@\s]*:)([^@\s]+)(@)")

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("asyncio", "httpx", "httpcore")


def mask_secrets(value: str) -> str:
    """Mask `key=` query values and DSN passwords in a string."""
    masked = _API_KEY_RE.sub(r"\1****", value)
    return _DSN_PASSWORD_RE.sub(r"\1****\3", masked)


def redact_secrets(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    for field, value in event_dict.items():
        if isinstance(value, str):
            event_dict[field] = mask_secrets(value)
    return event_dict


def add_severity(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Map structlog levels to GCP/Datadog severity levels."""
    event_dict["severity"] = _LEVEL_TO_SEVERITY.get(method, "INFO")
    return event_dict


def add_service_info(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    settings = get_settings()
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", settings.APP_VERSION)
    event_dict.setdefault("env", settings.ENV)
    return event_dict


def build_processors(log_format: str) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_info,
        add_severity,
    ]

    if log_format == "json":
        return shared + [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            structlog.processors.JSONRenderer(),
        ]
    return shared + [
        redact_secrets,
        structlog.dev.ConsoleRenderer(colors=True),
    ]


def configure_logging() -> None:
    settings = get_settings()
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    structlog.configure(
        processors=build_processors(settings.LOG_FORMAT),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    # The measurement engine logs its own outbound calls
    if settings.ENV == "production":
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

"""Structured logging setup."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

MASK = "***"

SENSITIVE_KEYS = frozenset(
    {
        "token",
        "private_token",
        "password",
        "runners_token",
        "authorization",
    }
)


def mask_sensitive_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask values logged under sensitive keys, including nested mappings."""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS and value is not None:
            event_dict[key] = MASK
        elif isinstance(value, dict):
            event_dict[key] = _mask_mapping(value)
    return event_dict


def _mask_mapping(values: dict[str, Any]) -> dict[str, Any]:
    masked = {}
    for key, value in values.items():
        if isinstance(key, str) and key.lower() in SENSITIVE_KEYS and value is not None:
            masked[key] = MASK
        elif isinstance(value, dict):
            masked[key] = _mask_mapping(value)
        else:
            masked[key] = value
    return masked


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        mask_sensitive_values,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

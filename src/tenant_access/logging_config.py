"""structlog setup for tenant_access.

Production renders one JSON object per line; every other environment
gets the colored console renderer. Logs go to stderr so CLI output on
stdout stays clean. Call ``configure_logging()`` once per process.
"""

import logging
import re
import sys
from collections.abc import Mapping
from typing import Any

import structlog

REDACTED = "***REDACTED***"

# Event keys whose values are never written, at any nesting depth.
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "api_key",
        "secret",
        "secret_hash",
        "password",
        "token",
        "authorization",
    }
)

# bcrypt digests ("$2b$12$...") are masked even under innocuous keys.
_BCRYPT_DIGEST = re.compile(r"\$2[abxy]?\$\d{2}\$[./A-Za-z0-9]{53}")

_QUIET_LOGGERS: Mapping[str, int] = {
    "sqlalchemy.engine": logging.WARNING,
    "alembic": logging.INFO,
}


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _BCRYPT_DIGEST.sub(REDACTED, value)
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in SENSITIVE_KEYS else _scrub(v)
            for k, v in value.items()
        }
    return value


def _redact_sensitive_keys(
    logger: logging.Logger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Mask secrets by key name and bcrypt digests by shape."""
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def _renderer(environment: str) -> structlog.types.Processor:
    if environment == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(
    environment: str = "development",
    log_level: str = "INFO",
) -> None:
    """Route structlog through the stdlib root logger.

    Args:
        environment: Settings environment; 'production' selects JSON.
        log_level: Root level name (DEBUG, INFO, ...). Key validation
            failures are logged at DEBUG.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            _redact_sensitive_keys,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(environment),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(log_level.upper())

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

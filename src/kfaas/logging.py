import logging
from typing import Any, MutableMapping

import structlog

# Event keys whose values must never reach a log sink.
SENSITIVE_KEYS = frozenset(
    {"token", "access_token", "auth_token", "raw_token", "secret_key", "password"}
)
REDACTED = "***"


def redact_secrets(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask service tokens and storage credentials bound to an event."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure structlog/standard logging bridge."""

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_secrets,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")


def bind_service_context(service_name: str, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind the service being provisioned (plus any extra fields) for downstream logs."""

    logger = structlog.get_logger()
    return logger.bind(service=service_name, **kwargs)

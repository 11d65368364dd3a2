"""structlog setup for signflow processes.

Production renders one JSON object per line; every other environment
renders coloured console output. A line looks like::

    {"event": "sign_completed", "level": "info", "timestamp": "...",
     "correlation_id": "...", "service": "SigningCoordinatorService",
     "envelope_id": "..."}

Fields whose name marks them as a credential (``invitation_token``,
``password``, ...) are masked before rendering.
"""

import logging
import os
from collections.abc import MutableMapping
from typing import Any, cast

import structlog
from structlog.typing import Processor

from signflow.application.observability.correlation import correlation_id_processor

LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

REDACTED = "***"
SECRET_FIELDS = frozenset(
    {"invitation_token", "token", "secret", "token_secret", "password", "authorization"}
)


def redact_secrets_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask values of credential-bearing keys.

    Token ids (``token_id``) are not secrets and pass through.
    """
    for key in SECRET_FIELDS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _level_from_env() -> int:
    name = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_structlog(environment: str = "production") -> None:
    """Install the process-wide structlog configuration.

    Call once at startup, before the first logger is bound.

    Args:
        environment: ``"production"`` selects JSON lines; anything else
            selects the console renderer.
    """
    renderer: Processor
    if environment == "production":
        renderer = structlog.processors.JSONRenderer(sort_keys=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            cast(Processor, correlation_id_processor),
            cast(Processor, redact_secrets_processor),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_from_env()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

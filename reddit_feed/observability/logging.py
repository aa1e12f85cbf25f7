"""
Structured logging for the pipeline.

Console output in development, JSON lines in production. Context such as
request_id, user_id or source is bound once with bind_context() and
carried by every later event in the same task. Credential-valued fields
are masked before any renderer sees them.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.types import Processor

from reddit_feed.config.settings import get_settings

# Event keys whose values are credentials
CREDENTIAL_KEYS = frozenset({"access_token", "refresh_token", "token", "authorization"})

QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


def mask_token(token: str | None) -> str:
    """Shorten a credential for log output; never log tokens whole."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


def mask_credentials(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor masking any credential-named field."""
    for key in CREDENTIAL_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and "..." not in value and value not in ("***", "<none>"):
            event_dict[key] = mask_token(value)
    return event_dict


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Override for settings.log_level (e.g. "DEBUG" from the CLI)
    """
    settings = get_settings()
    log_level = level or settings.log_level

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        mask_credentials,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.is_production:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs: Any) -> None:
    """Bind fields (request_id, user_id, source) to all later events."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()

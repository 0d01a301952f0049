"""
structlog setup for lnprocessor.

Every log line is an event name plus key/values. Lines emitted while a
payment is being processed carry that payment's id as ``correlation_id``;
wallet keys, node keys and preimages never reach a renderer.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

# One id per unit of work; the processor binds the payment id here
_correlation_id: ContextVar[str | None] = ContextVar("lnprocessor_correlation_id", default=None)

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "managed_wallet_api_key",
        "node_private_key",
        "protocol_native_node_private_key",
        "preimage",
        "payment_secret",
        "secret",
        "token",
    }
)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation id to the running task.

    Args:
        correlation_id: Id to bind; a random UUID4 when omitted

    Returns:
        The bound id
    """
    value = correlation_id if correlation_id is not None else str(uuid.uuid4())
    _correlation_id.set(value)
    return value


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach the bound correlation id unless the caller passed one explicitly."""
    event_dict.setdefault("correlation_id", _correlation_id.get())
    return event_dict


def filter_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace secret values before rendering."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    from lnprocessor import __version__

    event_dict["app"] = "lnprocessor"
    event_dict["version"] = __version__
    return event_dict


def _renderer(json_logs: bool, dev_mode: bool) -> list[Processor]:
    if json_logs:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    if dev_mode:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    dev_mode: bool = True,
) -> None:
    """
    Install the structlog processor chain and the stdlib root handler.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json_logs: Render one JSON object per line (takes precedence over dev_mode)
        dev_mode: Colored console output; key=value lines when False
    """
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_correlation_id,
        add_app_context,
        filter_sensitive_data,
        *_renderer(json_logs, dev_mode),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Logger bound to ``name``.

    Usage:
        logger = get_logger(__name__)
        logger.info("payment_verified", payment_id="p1", amount_msats=1000)
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))

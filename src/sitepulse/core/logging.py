# src/sitepulse/core/logging.py
"""Diagnostics logging for sitepulse.

Every module logs through ``structlog.get_logger(__name__)``. This module
wires structlog into stdlib logging once per process, so records from
sitepulse, httpx and the host application come out of one handler in one
format (JSON lines or console).

Diagnostics never go to stdout: the console sink writes there. Raw IP
addresses in log fields are replaced by their hash_ip() pseudonym before
rendering.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

from sitepulse.core.enrichment import hash_ip

# Per-request DEBUG chatter from the HTTP stack used by the sinks.
QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")

# Field names whose values are raw IP addresses.
IP_FIELDS: frozenset[str] = frozenset({"ip", "ip_address", "client_ip", "remote_addr"})

_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def pseudonymise_ip_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Replace raw IP values with their one-way pseudonym."""
    for key in IP_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and value:
            event_dict[key] = hash_ip(value)
    return event_dict


def _drop_formatter_keys(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def _resolve_level(level: str) -> int:
    try:
        return _LEVELS[level.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level {level!r}; expected one of {', '.join(_LEVELS)}") from None


def _render_chain(json_output: bool, stream: TextIO) -> list[Any]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=stream.isatty())]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging through a single handler.

    Calling again replaces the previous handler; the CLI reconfigures per
    invocation.

    Args:
        json_output: One JSON object per line instead of console rendering.
        level: DEBUG, INFO, WARNING or ERROR (case-insensitive).
        stream: Destination; defaults to stderr.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    log_level = _resolve_level(level)
    target = stream if stream is not None else sys.stderr

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        pseudonymise_ip_fields,
    ]

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[_drop_formatter_keys, *_render_chain(json_output, target)],
    )
    handler = logging.StreamHandler(target)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound logger for ``name`` (typically ``__name__``)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger

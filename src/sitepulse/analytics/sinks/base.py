# src/sitepulse/analytics/sinks/base.py
"""Shared plumbing for the built-in sinks."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

import httpx
import structlog

from sitepulse.analytics.errors import SinkConfigurationError

if TYPE_CHECKING:
    from sitepulse.analytics.context import PipelineContext

logger = structlog.get_logger(__name__)


class BaseSink:
    """Name, context binding, option validation and failure diagnostics.

    Subclasses set ``_name`` and ``_OPTIONS`` (accepted option keys) and
    read options in _apply_options().
    """

    _name: ClassVar[str]
    _OPTIONS: ClassVar[frozenset[str]] = frozenset()

    def __init__(self) -> None:
        self._context: PipelineContext | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def context(self) -> PipelineContext:
        if self._context is None:
            raise RuntimeError(f"Sink '{self._name}' used before configure()")
        return self._context

    def configure(self, options: Mapping[str, Any], context: PipelineContext) -> None:
        unknown = sorted(set(options) - self._OPTIONS)
        if unknown:
            raise SinkConfigurationError(
                self._name,
                f"Unknown options {unknown}. Accepted options: {sorted(self._OPTIONS)}",
            )
        self._apply_options(options)
        self._context = context
        logger.debug("Sink configured", sink=self._name, options_keys=sorted(options))

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        """Read validated options. Default: nothing to read."""

    def _report_failure(self, operation: str, error: BaseException, **fields: Any) -> None:
        """Log a sink failure outside production; stay silent in production."""
        if self._context is not None and self._context.environment.is_production():
            return
        logger.warning(
            "Analytics sink failed",
            sink=self._name,
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **fields,
        )

    async def aclose(self) -> None:
        """Nothing to release by default."""


def validate_timeout(sink_name: str, value: Any, option: str = "timeout") -> float:
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        raise SinkConfigurationError(sink_name, f"'{option}' must be a positive number, got {value!r}")
    return float(value)


class HttpSink(BaseSink):
    """BaseSink with a lazily created httpx.AsyncClient.

    Accepts a ``timeout`` option (seconds, default 10).
    """

    _OPTIONS: ClassVar[frozenset[str]] = frozenset({"timeout"})

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__()
        self._client = client
        self._timeout = 10.0

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        if "timeout" in options:
            self._timeout = validate_timeout(self._name, options["timeout"])

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except httpx.HTTPError as e:
                self._report_failure("aclose", e)
            self._client = None

# src/sitepulse/analytics/factory.py
"""Factory functions for creating an AnalyticsClient from configuration.

This module is the glue between settings (AnalyticsSettings), the shared
PipelineContext and the runtime AnalyticsClient. It handles:
1. Discovering sink classes via pluggy hooks
2. Instantiating and configuring every discovered sink
3. Creating the AnalyticsClient with the configured sinks

Usage:
    from sitepulse.core.config import load_settings
    from sitepulse.analytics.factory import create_analytics_client

    settings = load_settings(Path("analytics.yaml"))
    client = create_analytics_client(settings)
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pluggy
import structlog

from sitepulse.analytics.client import AnalyticsClient
from sitepulse.analytics.context import PipelineContext
from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.hookspecs import PROJECT_NAME, SitepulseSinkSpec
from sitepulse.analytics.protocols import Trackable
from sitepulse.analytics.sinks import BuiltinSinksPlugin
from sitepulse.core.config import AnalyticsSettings

logger = structlog.get_logger(__name__)


def _resolve_sink_name(sink_class: type[Trackable]) -> str:
    """Resolve a sink name from the class-level ``_name`` or a temporary instance.

    Raises:
        SinkConfigurationError: If the name is missing or not a non-empty string.
    """
    class_name = getattr(sink_class, "__name__", repr(sink_class))
    for klass in getattr(sink_class, "__mro__", ()):
        if "_name" in klass.__dict__:
            hint = klass.__dict__["_name"]
            if type(hint) is str and hint != "":
                return hint
            raise SinkConfigurationError(class_name, f"Sink class attribute _name must be a non-empty string, got {hint!r}")

    try:
        instance = sink_class()
    except Exception as e:
        raise SinkConfigurationError(class_name, f"Failed to instantiate sink class during discovery: {e}") from e
    resolved = instance.name
    if type(resolved) is not str or resolved == "":
        raise SinkConfigurationError(class_name, f"Sink name must be a non-empty string, got {resolved!r}")
    return resolved


def discover_sink_registry(sink_plugins: Iterable[Any] = ()) -> dict[str, type[Trackable]]:
    """Discover sinks via pluggy hooks.

    Registers the built-in sinks plus any additional plugin objects, then
    calls ``sitepulse_get_sinks`` hooks to build the name->class registry.

    Raises:
        SinkConfigurationError: If plugin registration fails, a hook
            misbehaves, or two sinks share a name.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(SitepulseSinkSpec)

    for plugin in [BuiltinSinksPlugin(), *list(sink_plugins)]:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise SinkConfigurationError(
                "sink_plugins",
                f"Invalid sink plugin {type(plugin).__name__}: {e}",
            ) from e

    registry: dict[str, type[Trackable]] = {}
    for hook_impl in plugin_manager.hook.sitepulse_get_sinks.get_hookimpls():
        plugin_name = type(hook_impl.plugin).__name__
        try:
            sink_classes = hook_impl.function()
        except Exception as e:
            raise SinkConfigurationError(
                "sink_plugins",
                f"Sink plugin {plugin_name} failed in sitepulse_get_sinks: {e}",
            ) from e
        if sink_classes is None or isinstance(sink_classes, str | bytes):
            raise SinkConfigurationError(
                "sink_plugins",
                f"sitepulse_get_sinks in plugin {plugin_name} returned {type(sink_classes).__name__}; expected iterable of sink classes",
            )
        try:
            sink_iter = iter(sink_classes)
        except TypeError as e:
            raise SinkConfigurationError(
                "sink_plugins",
                f"sitepulse_get_sinks in plugin {plugin_name} returned {type(sink_classes).__name__}; expected iterable of sink classes",
            ) from e

        for sink_class in sink_iter:
            sink_name = _resolve_sink_name(sink_class)
            if sink_name in registry:
                raise SinkConfigurationError(
                    sink_name,
                    f"Duplicate sink name '{sink_name}' discovered: {registry[sink_name].__name__} and {sink_class.__name__}",
                )
            registry[sink_name] = sink_class

    return registry


def create_analytics_client(
    settings: AnalyticsSettings | None = None,
    *,
    context: PipelineContext | None = None,
    sink_plugins: Iterable[Any] = (),
) -> AnalyticsClient:
    """Create an AnalyticsClient with every discovered sink configured.

    All discovered sinks are instantiated; configuration flags decide per
    call which of them receive events, so enabling a sink later through
    configure() needs no rebuild.

    Args:
        settings: Validated settings; defaults to AnalyticsSettings().
        context: Shared pipeline state; built from settings when omitted.
        sink_plugins: Additional plugin objects providing
            ``sitepulse_get_sinks`` hooks.

    Raises:
        SinkConfigurationError: If discovery fails, settings name an unknown
            sink, or a sink rejects its options.
    """
    settings = settings if settings is not None else AnalyticsSettings()
    context = context if context is not None else PipelineContext.from_settings(settings)

    registry = discover_sink_registry(sink_plugins)
    unknown = sorted(set(settings.sinks) - set(registry))
    if unknown:
        raise SinkConfigurationError(
            unknown[0],
            f"Unknown sink. Available sinks: {sorted(registry)}",
        )

    sinks: list[Trackable] = []
    for name, sink_class in registry.items():
        sink = sink_class()
        sink_settings = settings.sinks.get(name)
        sink.configure(sink_settings.options if sink_settings is not None else {}, context)
        sinks.append(sink)

    logger.debug(
        "Analytics client created",
        sinks=[sink.name for sink in sinks],
        enabled=[sink.name for sink in sinks if context.config.sink_enabled(sink.name)],
    )
    return AnalyticsClient(context, sinks)

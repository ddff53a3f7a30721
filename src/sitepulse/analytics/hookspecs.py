# src/sitepulse/analytics/hookspecs.py
"""pluggy hook specifications for analytics sinks.

Sinks implement these hooks to register themselves with the pipeline. The
factory calls them while building an AnalyticsClient.

Usage (implementing a sink plugin):
    from sitepulse.analytics.hookspecs import hookimpl

    class MySinkPlugin:
        @hookimpl
        def sitepulse_get_sinks(self):
            return [MySink]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from sitepulse.analytics.protocols import Trackable

PROJECT_NAME = "sitepulse"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class SitepulseSinkSpec:
    """Hook specifications for analytics sink plugins."""

    @hookspec
    def sitepulse_get_sinks(self) -> list[type["Trackable"]]:  # type: ignore[empty-body]
        """Return sink classes (not instances) implementing Trackable."""

# src/sitepulse/analytics/trackers.py
"""Convenience wrappers and interaction trackers built on AnalyticsClient.

The wrappers only shape arguments. The trackers add client-side behaviour
for high-frequency interactions:
- MapInteractionTracker debounces hover, zoom and pan independently
- ScrollDepthTracker reports each depth threshold once per page
- PageViewTracker reports page views and time spent on the previous page
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from sitepulse.analytics.client import AnalyticsClient
from sitepulse.contracts.enums import EventName
from sitepulse.core.scheduling import Debouncer

HOVER_DEBOUNCE_SECONDS = 0.5
ZOOM_DEBOUNCE_SECONDS = 0.3
PAN_DEBOUNCE_SECONDS = 0.5
SCROLL_DEBOUNCE_SECONDS = 0.2

SCROLL_THRESHOLDS: tuple[int, ...] = (25, 50, 75, 100)


async def track_map_event(client: AnalyticsClient, event_name: str, properties: Mapping[str, Any] | None = None) -> None:
    await client.track_event(event_name, properties=properties)


async def track_content_event(
    client: AnalyticsClient,
    event_name: str,
    content_id: str,
    properties: Mapping[str, Any] | None = None,
) -> None:
    await client.track_event(event_name, content_id=content_id, properties=properties)


async def track_sponsor_event(
    client: AnalyticsClient,
    event_name: str,
    content_id: str,
    organization_id: str,
    properties: Mapping[str, Any] | None = None,
) -> None:
    await client.track_event(event_name, content_id=content_id, organization_id=organization_id, properties=properties)


async def track_workflow_event(
    client: AnalyticsClient,
    event_name: str,
    workflow_item_id: str,
    properties: Mapping[str, Any] | None = None,
) -> None:
    await client.track_event(event_name, workflow_item_id=workflow_item_id, properties=properties)


async def track_user_event(
    client: AnalyticsClient,
    event_name: str,
    user_id: str,
    properties: Mapping[str, Any] | None = None,
) -> None:
    await client.track_event(event_name, user_id=user_id, properties=properties)


def _without_none(properties: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in properties.items() if value is not None}


class MapInteractionTracker:
    """Map interaction events.

    Load, click, filter, search, list and city events are sent at once.
    Hover, zoom and pan are debounced on independent keys; the debounced
    methods are synchronous and only schedule work.

    A marker hover is reported once per marker until the pointer moves to
    another marker or clear_hover_tracking() is called.
    """

    def __init__(self, client: AnalyticsClient, *, debouncer: Debouncer | None = None) -> None:
        self._client = client
        self._debouncer = debouncer if debouncer is not None else Debouncer(client.context.scheduler)
        self._last_hovered_id: str | None = None

    async def _track(self, event_name: EventName, properties: Mapping[str, Any], content_id: str | None = None) -> None:
        await self._client.track_event(event_name, content_id=content_id, properties=_without_none(properties))

    async def track_map_loaded(self, load_time_ms: float, tile_load_count: int | None = None) -> None:
        await self._track(EventName.MAP_LOADED, {"loadTime": load_time_ms, "tileLoadCount": tile_load_count})

    async def track_map_render(self, render_time_ms: float, tile_load_count: int | None = None) -> None:
        await self._track(EventName.MAP_INITIAL_RENDER, {"renderTime": render_time_ms, "tileLoadCount": tile_load_count})

    async def track_marker_click(self, content_id: str, zoom_level: float | None = None) -> None:
        await self._track(EventName.MAP_MARKER_CLICK, {"mapZoomLevel": zoom_level}, content_id=content_id)

    def track_marker_hover(self, content_id: str, zoom_level: float | None = None) -> None:
        if self._last_hovered_id == content_id:
            return

        async def fire() -> None:
            self._last_hovered_id = content_id
            await self._track(EventName.MAP_MARKER_HOVER, {"mapZoomLevel": zoom_level}, content_id=content_id)

        self._debouncer.schedule("hover", HOVER_DEBOUNCE_SECONDS, fire)

    def clear_hover_tracking(self) -> None:
        self._debouncer.cancel("hover")
        self._last_hovered_id = None

    async def track_filter_toggle(self, filter_type: str, filter_value: str, enabled: bool) -> None:
        await self._track(
            EventName.MAP_FILTER_TOGGLE,
            {"filterType": filter_type, "filterValue": filter_value, "filterEnabled": enabled},
        )

    def track_zoom(self, zoom_level: float, previous_zoom: float | None = None) -> None:
        async def fire() -> None:
            await self._track(EventName.MAP_ZOOM, {"mapZoomLevel": zoom_level, "previousZoomLevel": previous_zoom})

        self._debouncer.schedule("zoom", ZOOM_DEBOUNCE_SECONDS, fire)

    def track_pan(self, south_west: tuple[float, float], north_east: tuple[float, float]) -> None:
        async def fire() -> None:
            await self._track(EventName.MAP_PAN, {"mapBounds": {"sw": list(south_west), "ne": list(north_east)}})

        self._debouncer.schedule("pan", PAN_DEBOUNCE_SECONDS, fire)

    async def track_search(self, query: str, results_count: int) -> None:
        await self._track(EventName.MAP_SEARCH, {"searchQuery": query, "searchResultsCount": results_count})

    async def track_route_plan(self, alerts_count: int) -> None:
        await self._track(EventName.MAP_ROUTE_PLAN, {"searchResultsCount": alerts_count})

    async def track_list_modal_open(self, items_count: int) -> None:
        await self._track(EventName.MAP_LIST_MODAL_OPEN, {"searchResultsCount": items_count})

    async def track_list_item_click(self, content_id: str, position: int) -> None:
        await self._track(EventName.MAP_LIST_ITEM_CLICK, {"listPosition": position}, content_id=content_id)

    async def track_city_select(self, city_id: str, city_name: str) -> None:
        await self._track(EventName.MAP_CITY_SELECT, {"cityId": city_id, "cityName": city_name})

    def cancel_pending(self) -> None:
        self._debouncer.cancel_all()


def scroll_percent(scroll_top: float, document_height: float, viewport_height: float) -> int:
    """Scrolled share of the scrollable height, rounded half up.

    A page that does not scroll counts as fully read.
    """
    scrollable = document_height - viewport_height
    if scrollable <= 0:
        return 100
    return math.floor(scroll_top / scrollable * 100 + 0.5)


class ScrollDepthTracker:
    """Report scroll-depth thresholds, each once per page."""

    def __init__(
        self,
        client: AnalyticsClient,
        *,
        content_id: str | None = None,
        thresholds: Sequence[int] = SCROLL_THRESHOLDS,
        debounce_seconds: float = SCROLL_DEBOUNCE_SECONDS,
        debouncer: Debouncer | None = None,
    ) -> None:
        self._client = client
        self._content_id = content_id
        self._thresholds = tuple(sorted(thresholds))
        self._debounce_seconds = debounce_seconds
        self._debouncer = debouncer if debouncer is not None else Debouncer(client.context.scheduler)
        self._tracked: set[int] = set()

    @property
    def tracked_thresholds(self) -> frozenset[int]:
        return frozenset(self._tracked)

    async def check(self, percent: int) -> None:
        """Report every threshold reached and not yet reported."""
        for threshold in self._thresholds:
            if percent >= threshold and threshold not in self._tracked:
                self._tracked.add(threshold)
                await self._client.track_event(
                    EventName.CONTENT_SCROLL_DEPTH,
                    content_id=self._content_id,
                    properties={"scrollDepthPercent": threshold},
                )

    def on_scroll(self, percent: int) -> None:
        """Debounced check; only the last position in a burst counts."""

        async def fire() -> None:
            await self.check(percent)

        self._debouncer.schedule("scroll", self._debounce_seconds, fire)

    def reset(self, content_id: str | None = None) -> None:
        """Start over for a new page."""
        self._debouncer.cancel("scroll")
        self._tracked.clear()
        self._content_id = content_id


class PageViewTracker:
    """Page views on navigation, with time spent on the previous page."""

    def __init__(self, client: AnalyticsClient, *, user_id: str | None = None) -> None:
        self._client = client
        self._user_id = user_id
        self._current_path: str | None = None
        self._entered_at: datetime | None = None

    @property
    def current_path(self) -> str | None:
        return self._current_path

    async def navigate(self, path: str) -> None:
        if path == self._current_path:
            return
        now = self._client.context.clock.now()
        if self._current_path is not None and self._entered_at is not None:
            time_on_page = math.floor((now - self._entered_at).total_seconds() + 0.5)
            await self._client.track_event(
                EventName.CONTENT_VIEW,
                user_id=self._user_id,
                properties={"timeOnPage": time_on_page, "pagePath": self._current_path},
            )
        await self._client.track_page_view(path)
        self._current_path = path
        self._entered_at = now

    async def identify(self, user_id: str, traits: Mapping[str, Any] | None = None) -> None:
        self._user_id = user_id
        await self._client.identify_user(user_id, traits)

# src/sitepulse/analytics/categories.py
"""Event name to category resolution.

The map covers every EventName. Anything else, including names minted by
newer clients, resolves to the system category.
"""

from collections.abc import Mapping
from types import MappingProxyType

from sitepulse.contracts.enums import EventCategory, EventName

_NAMESPACE_CATEGORIES: tuple[tuple[str, EventCategory], ...] = (
    ("map_", EventCategory.MAP),
    ("content_", EventCategory.CONTENT),
    ("workflow_", EventCategory.WORKFLOW),
    ("user_", EventCategory.IDENTITY),
    ("sponsor_", EventCategory.SPONSOR),
)


def _build_category_map() -> Mapping[str, EventCategory]:
    mapping: dict[str, EventCategory] = {}
    for name in EventName:
        mapping[name.value] = next(
            (category for prefix, category in _NAMESPACE_CATEGORIES if name.value.startswith(prefix)),
            EventCategory.SYSTEM,
        )
    return MappingProxyType(mapping)


EVENT_CATEGORY_MAP: Mapping[str, EventCategory] = _build_category_map()


def resolve_category(event_name: str) -> EventCategory:
    """Category for ``event_name``; unknown names are system events."""
    return EVENT_CATEGORY_MAP.get(str(event_name), EventCategory.SYSTEM)

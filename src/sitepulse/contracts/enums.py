# src/sitepulse/contracts/enums.py
"""All categories, event names and signal kinds used across module boundaries.

EventName is a CLOSED enumeration: every name here must appear in the
category map (see sitepulse.analytics.categories). Names arriving as plain
strings that are not listed resolve to the system category.
"""

from enum import StrEnum


class EventCategory(StrEnum):
    """Coarse grouping of events for reporting and billing.

    Sent on the wire as ``eventCategory``.
    """

    MAP = "map"
    CONTENT = "content"
    WORKFLOW = "workflow"
    IDENTITY = "identity"
    SPONSOR = "sponsor"
    SYSTEM = "system"


class EventName(StrEnum):
    """Recognised analytics event names, grouped by namespace."""

    # Map interactions
    MAP_LOADED = "map_loaded"
    MAP_INITIAL_RENDER = "map_initial_render"
    MAP_TILE_LOAD = "map_tile_load"
    MAP_MARKER_CLICK = "map_marker_click"
    MAP_MARKER_HOVER = "map_marker_hover"
    MAP_FILTER_TOGGLE = "map_filter_toggle"
    MAP_ZOOM = "map_zoom"
    MAP_PAN = "map_pan"
    MAP_SEARCH = "map_search"
    MAP_ROUTE_PLAN = "map_route_plan"
    MAP_LIST_MODAL_OPEN = "map_list_modal_open"
    MAP_LIST_ITEM_CLICK = "map_list_item_click"
    MAP_CITY_SELECT = "map_city_select"

    # Content pages and content lifecycle
    CONTENT_VIEW = "content_view"
    CONTENT_CTA_CLICK = "content_cta_click"
    CONTENT_PHONE_REVEAL = "content_phone_reveal"
    CONTENT_DOWNLOAD = "content_download"
    CONTENT_SHARE = "content_share"
    CONTENT_GALLERY_VIEW = "content_gallery_view"
    CONTENT_GALLERY_IMAGE = "content_gallery_image"
    CONTENT_SCROLL_DEPTH = "content_scroll_depth"
    CONTENT_RELATED_CLICK = "content_related_click"
    CONTENT_VIDEO_PLAY = "content_video_play"
    CONTENT_VIRTUAL_TOUR = "content_virtual_tour"
    CONTENT_CREATED = "content_created"
    CONTENT_UPDATED = "content_updated"
    CONTENT_DELETED = "content_deleted"
    CONTENT_STATUS_CHANGE = "content_status_change"
    CONTENT_PROGRESS_UPDATE = "content_progress_update"
    CONTENT_APPROVAL_SUBMIT = "content_approval_submit"
    CONTENT_APPROVED = "content_approved"
    CONTENT_REJECTED = "content_rejected"
    CONTENT_PUBLISHED = "content_published"

    # Moderated change suggestions
    WORKFLOW_SUBMITTED = "workflow_submitted"
    WORKFLOW_REVIEW_STARTED = "workflow_review_started"
    WORKFLOW_APPROVED = "workflow_approved"
    WORKFLOW_REJECTED = "workflow_rejected"
    WORKFLOW_MERGED = "workflow_merged"
    WORKFLOW_CHANGES_REQUESTED = "workflow_changes_requested"

    # Accounts
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    USER_REGISTER = "user_register"
    USER_PROFILE_UPDATE = "user_profile_update"

    # Paid placements
    SPONSOR_IMPRESSION = "sponsor_impression"
    SPONSOR_CLICK = "sponsor_click"
    SPONSOR_LEAD_SUBMIT = "sponsor_lead_submit"

    # System
    PAGE_PERFORMANCE = "page_performance"
    ERROR_OCCURRED = "error_occurred"
    API_CALL = "api_call"


class DeviceType(StrEnum):
    """Device class derived from viewport width and user-agent keywords."""

    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


class LifecycleSignal(StrEnum):
    """Host lifecycle signals that trigger exit-safe delivery.

    PAGE_HIDE and VISIBILITY_HIDDEN mirror the page being hidden or
    navigated away from; SHUTDOWN is delivered from the process exit hook.
    """

    PAGE_HIDE = "pagehide"
    VISIBILITY_HIDDEN = "hidden"
    SHUTDOWN = "shutdown"

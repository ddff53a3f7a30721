# src/sitepulse/core/enrichment.py
"""Context enrichment: device, browser, OS, locale, page and campaign data.

Enrichment works from a ClientEnvironment snapshot supplied by the host
(the page, an embedding application, a CLI invocation). Without a snapshot
the host is non-interactive and enrichment returns only what the caller
supplied.

User-agent parsing is a deliberately small ordered keyword scan, not a full
parser. Its known misclassifications are kept stable so that historical
reports stay comparable: iOS agents contain "Mac OS X" and report macOS,
Android agents contain "Linux" and report Linux.
"""

from __future__ import annotations

import hashlib
import os
import re
import struct
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sitepulse.contracts.enums import DeviceType
from sitepulse.contracts.events import AnalyticsContext

TABLET_BREAKPOINT = 768

UTM_PARAMS: tuple[str, ...] = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

_MOBILE_UA = re.compile(r"mobile|android|iphone|ipod|blackberry|windows phone", re.IGNORECASE)
_TABLET_UA = re.compile(r"tablet|ipad|playbook|silk", re.IGNORECASE)

_FIREFOX_VERSION = re.compile(r"Firefox/(\d+(?:\.\d+)?)")
_EDGE_VERSION = re.compile(r"Edg/(\d+(?:\.\d+)?)")
_CHROME_VERSION = re.compile(r"Chrome/(\d+(?:\.\d+)?)")
_SAFARI_VERSION = re.compile(r"Version/(\d+(?:\.\d+)?)")
_MAC_VERSION = re.compile(r"Mac OS X (\d+[._]\d+)")
_ANDROID_VERSION = re.compile(r"Android (\d+(?:\.\d+)?)")
_IOS_VERSION = re.compile(r"OS (\d+[._]\d+)")

_WINDOWS_VERSIONS: tuple[tuple[str, str], ...] = (
    ("Windows NT 10.0", "10"),
    ("Windows NT 11.0", "11"),
    ("Windows NT 6.3", "8.1"),
    ("Windows NT 6.2", "8"),
)


@dataclass(frozen=True, slots=True)
class ClientEnvironment:
    """What the host can observe about the current viewer and page."""

    user_agent: str = ""
    viewport_width: int | None = None
    screen_width: int | None = None
    screen_height: int | None = None
    language: str | None = None
    timezone: str | None = None
    referrer: str | None = None
    page_url: str | None = None


@dataclass(frozen=True, slots=True)
class UserAgentInfo:
    browser: str = "Unknown"
    browser_version: str = ""
    os: str = "Unknown"
    os_version: str = ""


def _first_group(pattern: re.Pattern[str], text: str) -> str:
    match = pattern.search(text)
    return match.group(1) if match else ""


def parse_user_agent(ua: str) -> UserAgentInfo:
    """Classify browser and OS by ordered keyword checks."""
    browser, browser_version = "Unknown", ""
    if "Firefox/" in ua:
        browser, browser_version = "Firefox", _first_group(_FIREFOX_VERSION, ua)
    elif "Edg/" in ua:
        browser, browser_version = "Edge", _first_group(_EDGE_VERSION, ua)
    elif "Chrome/" in ua:
        browser, browser_version = "Chrome", _first_group(_CHROME_VERSION, ua)
    elif "Safari/" in ua and "Chrome" not in ua:
        browser, browser_version = "Safari", _first_group(_SAFARI_VERSION, ua)

    os_name, os_version = "Unknown", ""
    if "Windows NT" in ua:
        os_name = "Windows"
        os_version = next((version for marker, version in _WINDOWS_VERSIONS if marker in ua), "")
    elif "Mac OS X" in ua:
        os_name, os_version = "macOS", _first_group(_MAC_VERSION, ua).replace("_", ".", 1)
    elif "Linux" in ua:
        os_name = "Linux"
    elif "Android" in ua:
        os_name, os_version = "Android", _first_group(_ANDROID_VERSION, ua)
    elif "iPhone" in ua or "iPad" in ua:
        os_name, os_version = "iOS", _first_group(_IOS_VERSION, ua).replace("_", ".", 1)

    return UserAgentInfo(browser=browser, browser_version=browser_version, os=os_name, os_version=os_version)


def detect_device_type(ua: str, viewport_width: int | None) -> DeviceType:
    """Classify the device from user-agent keywords and viewport width.

    An unknown viewport width only falls back on the keywords.
    """
    is_mobile_ua = _MOBILE_UA.search(ua) is not None
    is_tablet_ua = _TABLET_UA.search(ua) is not None
    wide = viewport_width is not None and viewport_width >= TABLET_BREAKPOINT
    narrow = viewport_width is not None and viewport_width < TABLET_BREAKPOINT

    if is_tablet_ua or (is_mobile_ua and wide):
        return DeviceType.TABLET
    if is_mobile_ua or narrow:
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


def extract_utm_params(url: str | None) -> dict[str, str]:
    """Campaign parameters present (and non-empty) in the URL query."""
    if not url:
        return {}
    query = parse_qs(urlsplit(url).query)
    return {name: query[name][0] for name in UTM_PARAMS if name in query and query[name][0]}


LOCALTIME_PATH = Path("/etc/localtime")


def _is_zone_key(key: str) -> bool:
    try:
        ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def _local_timezone(localtime: Path = LOCALTIME_PATH) -> str | None:
    """IANA name of the host time zone (e.g. Europe/Berlin).

    Checked in order: the TZ variable, then the zoneinfo file that
    ``localtime`` links to. Falls back to the offset abbreviation (CET, UTC)
    when neither names a known zone.
    """
    candidates = [os.environ.get("TZ", "").removeprefix(":")]
    _, marker, key = os.path.realpath(localtime).partition("zoneinfo/")
    if marker:
        candidates.append(key)
    for candidate in candidates:
        if candidate and _is_zone_key(candidate):
            return candidate
    return datetime.now().astimezone().tzname()


def enrich_context(
    environment: ClientEnvironment | None,
    existing: AnalyticsContext | Mapping[str, Any] | None = None,
) -> AnalyticsContext:
    """Derive the full context snapshot, letting ``existing`` fields win.

    Args:
        environment: Host snapshot; None for non-interactive hosts.
        existing: Caller-supplied context. Every set field overrides the
            derived value.

    Returns:
        Derived context merged with ``existing``; just ``existing`` (or an
        empty context) when there is no environment.
    """
    if environment is None:
        return AnalyticsContext().merged_with(existing)

    ua = environment.user_agent
    parsed = parse_user_agent(ua)
    page_path = urlsplit(environment.page_url).path if environment.page_url else None
    derived = AnalyticsContext(
        user_agent=ua,
        device_type=detect_device_type(ua, environment.viewport_width),
        browser=parsed.browser,
        browser_version=parsed.browser_version,
        os=parsed.os,
        os_version=parsed.os_version,
        screen_width=environment.screen_width,
        screen_height=environment.screen_height,
        language=environment.language,
        timezone=environment.timezone or _local_timezone(),
        referrer=environment.referrer or None,
        page_url=environment.page_url,
        page_path=page_path or None,
        **extract_utm_params(environment.page_url),
    )
    return derived.merged_with(existing)


def basic_context(page_url: str | None = None, page_path: str | None = None) -> AnalyticsContext:
    """Page-only context for hosts that cannot observe a viewer."""
    return AnalyticsContext(page_url=page_url, page_path=page_path)


def _fallback_hash(value: str) -> str:
    """32-bit shift-and-subtract string hash over UTF-16 code units."""
    encoded = value.encode("utf-16-le")
    acc = 0
    for unit in struct.unpack(f"<{len(encoded) // 2}H", encoded):
        acc = ((acc << 5) - acc + unit) & 0xFFFFFFFF
    signed = acc - (1 << 32) if acc >= (1 << 31) else acc
    return format(abs(signed), "x").rjust(8, "0")


def hash_ip(ip: str) -> str:
    """One-way, deterministic pseudonym for an IP address.

    SHA-256 truncated to 16 hex characters. If the digest is unavailable
    (restricted crypto policy), a weaker 32-bit hash of at least 8 hex
    characters is used instead. Both are one-way; neither is reversible.
    """
    try:
        digest = hashlib.new("sha256", ip.encode("utf-8"))
    except ValueError:
        return _fallback_hash(ip)
    return digest.hexdigest()[:16]

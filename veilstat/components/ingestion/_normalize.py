"""
Dimension normalization for validated events.

Turns raw payload values and request headers into the coarse dimensions
stored on an event: path, referrer domain, UTM tuple, device/browser/OS
class and country/region.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from urllib.parse import parse_qs, urlparse

from veilstat.core.entities import EventKind, StoredEvent

from ..identity import VisitorIdentity

COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "x-country-code")
REGION_HEADERS = ("x-vercel-ip-country-region", "cf-region", "x-region-code")

# Placeholder codes some CDNs send when the country is not known
_UNKNOWN_COUNTRIES = frozenset({"XX", "T1", "ZZ"})


def derive_path(data: dict[str, Any]) -> str:
    """Use the explicit path, else the path component of the url."""
    path = data.get("path")
    if path:
        return str(path)
    parsed = urlparse(str(data.get("url") or ""))
    return parsed.path or "/"


def referrer_domain(url: str | None) -> str | None:
    """Host of a referrer URL, lower-cased, without port or leading www."""
    if not url or not isinstance(url, str):
        return None

    host = urlparse(url).netloc.lower()
    if not host:
        # Bare domains arrive without a scheme
        host = urlparse(f"//{url}").netloc.lower()
    if ":" in host:
        host = host.split(":")[0]
    if host.startswith("www."):
        host = host[4:]
    return host or None


def parse_utm(data: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
    """
    UTM source/medium/campaign.

    Explicit event fields win; otherwise the url's query string is used.
    """
    query: dict[str, list[str]] = {}
    url = data.get("url")
    if isinstance(url, str) and "?" in url:
        query = parse_qs(urlparse(url).query)

    def get_param(camel: str, snake: str) -> str | None:
        value = data.get(camel) or data.get(snake)
        if value is None and query.get(snake):
            value = query[snake][0]
        if value is None:
            return None
        text = str(value).strip()[:200]
        return text or None

    return (
        get_param("utmSource", "utm_source"),
        get_param("utmMedium", "utm_medium"),
        get_param("utmCampaign", "utm_campaign"),
    )


def parse_user_agent(user_agent: str | None) -> tuple[str | None, str | None, str | None]:
    """Coarse (device, browser, os) classification of a user agent."""
    if not user_agent:
        return None, None, None

    ua = user_agent.lower()

    if "ipad" in ua or "tablet" in ua:
        device = "tablet"
    elif "mobi" in ua or "iphone" in ua or "android" in ua:
        device = "mobile"
    else:
        device = "desktop"

    # Order matters: Edge and Opera also advertise Chrome, Chrome advertises Safari
    if "edg/" in ua or "edge/" in ua:
        browser = "Edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "Opera"
    elif "firefox/" in ua or "fxios/" in ua:
        browser = "Firefox"
    elif "chrome/" in ua or "crios/" in ua:
        browser = "Chrome"
    elif "safari/" in ua:
        browser = "Safari"
    elif "msie" in ua or "trident/" in ua:
        browser = "Internet Explorer"
    else:
        browser = "Other"

    if "windows" in ua:
        os_name = "Windows"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua:
        os_name = "iOS"
    elif "android" in ua:
        os_name = "Android"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Other"

    return device, browser, os_name


def geo_from_headers(headers: Mapping[str, str]) -> tuple[str | None, str | None]:
    """Country/region codes supplied by the edge proxy, if any."""
    country = None
    for name in COUNTRY_HEADERS:
        value = headers.get(name)
        if value:
            country = value.strip().upper()
            break
    if country in _UNKNOWN_COUNTRIES:
        country = None

    region = None
    for name in REGION_HEADERS:
        value = headers.get(name)
        if value:
            region = value.strip().upper()
            break
    return country, region


def _optional_str(value: Any, limit: int = 500) -> str | None:
    if value is None:
        return None
    text = str(value).strip()[:limit]
    return text or None


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None


def build_stored_event(
    data: dict[str, Any],
    identity: VisitorIdentity,
    received_at: datetime,
    client_ts: datetime | None,
    user_agent: str | None,
    headers: Mapping[str, str],
) -> StoredEvent:
    """Assemble the persisted form of one validated event."""
    ua_device, ua_browser, ua_os = parse_user_agent(user_agent)
    country, region = geo_from_headers(headers)
    utm_source, utm_medium, utm_campaign = parse_utm(data)

    return StoredEvent(
        site_id=data["siteId"],
        kind=EventKind(data["type"]),
        visitor_id=identity.visitor_id,
        session_id=identity.session_id,
        created_at=received_at,
        client_ts=client_ts,
        path=derive_path(data),
        referrer=referrer_domain(data.get("referrer")),
        utm_source=utm_source,
        utm_medium=utm_medium,
        utm_campaign=utm_campaign,
        device=_optional_str(data.get("device"), 50) or ua_device,
        browser=_optional_str(data.get("browser"), 50) or ua_browser,
        os=_optional_str(data.get("os"), 50) or ua_os,
        country=country,
        region=region,
        category=_optional_str(data.get("category")),
        action=_optional_str(data.get("action")),
        label=_optional_str(data.get("label")),
        goal_id=_optional_str(data.get("goalId")),
        duration=_optional_float(data.get("duration")),
        scroll_depth=_optional_float(data.get("scrollDepth")),
        value=_optional_float(data.get("value")),
    )

"""
URL helpers: absolute-URL checks, path combination and web URL extraction.
"""

import re
from typing import Optional

_ABSOLUTE_URL = re.compile(r"^https?://|^//", re.IGNORECASE)

# Markers that separate a site (web) URL from the service path below it
_WEB_URL_MARKERS = ("/_api/", "/_vti_bin/")


def is_url_absolute(url: Optional[str]) -> bool:
    """Check whether a URL carries a scheme (or is protocol-relative)."""
    return bool(url) and _ABSOLUTE_URL.match(url) is not None


def combine(*paths: Optional[str]) -> str:
    """
    Join URL fragments with single slashes.

    Empty fragments are skipped; the leading part keeps its scheme intact.
    """
    parts = [p for p in paths if p]
    if not parts:
        return ""

    result = parts[0].rstrip("/")
    for part in parts[1:]:
        part = part.strip("/")
        if part:
            result = f"{result}/{part}" if result else part
    return result


def extract_web_url(url: str) -> str:
    """
    Derive the site root that a request URL belongs to.

    Everything from the first service marker (``/_api/``, ``/_vti_bin/``) on
    is dropped; URLs without a marker are returned without query or fragment.
    """
    lowered = url.lower()
    for marker in _WEB_URL_MARKERS:
        index = lowered.find(marker)
        if index > -1:
            return url[:index]

    for separator in ("?", "#"):
        index = url.find(separator)
        if index > -1:
            url = url[:index]
    return url.rstrip("/")


def to_absolute_url(candidate: Optional[str], base_url: Optional[str] = None) -> str:
    """
    Resolve a possibly relative URL against a base URL.

    Returns the candidate unchanged when it is already absolute or when no
    base URL is known; callers must check the result if they need an
    absolute URL.
    """
    candidate = candidate or ""
    if is_url_absolute(candidate):
        return candidate
    if base_url:
        return combine(base_url, candidate)
    return candidate

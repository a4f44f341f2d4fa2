"""
Handle rules shared by the profile and counter services.
"""

import re
from typing import Any

from biolink_app.exceptions import InvalidHandleError

HANDLE_PATTERN = re.compile(r"[a-zA-Z0-9_.\-]{2,30}")

# Path prefixes and static file names served at the site root.
# A profile can never live under one of these.
RESERVED_HANDLES = frozenset({
    "api", "auth", "customize", "404", "health", "docs", "redoc",
    "favicon.ico", "favicon.png", "robots.txt", "sitemap.xml",
    "index.html", "profile.html", "404.html", "customize.html",
    "openapi.json", "package.json", "node_modules", ".env",
})


def normalize_handle(handle: str) -> str:
    """Canonical (lowercase) form used as the primary key."""
    return handle.lower()


def validate_handle(handle: Any) -> str:
    """
    Check a caller-supplied handle and return its canonical form.

    Raises:
        InvalidHandleError: not a string, wrong format, or reserved
    """
    if not isinstance(handle, str) or not HANDLE_PATTERN.fullmatch(handle):
        raise InvalidHandleError(handle)

    key = normalize_handle(handle)
    if key in RESERVED_HANDLES:
        raise InvalidHandleError(handle)
    return key

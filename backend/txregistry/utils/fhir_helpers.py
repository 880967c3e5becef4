"""Shared FHIR version and canonical URL utilities.

All functions are pure and handle missing/malformed input gracefully.
"""

import re
from collections.abc import Iterable
from urllib.parse import urlsplit

_R_PREFIX = re.compile(r"^R(\d+)")
_LEADING_NUMBER = re.compile(r"^(\d+)(?:\.|\b)")

VALID_URL_SCHEMES = ("http", "https", "urn")


def get_major_version(version: str | int | None) -> int:
    """Extract the FHIR major version from a version string.

    Handles formats like:
    - "3.0.1", "4.0", "5.0.0"
    - "3", "4", "5"
    - "R3", "R4", "R4B", "r5"

    Args:
        version: Version string as declared by a registry or server

    Returns:
        Major version, or 0 if the string is not recognised
    """
    if version is None or version == "":
        return 0

    text = str(version).strip().upper()
    match = _R_PREFIX.match(text) or _LEADING_NUMBER.match(text)
    return int(match.group(1)) if match else 0


def strip_version_suffix(url: str) -> str:
    """Drop a trailing ``|version`` from a canonical URL.

    "http://loinc.org|2.77" -> "http://loinc.org"
    """
    return url.split("|", 1)[0]


def mask_matches(mask: str, url: str) -> bool:
    """Check whether an authoritative mask covers a canonical URL.

    A mask ending in ``*`` matches by prefix; any other mask must match
    exactly. No other wildcard forms are recognised.
    """
    if not mask:
        return False
    if mask.endswith("*"):
        return url.startswith(mask[:-1])
    return mask == url


def any_mask_matches(masks: Iterable[str], url: str) -> bool:
    return any(mask_matches(mask, url) for mask in masks)


def is_valid_url(url: str | None, schemes: tuple[str, ...] = VALID_URL_SCHEMES) -> bool:
    """Check that a canonical URL is syntactically usable.

    Args:
        url: Candidate URL
        schemes: Allowed URL schemes

    Returns:
        True if the URL parses and uses an allowed scheme
    """
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in schemes:
        return False
    # urn: URLs carry no host
    return parts.scheme == "urn" or bool(parts.netloc)


def sorted_unique(values: Iterable[str]) -> list[str]:
    """Sort ascending and drop duplicates."""
    return sorted(set(values))


def format_bytes(count: int) -> str:
    """Format a byte count for display: bytes, KB or MB."""
    if count < 1024:
        return f"{count} bytes"
    if count < 1024 * 1024:
        return f"{count / 1024:.1f} KB"
    return f"{count / (1024 * 1024):.1f} MB"

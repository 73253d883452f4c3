# backend/hunt_registry/core/utils/text_utils.py
import re
from datetime import date, datetime, timezone
from typing import Optional

MAX_SLUG_LENGTH = 60

# Org slugs double as storage keys, so only URL- and key-safe characters.
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
UNSAFE_CHARS = re.compile(r"[^a-z0-9-]")


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Convert a display name to a lowercase hyphenated slug.

    Args:
        text: Text to slugify
        max_length: Maximum length of result

    Returns:
        Slug string, empty if nothing usable remains
    """
    if not text:
        return ""

    text = text.lower()
    text = re.sub(r"[\s_./]+", "-", text)
    text = UNSAFE_CHARS.sub("", text)
    text = re.sub(r"-+", "-", text)
    text = text.strip("-")

    if len(text) > max_length:
        truncated = text[:max_length]
        last_hyphen = truncated.rfind("-")
        text = truncated[:last_hyphen] if last_hyphen > max_length // 2 else truncated

    return text.strip("-")


def is_valid_slug(value: str) -> bool:
    return bool(value) and bool(SLUG_PATTERN.match(value))


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_date(value: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD``; returns None for anything else."""
    if not isinstance(value, str) or len(value) != 10:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None

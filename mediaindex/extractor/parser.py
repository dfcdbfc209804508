"""Value parsing helpers shared by the metadata readers.

Every helper is best-effort: malformed input yields ``None`` instead of
raising, so one bad tag never fails a whole extraction.
"""

import re
from datetime import date, datetime
from typing import Any

_TZ_SUFFIX = re.compile(r"([+-]\d{2}:\d{2}|Z)$")
_EXIF_DATE_FORMATS = (
    "%Y:%m:%d %H:%M:%S",
    "%Y:%m:%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y:%m:%d",
)
_RELEASE_DATE = re.compile(r"^\s*(\d{4})(?:[-:/.](\d{1,2})(?:[-:/.](\d{1,2}))?)?")
_LEADING_INT = re.compile(r"^\s*(\d+)")

_UNDEFINED_LANGUAGES = {"und", "unk", "unknown", "none", "zxx", "mis"}


def parse_exif_date(date_str: str | None) -> float | None:
    """Parse an EXIF date string to a unix timestamp."""
    if not date_str or not isinstance(date_str, str):
        return None

    date_str = date_str.strip()
    if not date_str or date_str.startswith("0000:00:00"):
        return None

    date_str_clean = _TZ_SUFFIX.sub("", date_str)

    for fmt in _EXIF_DATE_FORMATS:
        try:
            return datetime.strptime(date_str_clean, fmt).timestamp()
        except ValueError:
            continue

    return None


def parse_release_date(value: Any) -> date | None:
    """Parse ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD`` (any trailing time ignored).

    Missing month or day components default to the first of the span.
    """
    if value is None:
        return None
    match = _RELEASE_DATE.match(str(value))
    if not match:
        return None
    year, month, day = match.groups()
    try:
        return date(int(year), int(month or 1), int(day or 1))
    except ValueError:
        return None


def get_first_value(metadata: dict, *keys: str) -> Any:
    """Get first non-empty value from metadata by keys."""
    for key in keys:
        value = metadata.get(key)
        if value is not None and value != "":
            return value
    return None


def to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and "/" in value:
        # Rational values like ffprobe's "24000/1001"
        num, _, den = value.partition("/")
        try:
            denominator = float(den)
            return float(num) / denominator if denominator else None
        except ValueError:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> int | None:
    """Parse an integer, accepting forms like ``"3/12"`` or ``"07"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_language(value: Any) -> str | None:
    """Lower-case a language code, dropping placeholders like ``und``."""
    text = clean_text(value)
    if not text:
        return None
    lowered = text.replace("_", "-").lower()
    if lowered in _UNDEFINED_LANGUAGES:
        return None
    return lowered


def unique(values: list[str]) -> list[str]:
    """Drop repeated values, keeping the first occurrence."""
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result

"""
Expiry annotation parsing and evaluation
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

# Formats are tried in this order, first match wins. Absolute formats come
# before the relative one so a timestamp is never read as a seconds offset.
ZONED_FORMATS = ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z")
NAIVE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
)
DATE_FORMAT = "%Y-%m-%d"

_RELATIVE_SECONDS = re.compile(r"^\d+$")
# strptime's %f stops at microseconds; RFC 3339 allows nanoseconds
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


class FormatError(ValueError):
    """Raised when an expiry annotation matches none of the supported formats"""

    def __init__(self, raw_value, reason="unsupported expiry format"):
        self.raw_value = raw_value
        self.reason = reason
        super().__init__(f"{reason}: {raw_value!r}")


@dataclass(frozen=True)
class ExpiryRecord:
    namespace: str
    name: str
    raw_value: str
    expires_at: Optional[datetime] = None
    error: Optional[FormatError] = None
    expired: bool = False


def _localize(parsed: datetime, naive_timezone: str) -> datetime:
    # astimezone() resolves the offset in effect on that date, DST included
    if naive_timezone == "local":
        return parsed.astimezone()
    return parsed.replace(tzinfo=timezone.utc)


def _try_formats(value: str, formats) -> Optional[datetime]:
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_expiry(raw_value: str, created_at: Optional[datetime], naive_timezone: str = "utc") -> datetime:
    """Resolve an expiry annotation value to an aware datetime.

    Supported values, in priority order:

    * RFC 3339 timestamp with zone, e.g. ``2025-01-02T15:04:05Z``
    * timestamp without zone, read in ``naive_timezone``
    * date only, midnight in ``naive_timezone``
    * non-negative integer, seconds after ``created_at``

    Raises:
        FormatError: when no format matches, or a relative value is given
            for an object without a creation timestamp.
    """
    value = (raw_value or "").strip()
    if not value:
        raise FormatError(raw_value, "empty expiry value")

    # "z" is accepted by RFC 3339 and by %z only in upper case
    zoned = _LONG_FRACTION.sub(r"\1", value)
    if zoned.endswith("z"):
        zoned = zoned[:-1] + "Z"

    parsed = _try_formats(zoned, ZONED_FORMATS)
    if parsed is not None:
        return parsed

    parsed = _try_formats(zoned, NAIVE_FORMATS)
    if parsed is not None:
        return _localize(parsed, naive_timezone)

    parsed = _try_formats(value, (DATE_FORMAT,))
    if parsed is not None:
        return _localize(parsed, naive_timezone)

    if _RELATIVE_SECONDS.match(value):
        if created_at is None:
            raise FormatError(raw_value, "relative expiry needs a creation timestamp")
        try:
            return created_at + timedelta(seconds=int(value))
        except (OverflowError, ValueError) as e:
            raise FormatError(raw_value, "relative expiry out of range") from e

    raise FormatError(raw_value)


def evaluate(raw_value: str, now: datetime, created_at: Optional[datetime], naive_timezone: str = "utc") -> bool:
    """Return True when ``now`` is strictly after the expiry instant"""
    return now > parse_expiry(raw_value, created_at, naive_timezone)


def evaluate_credential(credential, annotation_key: str, now: datetime, naive_timezone: str = "utc"):
    """Build the ExpiryRecord for a credential, or None if it is not annotated"""
    raw_value = credential.annotations.get(annotation_key)
    # an empty value counts as not annotated
    if raw_value is None or not raw_value.strip():
        return None

    try:
        expires_at = parse_expiry(raw_value, credential.created_at, naive_timezone)
    except FormatError as e:
        return ExpiryRecord(credential.namespace, credential.name, raw_value, error=e)

    return ExpiryRecord(
        namespace=credential.namespace,
        name=credential.name,
        raw_value=raw_value,
        expires_at=expires_at,
        expired=now > expires_at,
    )

from datetime import datetime, timezone
from typing import Union


def to_utc_seconds(value: datetime) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime with second resolution.

    Naive datetimes are interpreted as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=0)


def parse_timestamp(value: Union[str, int, float, datetime]) -> datetime:
    """
    Parse an ISO-8601 string (``Z`` suffix allowed), epoch seconds or a datetime.
    """
    if isinstance(value, datetime):
        return to_utc_seconds(value)
    if isinstance(value, (int, float)):
        return to_utc_seconds(datetime.fromtimestamp(float(value), tz=timezone.utc))

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc_seconds(datetime.fromisoformat(text))


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC, e.g. ``2023-01-01T01:01:01.000Z`` (remote ledger format)."""
    return to_utc_seconds(value).strftime("%Y-%m-%dT%H:%M:%S.000Z")

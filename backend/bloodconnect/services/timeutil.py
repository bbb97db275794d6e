"""Timestamp helpers. Timestamps are stored as naive UTC ISO strings."""
from datetime import datetime, timezone


def to_naive_utc(value: datetime | str) -> datetime:
    """Normalize an aware or naive datetime (or ISO string) to naive UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return to_naive_utc(value)

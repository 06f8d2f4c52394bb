from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as naive UTC, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def get_clock():
    """FastAPI dependency returning the time source; tests swap in a fixed clock."""
    return utc_now

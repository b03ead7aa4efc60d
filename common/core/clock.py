from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as a naive UTC datetime.

    Timestamps are stored without tzinfo so they compare the same way on
    PostgreSQL and SQLite.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)

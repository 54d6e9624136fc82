"""Datetime utility functions."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


def utc_iso() -> str:
    """Current UTC time as an ISO 8601 string, as stored in attachment records."""
    return utc_now().isoformat()


def backup_stamp(moment: datetime | None = None) -> str:
    """Timestamp used in note backup file names (YYYYMMDD_HHMMSS)."""
    return (moment or utc_now()).strftime("%Y%m%d_%H%M%S")

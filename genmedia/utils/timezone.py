from datetime import datetime, timedelta
from datetime import timezone as dt_timezone


class TimeZone:
    """UTC time helpers used by the ledger and bonus scheduler."""

    def __init__(self) -> None:
        self.tz_info = dt_timezone.utc

    def now(self) -> datetime:
        return datetime.now(self.tz_info)

    def aware(self, value: datetime | None) -> datetime | None:
        """Attach UTC to naive datetimes returned by stores without tz support."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz_info)
        return value.astimezone(self.tz_info)

    def after(self, value: datetime, *, hours: int) -> datetime:
        return value + timedelta(hours=hours)

    @staticmethod
    def to_iso(value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None


timezone: TimeZone = TimeZone()

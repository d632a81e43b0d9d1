from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo
from typing import Callable, Optional

from config.settings import get_settings

settings = get_settings()

Clock = Callable[[], datetime]


class DateTimeManager:
    """
    Centralized DateTime management:
    - Storage and expiry comparisons always use UTC
    - Display values use the configured console timezone
    """

    system_tz = ZoneInfo(settings.TIMEZONE)

    @classmethod
    def utc_now(cls) -> datetime:
        """Get current UTC time for database storage and inter-system communication"""
        return datetime.now(timezone.utc)

    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Attach UTC to naive values and convert aware values to UTC"""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def is_past(cls, value: Optional[datetime], now: Optional[datetime] = None) -> bool:
        """True when value is set and strictly before now; None never expires"""
        if value is None:
            return False
        reference = cls.ensure_utc(now) if now is not None else cls.utc_now()
        return cls.ensure_utc(value) < reference

    @classmethod
    def from_timestamp(cls, ts: float) -> datetime:
        return datetime.fromtimestamp(ts, tz=timezone.utc)

    @classmethod
    def to_local(cls, value: datetime) -> datetime:
        """Convert a stored UTC value to the console timezone"""
        return cls.ensure_utc(value).astimezone(cls.system_tz)
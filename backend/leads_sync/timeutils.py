from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo
from typing import Optional
from leads_sync.config import settings


def utc_now() -> datetime:
    """Текущее время в UTC (aware)"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Нормализовать datetime к UTC

    SQLite теряет часовой пояс при чтении, такие значения считаем UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_today_local() -> date:
    """Текущая дата в часовом поясе операторов"""
    return datetime.now(ZoneInfo(settings.local_timezone)).date()


def local_day_start_utc(day: date) -> datetime:
    """Начало суток в часовом поясе операторов (портала Bitrix24), в UTC"""
    local_midnight = datetime.combine(day, time.min, tzinfo=ZoneInfo(settings.local_timezone))
    return local_midnight.astimezone(timezone.utc)

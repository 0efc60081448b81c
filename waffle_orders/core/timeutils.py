from datetime import datetime, time
from typing import Optional

import pytz

from ..config import settings

LOCAL_TZ = pytz.timezone(settings.TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def local_midnight(now: Optional[datetime] = None) -> datetime:
    """Start of the kitchen's local business day, as a UTC instant"""
    now = now or utc_now()
    local_day = now.astimezone(LOCAL_TZ).date()
    start = LOCAL_TZ.localize(datetime.combine(local_day, time.min))
    return start.astimezone(pytz.UTC)

"""Date helpers shared by adapters, scoring and run assembly (JST calendar)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
import math
import secrets
import time
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

JST = ZoneInfo("Asia/Tokyo")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def create_id(prefix: str) -> str:
    """`<prefix>_<ms since epoch, base36>_<8 hex>`."""
    return f"{prefix}_{_to_base36(int(time.time() * 1000))}_{secrets.token_hex(4)}"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 or RFC-822 timestamps into aware UTC datetimes."""
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    text = str(value or "").strip()
    if not text:
        return None

    normalized = text.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        pass

    try:
        dt2 = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    if dt2 is None:
        return None
    if dt2.tzinfo is None:
        dt2 = dt2.replace(tzinfo=timezone.utc)
    return dt2.astimezone(timezone.utc)


def to_iso_or_none(value: Any) -> Optional[str]:
    dt = parse_datetime(value)
    if dt is None:
        return None
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def jst_parts(now: Optional[datetime] = None) -> Dict[str, str]:
    current = (now or datetime.now(timezone.utc)).astimezone(JST)
    return {
        "date": current.strftime("%Y-%m-%d"),
        "time": current.strftime("%H:%M:%S"),
    }


def get_since_date(days: Any, *, now: Optional[datetime] = None) -> str:
    """JST calendar date `days` ago; non-numeric input falls back to 2 days."""
    try:
        numeric = float(days)
        safe_days = max(1, math.floor(numeric)) if math.isfinite(numeric) else 2
    except (TypeError, ValueError):
        safe_days = 2
    current = now or datetime.now(timezone.utc)
    return jst_parts(current - timedelta(days=safe_days))["date"]


def since_threshold(since_date: str) -> Optional[datetime]:
    """Start of `since_date` in JST, as aware UTC."""
    try:
        day = datetime.strptime(str(since_date or "").strip(), "%Y-%m-%d")
    except ValueError:
        return None
    return day.replace(tzinfo=JST).astimezone(timezone.utc)


def get_period_label(days: int) -> str:
    if days == 1:
        return "直近1日"
    if days == 7:
        return "直近1週間"
    if days == 30:
        return "直近1ヶ月"
    if days == 365:
        return "直近1年"
    return f"直近{days}日"

"""时区工具方法：支持根据配置动态获取当前时区。"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.filestore.core.config import get_settings


def get_timezone() -> ZoneInfo:
    return get_settings().timezone_info


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区，无时区对象按配置时区解释。"""
    if value is None:
        return None
    tz = get_timezone()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def format_iso(value: Optional[datetime]) -> Optional[str]:
    localized = to_local(value)
    return localized.isoformat() if localized else None


def parse_bound(raw: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """解析 ``YYYY-MM-DD`` 或 ISO 日期时间字符串，返回带时区的时间点。

    仅给出日期时，``end_of_day`` 为真则取当天最后一刻，便于闭区间过滤。
    无法解析时抛出 ``ValueError``。
    """
    text = (raw or "").strip()
    if not text:
        return None
    try:
        day = date.fromisoformat(text)
    except ValueError:
        return to_local(datetime.fromisoformat(text))
    moment = datetime.combine(day, time.max if end_of_day else time.min)
    return to_local(moment)

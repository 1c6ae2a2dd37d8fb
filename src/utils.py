import re
from abc import ABC, abstractmethod
from datetime import datetime
from zoneinfo import ZoneInfo

__all__ = ["Clock", "SystemClock",
           "is_valid_time_of_day", "time_to_minutes", "minutes_since_midnight", "sanitize_input"]

_TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Clock(ABC):
    """可替换的时间源, 测试时注入手动时钟"""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    def __init__(self, user_tz: str = "UTC") -> None:
        self._tz = ZoneInfo(user_tz)

    def now(self) -> datetime:
        return datetime.now(self._tz)


def is_valid_time_of_day(value: str) -> bool:
    """校验 24 小时制 'HH:MM'"""
    if not isinstance(value, str):
        return False
    return _TIME_OF_DAY_PATTERN.match(value) is not None

def time_to_minutes(value: str) -> int:
    match = _TIME_OF_DAY_PATTERN.match(value)
    if match is None:
        raise ValueError(f"非法时间格式: {value!r}, 预期 HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))

def minutes_since_midnight(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute

def sanitize_input(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.replace("<", "").replace(">", "").strip()

# aicounsel/memory/models.py

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

DEFAULT_UTC_OFFSET_HOURS = 9.0  # Asia/Tokyo, no DST


def fixed_offset(hours: float = DEFAULT_UTC_OFFSET_HOURS) -> timezone:
    return timezone(timedelta(hours=hours))


def now_iso(offset_hours: float = DEFAULT_UTC_OFFSET_HOURS) -> str:
    """Current time as ISO-8601 with a fixed offset, e.g. 2024-05-01T09:30:00+09:00."""
    return datetime.now(tz=fixed_offset(offset_hours)).replace(microsecond=0).isoformat()


def to_iso(value: Union[date, datetime], offset_hours: float = DEFAULT_UTC_OFFSET_HOURS) -> str:
    tz = fixed_offset(offset_hours)
    if isinstance(value, datetime):
        moment = value.astimezone(tz) if value.tzinfo else value.replace(tzinfo=tz)
    else:
        moment = datetime(value.year, value.month, value.day, tzinfo=tz)
    return moment.replace(microsecond=0).isoformat()


@dataclass
class LogRecord:
    log: List[Dict[str, str]]
    last_updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"log": self.log, "last_updated_at": self.last_updated_at}


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNSPECIFIED = "unspecified"

    @property
    def label(self) -> str:
        return _GENDER_LABELS[self]


_GENDER_LABELS = {
    Gender.MALE: "男",
    Gender.FEMALE: "女",
    Gender.UNSPECIFIED: "選択しない",
}


@dataclass
class UserProfile:
    email: str
    nickname: str = ""
    birthdate: str = ""
    gender: Optional[Gender] = None

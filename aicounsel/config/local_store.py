# aicounsel/config/local_store.py

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

USER_EMAIL = "user_email"
NICKNAME = "nickname"
BIRTHDATE = "birthdate"
GENDER = "gender"
IS_USER_DATA_COMPLETE = "is_user_data_complete"


class LocalSettings:
    """
    Flat key-value file for per-device user data.

    Every write rewrites the whole file. A missing, unreadable or non-object
    file reads as empty.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        return dict(payload) if isinstance(payload, Mapping) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def get_str(self, key: str, default: str | None = None) -> str | None:
        value = self.get(key)
        return value if isinstance(value, str) and value.strip() else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        return value if isinstance(value, bool) else default

    def update(self, values: Mapping[str, Any]) -> None:
        current = self._read()
        current.update(values)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(current, ensure_ascii=False, indent=2), encoding="utf-8")

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    @property
    def user_email(self) -> str | None:
        return self.get_str(USER_EMAIL)

    @property
    def is_user_data_complete(self) -> bool:
        return self.get_bool(IS_USER_DATA_COMPLETE)

# aicounsel/memory/backend.py
"""
Hosted record store reached over a PostgREST-style REST API.

Rows are addressed with ``?user_email=eq.<email>``; the whole ``log_data``
column is replaced on every save, so the last writer wins.
"""

import json
from typing import Any, Dict, List, Optional

import requests

from aicounsel.config.settings import Settings
from aicounsel.core.errors import PersistenceError
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)

REST_PREFIX = "rest/v1"


class RestRecordStore:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        users_table: str = "users",
        actions_table: str = "action_num",
        timeout: float = 30.0,
        http_session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.users_table = users_table
        self.actions_table = actions_table
        self.timeout = timeout
        self._http = http_session or requests.Session()
        self._http.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "User-Agent": "aicounsel/record-store (requests)",
        })

    @classmethod
    def from_settings(cls, settings: Settings, http_session: Optional[requests.Session] = None) -> "RestRecordStore":
        return cls(
            base_url=settings.backend_url,
            api_key=settings.backend_key,
            users_table=settings.users_table,
            actions_table=settings.actions_table,
            http_session=http_session,
        )

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/{REST_PREFIX}/{table}"

    def _request(self, method: str, table: str, **kwargs: Any) -> requests.Response:
        url = self._table_url(table)
        try:
            resp = self._http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise PersistenceError(f"{method} {table} failed: {e}") from e
        if resp.status_code >= 400:
            body_preview = (resp.text or "")[:400]
            raise PersistenceError(f"{method} {table} returned status {resp.status_code}: {body_preview}")
        return resp

    def fetch_user(self, email: str) -> Optional[Dict[str, Any]]:
        resp = self._request(
            "GET",
            self.users_table,
            params={"select": "*", "user_email": f"eq.{email}"},
        )
        rows = self._decode_rows(resp)
        return rows[0] if rows else None

    def fetch_log_data(self, email: str) -> Optional[str]:
        resp = self._request(
            "GET",
            self.users_table,
            params={"select": "log_data", "user_email": f"eq.{email}"},
        )
        rows = self._decode_rows(resp)
        if not rows:
            return None
        value = rows[0].get("log_data")
        if value is None or isinstance(value, str):
            return value
        # jsonb columns come back already decoded
        return json.dumps(value, ensure_ascii=False)

    def update_user(self, email: str, fields: Dict[str, Any]) -> None:
        self._request(
            "PATCH",
            self.users_table,
            params={"user_email": f"eq.{email}"},
            json=fields,
        )
        logger.info("Updated %s for %s: columns=%s", self.users_table, email, sorted(fields))

    def insert_action(self, email: str) -> None:
        self._request("POST", self.actions_table, json={"user_email": email})

    @staticmethod
    def _decode_rows(resp: requests.Response) -> List[Dict[str, Any]]:
        try:
            rows = resp.json()
        except ValueError as e:
            raise PersistenceError("Record store returned a non-JSON body.") from e
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise PersistenceError("Record store returned an unexpected row format.")
        return rows

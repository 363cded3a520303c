# aicounsel/memory/repository.py
"""
Conversation log persistence.

The whole log is written as one JSON document into the ``log_data`` column of
the user's row. Saves are best-effort: they run on a detached thread, and a
failure is logged without reaching the conversation screen. Loads never
raise either; a missing or corrupt record reads as an empty conversation.
"""

import json
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol

from aicounsel.core.errors import PersistenceError
from aicounsel.core.messages import Role, Turn
from aicounsel.memory.models import LogRecord, now_iso
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)


class RecordStore(Protocol):
    def fetch_user(self, email: str) -> Optional[Dict[str, Any]]: ...
    def fetch_log_data(self, email: str) -> Optional[str]: ...
    def update_user(self, email: str, fields: Dict[str, Any]) -> None: ...
    def insert_action(self, email: str) -> None: ...


def serialize_log(log: List[Dict[str, str]], timestamp: str) -> str:
    record = LogRecord(log=[dict(entry) for entry in log], last_updated_at=timestamp)
    return json.dumps(record.to_dict(), ensure_ascii=False)


def parse_log_data(log_data: str) -> List[Turn]:
    """
    Rebuild turns from a stored ``log_data`` JSON string.
    Raises PersistenceError if the document is not a {"log": [...]} object.
    Entries without string role/content, or with an unknown role, are skipped.
    """
    try:
        document = json.loads(log_data)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"log_data is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise PersistenceError("log_data is not a JSON object.")
    entries = document.get("log")
    if not isinstance(entries, list):
        raise PersistenceError("log_data has no 'log' array.")

    turns: List[Turn] = []
    for raw in entries:
        if not isinstance(raw, dict):
            continue
        content = raw.get("content")
        role = raw.get("role")
        if not isinstance(content, str) or not isinstance(role, str):
            continue
        try:
            parsed_role = Role(role)
        except ValueError:
            logger.warning("Skipping stored log entry with unknown role %r", role)
            continue
        turns.append(Turn(text=content, role=parsed_role, is_received=parsed_role is Role.ASSISTANT))
    return turns


class LogPersistenceAdapter:
    def __init__(
        self,
        store: RecordStore,
        email_provider: Callable[[], Optional[str]],
        clock: Callable[[], str] = now_iso,
    ) -> None:
        self.store = store
        self._email_provider = email_provider
        self._clock = clock

    def save_now(self, log: List[Dict[str, str]]) -> None:
        """
        Overwrite the stored log of the current user. Raises PersistenceError.
        """
        email = (self._email_provider() or "").strip()
        if not email:
            raise PersistenceError("No user email is stored; cannot save the conversation log.")

        log_data = serialize_log(log, self._clock())
        self.store.update_user(email, {"log_data": log_data})
        logger.info("Saved conversation log for %s: entries=%d", email, len(log))

    def save(self, log: List[Dict[str, str]]) -> threading.Thread:
        """
        Fire-and-forget save. Returns the worker thread so callers may join it.
        """
        snapshot = [dict(entry) for entry in log]
        worker = threading.Thread(target=self._save_logged, args=(snapshot,), daemon=True)
        worker.start()
        return worker

    def _save_logged(self, log: List[Dict[str, str]]) -> None:
        try:
            self.save_now(log)
        except PersistenceError as e:
            logger.error("Failed to save conversation log: %s", e)

    def try_load(self, email: str) -> List[Turn]:
        """Load the stored log for ``email``. Raises PersistenceError."""
        log_data = self.store.fetch_log_data(email)
        if log_data is None:
            raise PersistenceError(f"No stored log for {email!r}.")
        return parse_log_data(log_data)

    def load(self, email: Optional[str]) -> List[Turn]:
        """Load the stored log; any failure is logged and yields []."""
        if not email:
            logger.info("No user email stored; starting with an empty conversation.")
            return []
        try:
            turns = self.try_load(email)
        except PersistenceError as e:
            logger.warning("Could not load conversation log for %s: %s", email, e)
            return []
        logger.info("Loaded conversation log for %s: turns=%d", email, len(turns))
        return turns

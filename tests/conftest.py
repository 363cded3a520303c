import os
import tempfile
import threading
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

# Keep log files out of the source tree while testing.
os.environ.setdefault("AICOUNSEL_LOG_DIR", tempfile.mkdtemp(prefix="aicounsel-logs-"))

from aicounsel.core.errors import TransportError  # noqa: E402
from aicounsel.memory.db import SqliteRecordStore  # noqa: E402
from aicounsel.memory.repository import LogPersistenceAdapter  # noqa: E402

FIXED_TS = "2024-05-01T09:30:00+09:00"
EMAIL = "user@example.com"


class FakeResponse:
    def __init__(self, status_code: int = 200, json_body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._json = json_body
        self.text = text if text is not None else ("" if json_body is None else repr(json_body))

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeHttpSession:
    """Stands in for requests.Session; replays queued responses or exceptions."""

    def __init__(self, *outcomes: Any) -> None:
        self.headers: Dict[str, str] = {}
        self.outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    def _next(self) -> Any:
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": "POST", "url": url, **kwargs})
        return self._next()

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._next()


def completion_body(content: str) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    }


class FakeCompletion:
    """Replays replies (str) or raises (exceptions) per call; records inputs."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.requests: List[List[Dict[str, str]]] = []

    def send(self, messages: List[Dict[str, str]]) -> str:
        self.requests.append([dict(m) for m in messages])
        outcome = self.outcomes.pop(0) if self.outcomes else TransportError("no more replies")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeSpeech:
    def __init__(self, audio: bytes = b"ID3fake-mp3", error: Optional[BaseException] = None) -> None:
        self.audio = audio
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.audio)


class GatedSpeech(FakeSpeech):
    """Speech endpoint that blocks until ``release`` is set."""

    def __init__(self, release: threading.Event, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.release = release
        self.started = threading.Event()

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.started.set()
        self.release.wait(timeout=5)
        return super().create(**kwargs)


def fake_openai_client(speech: FakeSpeech) -> SimpleNamespace:
    return SimpleNamespace(audio=SimpleNamespace(speech=speech))


class RecordingPlayer:
    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.played: List[str] = []
        self.error = error

    def __call__(self, path: str) -> None:
        self.played.append(path)
        if self.error is not None:
            raise self.error


@pytest.fixture
def store(tmp_path):
    return SqliteRecordStore(str(tmp_path / "aicounsel.db"))


@pytest.fixture
def persistence(store):
    return LogPersistenceAdapter(store, lambda: EMAIL, clock=lambda: FIXED_TS)

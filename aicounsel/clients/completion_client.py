# aicounsel/clients/completion_client.py
#
# Single integration point for the chat-completion endpoint.
# One request per call: no retries, no streaming, the whole body is awaited.

import random
import time
from typing import Any, Dict, List, Optional

import requests

from aicounsel.config.settings import Settings
from aicounsel.core.errors import ResponseFormatError, TransportError
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)

CHAT_COMPLETIONS_PATH = "chat/completions"


def _mk_req_id(prefix: str = "req") -> str:
    return f"{prefix}_{int(time.time()*1000)}_{random.randint(1000, 9999)}"


def _join_api(base_v1: str, path_no_leading_slash: str) -> str:
    b = (base_v1 or "").rstrip("/")
    p = (path_no_leading_slash or "").lstrip("/")
    return f"{b}/{p}"


def extract_reply(payload: Any, status_code: Optional[int] = None) -> str:
    """
    Pull ``choices[0].message.content`` out of a decoded response body.
    Raises ResponseFormatError if any step of the path is missing.
    """
    if not isinstance(payload, dict):
        raise ResponseFormatError("Response body is not a JSON object.", status_code)

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            raise ResponseFormatError(f"Endpoint returned an error: {error['message']}", status_code)
        raise ResponseFormatError("Response has no 'choices' array.", status_code)

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise ResponseFormatError("First choice has no 'message' object.", status_code)

    content = message.get("content")
    if not isinstance(content, str):
        raise ResponseFormatError("Message has no string 'content'.", status_code)
    return content


class CompletionClient:
    """HTTP client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        http_session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = _join_api(api_base, CHAT_COMPLETIONS_PATH)
        self.timeout = timeout
        self._http = http_session or requests.Session()
        self._http.headers.update({"User-Agent": "aicounsel/chat-client (requests)"})

    @classmethod
    def from_settings(cls, settings: Settings, http_session: Optional[requests.Session] = None) -> "CompletionClient":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            api_base=settings.openai_api_base,
            timeout=settings.openai_timeout_seconds,
            http_session=http_session,
        )

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return {"model": self.model, "messages": messages}

    def send(self, messages: List[Dict[str, str]]) -> str:
        """
        POST ``messages`` (order untouched) and return the assistant reply.

        Raises TransportError when the request itself fails and
        ResponseFormatError when the body is not the expected shape.
        """
        req_id = _mk_req_id("chat")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        logger.info("[chat] req_id=%s start model=%s msg_count=%d", req_id, self.model, len(messages))

        t0 = time.monotonic()
        try:
            resp = self._http.post(
                self.url,
                headers=headers,
                json=self.build_payload(messages),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            dt_ms = int((time.monotonic() - t0) * 1000)
            logger.error("[chat] req_id=%s transport failure latency_ms=%d err=%s", req_id, dt_ms, e)
            raise TransportError("Could not reach the completion endpoint.", cause=e) from e

        dt_ms = int((time.monotonic() - t0) * 1000)
        try:
            payload = resp.json()
        except ValueError as e:
            body_preview = (resp.text or "")[:400]
            logger.error("[chat] req_id=%s non-JSON body status=%d body=%r", req_id, resp.status_code, body_preview)
            raise ResponseFormatError("Response body is not valid JSON.", resp.status_code) from e

        try:
            content = extract_reply(payload, resp.status_code)
        except ResponseFormatError as e:
            logger.error("[chat] req_id=%s bad response status=%d latency_ms=%d err=%s",
                         req_id, resp.status_code, dt_ms, e)
            raise

        snippet = content[:240] + ("..." if len(content) > 240 else "")
        logger.info("[chat] req_id=%s OK latency_ms=%d model=%s reply=%r", req_id, dt_ms, self.model, snippet)
        return content

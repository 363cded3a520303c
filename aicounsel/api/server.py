# aicounsel/api/server.py
"""
HTTP API for the counseling chat, driven by the mobile client.

- POST   /sessions                 : chat screen entry (loads the stored log)
- GET    /sessions/{id}            : current transcript
- POST   /sessions/{id}/messages   : send one message (text or voice), get the reply
- DELETE /sessions/{id}            : chat screen exit
- POST   /profile                  : first-run profile registration
- GET    /health                   : basic health check

Every session object belongs to one screen instance; there is no shared
conversation state between sessions.

Run with:  uvicorn aicounsel.api.server:get_app --factory
"""

import time
import uuid
from datetime import date
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from aicounsel.config.settings import load_settings
from aicounsel.core.bootstrap import Services, build_services
from aicounsel.core.chat import CounselingSession
from aicounsel.core.errors import PersistenceError, RegistrationError
from aicounsel.core.messages import ResponseChannel, Turn
from aicounsel.core.registration import REGISTRATION_SUCCEEDED, register_user
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TurnModel(BaseModel):
    text: str
    role: str
    is_received: bool

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnModel":
        return cls(text=turn.text, role=turn.role.value, is_received=turn.is_received)


class SessionCreateRequest(BaseModel):
    email: Optional[str] = Field(
        default=None,
        description="User email; defaults to the email stored in local settings.",
    )
    voice: bool = Field(default=False, description="Voice chat screen: replies are also spoken.")


class SessionResponse(BaseModel):
    session_id: str
    turns: List[TurnModel]


class ChatRequest(BaseModel):
    message: str = Field(..., description="User message in plain text.")
    channel: ResponseChannel = Field(default=ResponseChannel.TEXT, description="text / voice")


class ChatResponse(BaseModel):
    reply: str
    ok: bool
    speaking: bool = False
    turns: List[TurnModel]


class ProfileRequest(BaseModel):
    email: str
    nickname: str = ""
    birthdate: date
    gender: Optional[str] = Field(default=None, description="male / female / unspecified")


class ProfileResponse(BaseModel):
    email: str
    nickname: str
    birthdate: str
    gender: str
    message: str


def _turn_models(session: CounselingSession) -> List[TurnModel]:
    return [TurnModel.from_turn(t) for t in session.turns]


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(services: Services) -> FastAPI:
    app = FastAPI(
        title="AI Counseling API",
        description="Counseling chat with persisted conversation logs.",
        version="1.0.0",
    )
    sessions: Dict[str, CounselingSession] = {}
    app.state.services = services
    app.state.sessions = sessions

    def _get_session(session_id: str) -> CounselingSession:
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id!r}.")
        return session

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "ok", "sessions": len(sessions)}

    @app.post("/sessions", response_model=SessionResponse)
    def open_session(req: SessionCreateRequest) -> SessionResponse:
        session_id = uuid.uuid4().hex
        session = services.new_session(voice=req.voice, email=req.email)
        session.enter()
        sessions[session_id] = session
        logger.info("[sessions] opened session_id=%s turns=%d", session_id, len(session.turns))
        return SessionResponse(session_id=session_id, turns=_turn_models(session))

    @app.get("/sessions/{session_id}", response_model=SessionResponse)
    def get_session(session_id: str) -> SessionResponse:
        session = _get_session(session_id)
        return SessionResponse(session_id=session_id, turns=_turn_models(session))

    @app.post("/sessions/{session_id}/messages", response_model=ChatResponse)
    def send_message(session_id: str, req: ChatRequest) -> ChatResponse:
        session = _get_session(session_id)
        request_id = str(uuid.uuid4())
        start_time = time.monotonic()
        logger.info("[messages] request_id=%s session_id=%s channel=%s message_len=%d",
                    request_id, session_id, req.channel.value, len(req.message))
        if req.channel == ResponseChannel.VOICE and not services.attach_voice(session):
            logger.warning("[messages] request_id=%s voice requested but speech is not configured", request_id)
        try:
            result = session.exchange(req.message, channel=req.channel)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        latency_ms = int((time.monotonic() - start_time) * 1000)
        logger.info("[messages] request_id=%s ok=%s latency_ms=%d", request_id, result.ok, latency_ms)
        return ChatResponse(
            reply=result.reply,
            ok=result.ok,
            speaking=result.speech is not None,
            turns=_turn_models(session),
        )

    @app.delete("/sessions/{session_id}")
    def close_session(session_id: str) -> dict:
        session = _get_session(session_id)
        session.close()
        del sessions[session_id]
        logger.info("[sessions] closed session_id=%s", session_id)
        return {"status": "closed", "session_id": session_id}

    @app.post("/profile", response_model=ProfileResponse)
    def register_profile(req: ProfileRequest) -> ProfileResponse:
        try:
            profile = register_user(
                services.store,
                services.local,
                email=req.email,
                nickname=req.nickname,
                birthdate=req.birthdate,
                gender=req.gender,
                offset_hours=services.settings.timestamp_utc_offset_hours,
            )
        except RegistrationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except PersistenceError as e:
            logger.error("[profile] registration failed for %s: %s", req.email, e)
            raise HTTPException(status_code=502, detail="Failed to store the profile.")
        return ProfileResponse(
            email=profile.email,
            nickname=profile.nickname,
            birthdate=profile.birthdate,
            gender=profile.gender.value,
            message=REGISTRATION_SUCCEEDED,
        )

    return app


def get_app() -> FastAPI:
    """uvicorn factory: configuration errors surface here, at startup."""
    return create_app(build_services(load_settings()))

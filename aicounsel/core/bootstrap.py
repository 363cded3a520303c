# aicounsel/core/bootstrap.py

from dataclasses import dataclass
from typing import Callable, Optional

from aicounsel.audio.service import (
    INTERJECTION_FILENAME,
    SPEECH_FILENAME,
    InterjectionVoice,
    SpeechSynthesizer,
    make_openai_client,
)
from aicounsel.clients.completion_client import CompletionClient
from aicounsel.config.local_store import LocalSettings
from aicounsel.config.settings import Settings, load_persona_prompt
from aicounsel.core.chat import CounselingSession
from aicounsel.core.log_builder import ConversationLogBuilder
from aicounsel.memory.backend import RestRecordStore
from aicounsel.memory.db import SqliteRecordStore
from aicounsel.memory.models import now_iso
from aicounsel.memory.repository import LogPersistenceAdapter, RecordStore


def build_store(settings: Settings) -> RecordStore:
    if settings.store == "sqlite":
        return SqliteRecordStore(settings.db_path)
    return RestRecordStore.from_settings(settings)


@dataclass
class Services:
    """Long-lived collaborators shared by every screen of one process."""

    settings: Settings
    store: RecordStore
    local: LocalSettings
    completion: CompletionClient
    persona: str
    synthesizer_factory: Optional[Callable[[str], SpeechSynthesizer]] = None

    def email(self) -> Optional[str]:
        return self.local.user_email

    def clock(self) -> str:
        return now_iso(self.settings.timestamp_utc_offset_hours)

    def new_session(self, voice: bool = False, email: Optional[str] = None) -> CounselingSession:
        """Build a fresh session for a screen; ``voice`` wires speech output."""
        email_provider = (lambda: email) if email else self.email
        persistence = LogPersistenceAdapter(self.store, email_provider, clock=self.clock)

        session = CounselingSession(
            builder=ConversationLogBuilder(self.persona),
            completion=self.completion,
            persistence=persistence,
            email_provider=email_provider,
        )
        if voice:
            self.attach_voice(session)
        return session

    def attach_voice(self, session: CounselingSession) -> bool:
        """Give ``session`` reply and interjection voices; False if speech is unavailable."""
        if session.synthesizer is not None:
            return True
        if self.synthesizer_factory is None:
            return False
        session.synthesizer = self.synthesizer_factory(SPEECH_FILENAME)
        session.interjection = InterjectionVoice(self.synthesizer_factory(INTERJECTION_FILENAME))
        return True


def build_services(settings: Settings) -> Services:
    client = None

    def synthesizer_factory(filename: str) -> SpeechSynthesizer:
        nonlocal client
        if client is None:
            client = make_openai_client(settings)
        return SpeechSynthesizer.from_settings(settings, client=client, filename=filename)

    return Services(
        settings=settings,
        store=build_store(settings),
        local=LocalSettings(settings.local_settings_path),
        completion=CompletionClient.from_settings(settings),
        persona=load_persona_prompt(),
        synthesizer_factory=synthesizer_factory,
    )

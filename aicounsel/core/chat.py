# aicounsel/core/chat.py

from dataclasses import dataclass, field
import threading
from typing import Callable, Dict, List, Optional

from aicounsel.audio.service import InterjectionVoice, SpeechSynthesizer
from aicounsel.clients.completion_client import CompletionClient
from aicounsel.core.errors import ResponseFormatError, TransportError
from aicounsel.core.log_builder import ConversationLogBuilder
from aicounsel.core.messages import ResponseChannel, Turn
from aicounsel.memory.repository import LogPersistenceAdapter
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)

# Shown as the assistant turn whenever the completion call fails
FALLBACK_REPLY = "エラーが発生しました。"

MAX_USER_TEXT_CHARS = 8000


@dataclass
class ExchangeResult:
    reply: str
    ok: bool
    error: Optional[Exception] = None
    save: Optional[threading.Thread] = None
    speech: Optional[threading.Thread] = None
    interjection: Optional[threading.Thread] = None


@dataclass
class SessionState:
    turns: List[Turn] = field(default_factory=list)


class CounselingSession:
    """
    One conversation context per chat screen.

    Created on screen entry, dropped on exit. Holds the screen's transcript
    and the builder's history buffer; nothing here is process-global.
    """

    def __init__(
        self,
        builder: ConversationLogBuilder,
        completion: CompletionClient,
        persistence: LogPersistenceAdapter,
        email_provider: Callable[[], Optional[str]],
        synthesizer: Optional[SpeechSynthesizer] = None,
        interjection: Optional[InterjectionVoice] = None,
    ) -> None:
        self.builder = builder
        self.completion = completion
        self.persistence = persistence
        self.synthesizer = synthesizer
        self.interjection = interjection
        self._email_provider = email_provider
        self.state = SessionState()

    @property
    def turns(self) -> List[Turn]:
        return list(self.state.turns)

    def enter(self) -> List[Turn]:
        """Screen entry: repopulate the transcript from the stored log."""
        self.state.turns = self.persistence.load(self._email_provider())
        return self.turns

    def transcript(self) -> List[Dict[str, str]]:
        return [turn.to_message() for turn in self.state.turns]

    def _request_reply(self, outbound: List[Dict[str, str]]) -> ExchangeResult:
        try:
            reply = self.completion.send(outbound)
        except (TransportError, ResponseFormatError) as e:
            logger.error("Completion failed (%s): %s; replying with fallback.", type(e).__name__, e)
            return ExchangeResult(reply=FALLBACK_REPLY, ok=False, error=e)
        return ExchangeResult(reply=reply, ok=True)

    def exchange(self, text: str, channel: ResponseChannel = ResponseChannel.TEXT) -> ExchangeResult:
        """
        Send one user message and fold the reply (or the fallback) into the
        transcript and history. The transcript is saved after every exchange,
        whether or not the completion succeeded.

        In voice mode the interjection and the reply audio are background
        jobs; their threads are returned on the result and never waited on.
        """
        cleaned = (text or "").strip()
        if not cleaned:
            raise ValueError("No meaningful input text was provided.")
        if len(cleaned) > MAX_USER_TEXT_CHARS:
            logger.warning(
                "User text length %d exceeds MAX_USER_TEXT_CHARS=%d; truncating.",
                len(cleaned),
                MAX_USER_TEXT_CHARS,
            )
            cleaned = cleaned[:MAX_USER_TEXT_CHARS]

        voice = channel == ResponseChannel.VOICE
        filler = self.interjection.speak() if voice and self.interjection is not None else None

        outbound = self.builder.build(cleaned, self.state.turns)
        result = self._request_reply(outbound)
        result.interjection = filler
        self.builder.record_reply(result.reply)

        self.state.turns.append(Turn.user(cleaned))
        self.state.turns.append(Turn.assistant(result.reply))

        result.save = self.persistence.save(self.transcript())

        if voice and result.ok and self.synthesizer is not None:
            result.speech = self.synthesizer.synthesize(result.reply)
        return result

    def send(self, text: str, channel: ResponseChannel = ResponseChannel.TEXT) -> str:
        return self.exchange(text, channel).reply

    def close(self) -> None:
        """Screen exit: drop the session-scoped history."""
        self.builder.reset()

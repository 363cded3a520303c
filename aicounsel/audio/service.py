# aicounsel/audio/service.py
"""
Speech synthesis for assistant replies.

Each synthesis is a background job: the text goes to the OpenAI speech
endpoint, the audio is written to one fixed file (each synthesis overwrites
the previous one) and then played. Jobs on one synthesizer run one at a time. Progress is exposed as a four-state lifecycle that screens observe:

    NOT_STARTED -> LOADING -> LOADED -> FINISHED_PLAYING

Any failure is logged as a SynthesisError and the lifecycle goes back to the
state it had before the call; nothing is raised to the screen.
"""

from __future__ import annotations

import random
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import openai
from playsound import playsound

from aicounsel.config.settings import Settings
from aicounsel.core.errors import SynthesisError
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)

SPEECH_FILENAME = "speech"
INTERJECTION_FILENAME = "interjection"

# Short fillers voiced while a reply is pending in voice mode
INTERJECTIONS = ["うーん", "あーー", "あ、はい", "えーーと", "ええ、", "ん〜〜と", "おお！", "うーん、うん"]

MAX_TTS_TEXT_LEN = 4096


class SpeechState(str, Enum):
    NOT_STARTED = "not_started"
    LOADING = "loading"
    LOADED = "loaded"
    FINISHED_PLAYING = "finished_playing"


StateListener = Callable[[SpeechState], None]


def make_openai_client(settings: Settings) -> "openai.OpenAI":
    return openai.OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_api_base)


class SpeechSynthesizer:
    def __init__(
        self,
        client: "openai.OpenAI",
        output_dir: Path | str,
        model: str = "tts-1",
        voice: str = "alloy",
        audio_format: str = "mp3",
        speed: float = 1.0,
        player: Callable[[str], None] = playsound,
        filename: str = SPEECH_FILENAME,
    ) -> None:
        self._client = client
        self.model = model
        self.voice = voice
        self.audio_format = audio_format
        self.speed = speed
        self._player = player
        self.output_path = Path(output_dir) / f"{filename}.{audio_format}"

        self._lock = threading.Lock()
        self._state = SpeechState.NOT_STARTED
        self._listeners: List[StateListener] = []
        self._playback: Optional[threading.Thread] = None
        # serializes fetch, write and playback of the fixed output file
        self._job_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: Optional["openai.OpenAI"] = None,
        player: Callable[[str], None] = playsound,
        filename: str = SPEECH_FILENAME,
    ) -> "SpeechSynthesizer":
        return cls(
            client=client or make_openai_client(settings),
            output_dir=settings.speech_output_dir,
            model=settings.openai_tts_model,
            voice=settings.openai_tts_voice,
            audio_format=settings.openai_tts_audio_format,
            speed=settings.openai_tts_speed,
            player=player,
            filename=filename,
        )

    # ---------- lifecycle ----------

    @property
    def state(self) -> SpeechState:
        with self._lock:
            return self._state

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: SpeechState) -> None:
        with self._lock:
            if self._state is state:
                return
            self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning("Speech state listener raised: %s", e)

    # ---------- synthesis ----------

    def _fetch_audio(self, text: str) -> bytes:
        try:
            response = self._client.audio.speech.create(
                model=self.model,
                input=text,
                voice=self.voice,
                response_format=self.audio_format,
                speed=self.speed,
            )
        except openai.OpenAIError as e:
            raise SynthesisError(f"Speech endpoint failed: {e}") from e

        audio_bytes = getattr(response, "content", b"") or b""
        if not audio_bytes:
            raise SynthesisError("Speech endpoint returned no audio.")
        return audio_bytes

    def _write_audio(self, audio_bytes: bytes) -> Path:
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_bytes(audio_bytes)
        except OSError as e:
            raise SynthesisError(f"Failed to write audio to {self.output_path}: {e}") from e
        return self.output_path

    def synthesize(self, text: str) -> Optional[threading.Thread]:
        """
        Start voicing ``text`` and return the worker thread at once. The
        speech request, file write and playback all run on that worker; a
        failure there is logged and the state held before the job restored.
        Returns None when there is nothing to say.
        """
        cleaned = (text or "").strip()
        if not cleaned:
            logger.warning("[tts] %s", SynthesisError("Cannot synthesize speech from empty text."))
            return None
        if len(cleaned) > MAX_TTS_TEXT_LEN:
            logger.warning("[tts] text length %d exceeds %d; truncating.", len(cleaned), MAX_TTS_TEXT_LEN)
            cleaned = cleaned[:MAX_TTS_TEXT_LEN]
        return self._start_job(self._synthesize_job, cleaned)

    def replay(self) -> Optional[threading.Thread]:
        """Play the last synthesized file again."""
        if not self.output_path.exists():
            logger.warning("[tts] nothing to replay at %s", self.output_path)
            return None
        return self._start_job(self._replay_job)

    def _start_job(self, target: Callable[..., None], *args: str) -> threading.Thread:
        worker = threading.Thread(target=target, args=args, daemon=True)
        self._playback = worker
        worker.start()
        return worker

    def _synthesize_job(self, text: str) -> None:
        with self._job_lock:
            prior = self.state
            self._set_state(SpeechState.LOADING)
            t0 = time.monotonic()
            try:
                audio_bytes = self._fetch_audio(text)
                path = self._write_audio(audio_bytes)
            except SynthesisError as e:
                logger.error("[tts] synthesis failed: %s", e)
                self._set_state(prior)
                return

            latency_ms = int((time.monotonic() - t0) * 1000)
            logger.info("[tts] OK latency_ms=%d bytes=%d file=%s", latency_ms, len(audio_bytes), path)
            self._play(path, prior)

    def _replay_job(self) -> None:
        with self._job_lock:
            self._play(self.output_path, self.state)

    def _play(self, path: Path, prior: SpeechState) -> None:
        self._set_state(SpeechState.LOADED)
        try:
            self._player(str(path))
        except Exception as e:
            # playsound raises its own exception types per platform
            logger.error("[tts] %s", SynthesisError(f"Playback of {path} failed: {e}"))
            self._set_state(prior)
            return
        self._set_state(SpeechState.FINISHED_PLAYING)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the latest job (if any) ends."""
        worker = self._playback
        if worker is not None:
            worker.join(timeout)


class InterjectionVoice:
    """Voices a random filler word while the reply is being generated."""

    def __init__(self, synthesizer: SpeechSynthesizer, choices: Optional[List[str]] = None) -> None:
        self.synthesizer = synthesizer
        self.choices = list(choices or INTERJECTIONS)

    def pick(self) -> str:
        return random.choice(self.choices)

    def speak(self) -> Optional[threading.Thread]:
        return self.synthesizer.synthesize(self.pick())

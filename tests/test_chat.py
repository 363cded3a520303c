import json
import threading

import pytest

from aicounsel.audio.service import INTERJECTIONS, InterjectionVoice, SpeechState, SpeechSynthesizer
from aicounsel.core.chat import FALLBACK_REPLY, CounselingSession
from aicounsel.core.errors import ResponseFormatError, TransportError
from aicounsel.core.log_builder import ConversationLogBuilder
from aicounsel.core.messages import ResponseChannel, Turn

from conftest import EMAIL, FIXED_TS, FakeCompletion, GatedSpeech, RecordingPlayer, fake_openai_client

PERSONA = "このチャットボットは心の悩みに関するカウンセリングを行います。"


class StubSynthesizer:
    def __init__(self):
        self.spoken = []
        self.state = SpeechState.NOT_STARTED

    def synthesize(self, text):
        self.spoken.append(text)
        return None


def _session(persistence, completion, synthesizer=None):
    return CounselingSession(
        builder=ConversationLogBuilder(PERSONA),
        completion=completion,
        persistence=persistence,
        email_provider=lambda: EMAIL,
        synthesizer=synthesizer,
    )


def _stored(store):
    return json.loads(store.fetch_log_data(EMAIL))


def test_first_message_scenario(store, persistence):
    completion = FakeCompletion("眠れない日が続くのは辛いですね")
    session = _session(persistence, completion)
    session.enter()

    result = session.exchange("最近眠れません")
    result.save.join(timeout=5)

    assert result.ok
    assert result.reply == "眠れない日が続くのは辛いですね"
    assert completion.requests[0][0] == {"role": "system", "content": PERSONA}
    assert _stored(store) == {
        "log": [
            {"role": "user", "content": "最近眠れません"},
            {"role": "assistant", "content": "眠れない日が続くのは辛いですね"},
        ],
        "last_updated_at": FIXED_TS,
    }


def test_transcript_gets_user_and_assistant_turns(persistence):
    session = _session(persistence, FakeCompletion("reply"))

    session.send("hello")

    assert session.turns == [Turn.user("hello"), Turn.assistant("reply")]


def test_malformed_response_falls_back_and_is_saved(store, persistence):
    completion = FakeCompletion(ResponseFormatError("no choices", 200), "二回目の返事")
    session = _session(persistence, completion)

    first = session.exchange("こんにちは")
    first.save.join(timeout=5)

    assert not first.ok
    assert first.reply == FALLBACK_REPLY
    assert _stored(store)["log"][-1] == {"role": "assistant", "content": FALLBACK_REPLY}

    second = session.exchange("聞こえますか")
    second.save.join(timeout=5)

    # the fallback is remembered in the history sent with the next request
    history_part = completion.requests[1][2:]
    assert {"role": "assistant", "content": FALLBACK_REPLY} in history_part
    assert FALLBACK_REPLY in [entry["content"] for entry in _stored(store)["log"]]


def test_transport_error_also_falls_back(persistence):
    session = _session(persistence, FakeCompletion(TransportError("offline")))
    result = session.exchange("hello")
    result.save.join(timeout=5)
    assert result.reply == FALLBACK_REPLY
    assert isinstance(result.error, TransportError)


def test_second_request_carries_transcript_and_history(persistence):
    completion = FakeCompletion("a1", "a2")
    session = _session(persistence, completion)

    session.send("u1")
    session.send("u2")

    assert completion.requests[1] == [
        {"role": "user", "content": "u1"},
        {"role": "assistant", "content": "a1"},
        {"role": "user", "content": "u1"},
        {"role": "assistant", "content": "a1"},
        {"role": "user", "content": "u2"},
    ]


def test_enter_restores_stored_log(store, persistence):
    persistence.save_now([
        {"role": "user", "content": "前回の相談"},
        {"role": "assistant", "content": "お話しいただきありがとうございます"},
    ])
    completion = FakeCompletion("続きですね")
    session = _session(persistence, completion)

    turns = session.enter()

    assert [t.text for t in turns] == ["前回の相談", "お話しいただきありがとうございます"]
    assert turns[1].is_received

    result = session.exchange("続きです")
    result.save.join(timeout=5)
    assert completion.requests[0][0] == {"role": "user", "content": "前回の相談"}
    assert len(_stored(store)["log"]) == 4


def test_enter_with_corrupt_log_starts_empty(store, persistence):
    store.update_user(EMAIL, {"log_data": "not json"})
    session = _session(persistence, FakeCompletion())
    assert session.enter() == []


def test_voice_channel_speaks_successful_replies_only(persistence):
    synth = StubSynthesizer()
    session = _session(persistence, FakeCompletion("声で返事", TransportError("down")), synthesizer=synth)

    session.send("voice input", channel=ResponseChannel.VOICE)
    session.send("again", channel=ResponseChannel.VOICE)

    assert synth.spoken == ["声で返事"]


def test_text_channel_does_not_speak(persistence):
    synth = StubSynthesizer()
    session = _session(persistence, FakeCompletion("text reply"), synthesizer=synth)
    session.send("hi")
    assert synth.spoken == []


def test_empty_input_is_rejected(persistence):
    session = _session(persistence, FakeCompletion())
    with pytest.raises(ValueError):
        session.send("   ")


def test_close_drops_history(persistence):
    session = _session(persistence, FakeCompletion("a"))
    session.send("u")
    session.close()
    assert len(session.builder.history) == 0


def test_voice_exchange_does_not_wait_for_speech(tmp_path, persistence):
    release = threading.Event()
    speech = GatedSpeech(release)
    player = RecordingPlayer()
    client = fake_openai_client(speech)
    reply_voice = SpeechSynthesizer(client=client, output_dir=tmp_path, player=player)
    filler = InterjectionVoice(SpeechSynthesizer(client=client, output_dir=tmp_path, player=player,
                                                 filename="interjection"))

    completion = FakeCompletion("声で返事")
    speech_done_at_send = []
    reply_for = completion.send

    def send(messages):
        speech_done_at_send.append(release.is_set())
        return reply_for(messages)

    completion.send = send
    session = CounselingSession(
        builder=ConversationLogBuilder(PERSONA),
        completion=completion,
        persistence=persistence,
        email_provider=lambda: EMAIL,
        synthesizer=reply_voice,
        interjection=filler,
    )

    result = session.exchange("眠れません", channel=ResponseChannel.VOICE)

    # the speech endpoint is still blocked, yet the reply is already here
    assert speech_done_at_send == [False]
    assert result.reply == "声で返事"
    assert result.interjection.is_alive()
    assert result.speech.is_alive()

    release.set()
    for worker in (result.interjection, result.speech, result.save):
        worker.join(timeout=5)

    spoken = [call["input"] for call in speech.calls]
    assert "声で返事" in spoken
    assert any(word in INTERJECTIONS for word in spoken)
    assert reply_voice.state is SpeechState.FINISHED_PLAYING

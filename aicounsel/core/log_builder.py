# aicounsel/core/log_builder.py
"""
Assembles the message list sent to the completion endpoint.

The outbound list is the screen's transcript (or the persona seed when the
transcript is empty) followed by the session history buffer. Both carry the
same exchanges once a conversation is under way; the duplication is kept on
purpose as a second copy of the context.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

from aicounsel.core.messages import Role, Turn
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class HistoryBuffer:
    """
    Session-scoped record of what was sent and received.

    Each entry keeps its role explicitly instead of deriving it from the
    index, so a skipped or repeated append cannot shift later roles.
    """

    def __init__(self) -> None:
        self._entries: List[HistoryEntry] = []

    def record_user(self, content: str) -> None:
        self._entries.append(HistoryEntry(Role.USER, content))

    def record_assistant(self, content: str) -> None:
        self._entries.append(HistoryEntry(Role.ASSISTANT, content))

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))


def build_outbound_messages(
    turns: Sequence[Turn],
    history: Sequence[HistoryEntry],
    persona: str,
) -> List[Dict[str, str]]:
    """
    Produce the exact ordered list for the completion request.

    Empty ``turns`` -> a single system entry with the persona, otherwise every
    turn in order; then every history entry in order.
    """
    if not turns:
        messages = [{"role": Role.SYSTEM.value, "content": persona}]
    else:
        messages = [turn.to_message() for turn in turns]

    messages.extend(entry.to_message() for entry in history)
    return messages


class ConversationLogBuilder:
    def __init__(self, persona: str, history: Optional[HistoryBuffer] = None) -> None:
        self.persona = persona
        self.history = history if history is not None else HistoryBuffer()

    def build(self, user_input: str, turns: Sequence[Turn]) -> List[Dict[str, str]]:
        """
        Record ``user_input`` in the history buffer and return the outbound
        list. The input reaches the model through its history copy only.
        """
        self.history.record_user(user_input)
        messages = build_outbound_messages(turns, self.history.entries(), self.persona)
        logger.info(
            "Built outbound messages: turns=%d history=%d total=%d seeded=%s",
            len(turns),
            len(self.history),
            len(messages),
            not turns,
        )
        return messages

    def record_reply(self, reply: str) -> None:
        self.history.record_assistant(reply)

    def reset(self) -> None:
        self.history.clear()

# aicounsel/core/messages.py

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ResponseChannel(str, Enum):
    """
    Where the reply will be consumed.

    TEXT  : text chat screen.
    VOICE : voice chat screen; the reply is also synthesized and played.
    """
    TEXT = "text"
    VOICE = "voice"


@dataclass(frozen=True)
class Turn:
    """One message of the conversation as the screen shows it."""

    text: str
    role: Role
    is_received: bool = False

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(text=text, role=Role.USER, is_received=False)

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(text=text, role=Role.ASSISTANT, is_received=True)

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.text}

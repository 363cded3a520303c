# aicounsel/core/errors.py
"""
Error taxonomy for the counseling service.

Only ConfigurationError is fatal (raised at startup). Completion errors are
turned into an apology turn by the session; persistence and synthesis errors
are logged and otherwise ignored so the conversation keeps going.
"""

from typing import Optional


class AICounselError(Exception):
    """Base class for all application errors."""


class ConfigurationError(AICounselError, RuntimeError):
    """Required configuration is missing or invalid."""


class TransportError(AICounselError):
    """Network/connectivity failure talking to a remote endpoint."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class ResponseFormatError(AICounselError):
    """A response arrived but did not have the expected shape."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(AICounselError):
    """Reading or writing the backend record store failed."""


class SynthesisError(AICounselError):
    """Speech endpoint, local audio file or playback failure."""


class RegistrationError(AICounselError, ValueError):
    """Profile input rejected; the message is shown to the user as-is."""

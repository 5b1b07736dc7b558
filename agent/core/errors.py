from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    """Base class for errors raised by the chat backend."""


class ConfigurationError(ChatError):
    """Required settings are missing or invalid."""


class SessionNotFoundError(ChatError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class AssistantRunError(ChatError):
    """The assistant run ended in a state other than ``completed``."""

    def __init__(self, message: str, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class AssistantRunTimeoutError(AssistantRunError):
    """The assistant run did not complete before the deadline."""

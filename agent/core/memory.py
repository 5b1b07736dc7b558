from __future__ import annotations

"""Server-side conversation memory.

Sessions live in process memory only and disappear on restart. The
``SessionStore`` interface keeps the engines and routes independent of the
backing map so it can be swapped for an external cache later.
"""

import asyncio
import logging
import secrets
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from agent.core.errors import SessionNotFoundError
from agent.core.models import Message, SearchResult
from agent.core.prompt import WELCOME_MESSAGE


logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_TOKEN_LENGTH = 13


def generate_session_id() -> str:
    """Two concatenated random base-36 tokens (26 characters)."""
    return "".join(
        secrets.choice(_ID_ALPHABET) for _ in range(_ID_TOKEN_LENGTH * 2)
    )


@dataclass
class Session:
    id: str
    history: List[Message] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    thread_id: Optional[str] = None
    thread_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def add_user_message(self, content: str) -> None:
        self.history.append(Message(role="user", content=content))

    def add_bot_message(self, content: str, results: Optional[List[SearchResult]] = None) -> None:
        self.history.append(Message(role="bot", content=content, results=results))

    def assign_thread(self, thread_id: str) -> None:
        if self.thread_id is not None and self.thread_id != thread_id:
            raise ValueError(
                f"Session {self.id} is already bound to thread {self.thread_id}"
            )
        self.thread_id = thread_id


def new_session(session_id: str, now: Optional[float] = None) -> Session:
    session = Session(id=session_id, created_at=time.time() if now is None else now)
    session.add_bot_message(WELCOME_MESSAGE)
    return session


class SessionStore(ABC):
    @abstractmethod
    def create(self) -> Session:
        ...

    @abstractmethod
    def get(self, session_id: str) -> Session:
        """Return the session or raise ``SessionNotFoundError``."""

    @abstractmethod
    def get_or_create(self, session_id: str) -> Session:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    def sweep(self, now: float, max_age: float) -> int:
        """Drop sessions older than ``max_age`` seconds; return how many went."""


class InMemorySessionStore(SessionStore):
    """Dict-backed store for a single process running one event loop."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> Session:
        session_id = generate_session_id()
        while session_id in self._sessions:
            session_id = generate_session_id()
        session = new_session(session_id)
        self._sessions[session_id] = session
        logger.info("Session created: %s (active=%s)", session_id, len(self._sessions))
        return session

    def get(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = new_session(session_id)
            self._sessions[session_id] = session
            logger.info("Session created implicitly: %s", session_id)
        return session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def sweep(self, now: float, max_age: float) -> int:
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.created_at > max_age
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info("Swept %s expired session(s), %s left", len(expired), len(self._sessions))
        return len(expired)

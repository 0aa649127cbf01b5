"""
DocChat - Conversation Memory
==============================
Per-session, in-process chat history with a sliding-window bound.

Session isolation is enforced: every operation is keyed by
``session_id`` and returns copies, so no caller can read or mutate
another session's turns.

Window
------
Each session keeps at most ``max_messages`` turns (default
``settings.MEMORY_MAX_MESSAGES`` = 20, i.e. about ten exchanges).
When the bound is exceeded the oldest turns are evicted first.

Concurrency
-----------
A single ``threading.Lock`` guards the session map.  Appends are
atomic: a turn is never partially written or duplicated.
``append_exchange`` writes a user/assistant pair under one lock
acquisition so concurrent requests on the same session cannot
interleave inside an exchange.  Ordering between concurrent requests
on the same session is last-write-wins.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from docchat.config.settings import settings
from docchat.src.utils.logger import get_logger

logger = get_logger(__name__)

Role = Literal["user", "assistant"]

DEFAULT_SESSION_ID = "default"

_VALID_ROLES: frozenset[str] = frozenset({"user", "assistant"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Turn:
    """One user message or assistant reply."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp.isoformat()}


class ConversationMemory:
    """
    Thread-safe store of ``Turn`` sequences keyed by session id.

    Parameters
    ----------
    max_messages
        Sliding-window bound per session.  Defaults to
        ``settings.MEMORY_MAX_MESSAGES``.
    """

    __slots__ = ("_max_messages", "_sessions", "_lock")

    def __init__(self, max_messages: int | None = None) -> None:
        self._max_messages: int = settings.MEMORY_MAX_MESSAGES if max_messages is None else max_messages
        if self._max_messages < 1:
            raise ValueError(f"max_messages must be ≥ 1, got {self._max_messages}")
        self._sessions: dict[str, deque[Turn]] = {}
        self._lock = threading.Lock()


    @property
    def max_messages(self) -> int:
        return self._max_messages


    def append(self, session_id: str, role: Role, content: str) -> None:
        """Append one turn, evicting the oldest turns beyond the window."""
        if role not in _VALID_ROLES:
            raise ValueError(f"role must be 'user' or 'assistant', got {role!r}")
        turn = Turn(role=role, content=content)
        with self._lock:
            self._session(session_id).append(turn)


    def append_exchange(self, session_id: str, user_content: str, assistant_content: str) -> None:
        """Append a user turn followed by an assistant turn atomically."""
        user_turn = Turn(role="user", content=user_content)
        assistant_turn = Turn(role="assistant", content=assistant_content)
        with self._lock:
            turns = self._session(session_id)
            turns.append(user_turn)
            turns.append(assistant_turn)
            size = len(turns)
        logger.debug("[MEMORY] session=%s now holds %d/%d turn(s).", session_id, size, self._max_messages)


    def get(self, session_id: str) -> list[Turn]:
        """Return the session's turns oldest-first; empty for unknown sessions."""
        with self._lock:
            turns = self._sessions.get(session_id)
            return list(turns) if turns else []


    def clear(self, session_id: str) -> None:
        """Discard every turn of *session_id*.  Unknown sessions are a no-op."""
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed:
            logger.info("[MEMORY] Cleared session=%s (%d turn(s)).", session_id, len(removed))


    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)


    def _session(self, session_id: str) -> deque[Turn]:
        # Caller must hold self._lock
        turns = self._sessions.get(session_id)
        if turns is None:
            turns = deque(maxlen=self._max_messages)
            self._sessions[session_id] = turns
        return turns


    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

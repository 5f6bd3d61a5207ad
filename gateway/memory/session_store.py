"""In-process, bounded conversation history per chat."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from gateway.turns import ConversationTurn


@dataclass
class Session:
    chat_id: int
    max_turns: int
    retain_turns: int
    messages: list[ConversationTurn] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def append(self, turn: ConversationTurn) -> None:
        """Append a turn, trimming from the oldest end to the retained window on overflow."""
        if turn.role == "system":
            raise ValueError("system turns are injected per request, never stored")
        if not turn.content:
            raise ValueError("cannot store a turn without content")
        self.messages.append(turn)
        if len(self.messages) > self.max_turns:
            del self.messages[: len(self.messages) - self.retain_turns]

    def recent(self, limit: int) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        return list(self.messages[-limit:])

    def clear(self) -> None:
        self.messages.clear()


class SessionStore:
    """Owns every chat's Session; callers hold `session.lock` while mutating it."""

    def __init__(self, *, max_turns: int = 10, retain_turns: int = 5) -> None:
        if retain_turns > max_turns:
            raise ValueError("retain_turns must not exceed max_turns")
        self._max_turns = max_turns
        self._retain_turns = retain_turns
        self._sessions: dict[int, Session] = {}

    def get(self, chat_id: int) -> Session:
        session = self._sessions.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id, max_turns=self._max_turns, retain_turns=self._retain_turns)
            self._sessions[chat_id] = session
        return session

    async def clear(self, chat_id: int) -> None:
        session = self.get(chat_id)
        async with session.lock:
            session.clear()

    def count(self) -> int:
        return len(self._sessions)

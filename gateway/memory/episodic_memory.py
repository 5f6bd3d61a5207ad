"""Episodic event store for dispatch and admin history."""

from __future__ import annotations

import json
import sqlite3
import threading
from typing import Any


class EpisodicMemoryStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        # Shared by the bot's event loop and the admin server threads.
        self._lock = threading.Lock()

    def record(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        chat_id: int | None = None,
        decision: str | None = None,
    ) -> int:
        with self._lock:
            cursor = self._conn.execute(
                """
                INSERT INTO episodic_memory (event_type, chat_id, decision, payload)
                VALUES (?, ?, ?, ?)
                """,
                (event_type, chat_id, decision, json.dumps(payload, ensure_ascii=True)),
            )
            self._conn.commit()
        return int(cursor.lastrowid)

    def latest(self, limit: int = 50, *, event_type: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT id, event_type, chat_id, decision, payload, created_at FROM episodic_memory"
        params: tuple[Any, ...] = (limit,)
        if event_type is not None:
            query += " WHERE event_type = ?"
            params = (event_type, limit)
        query += " ORDER BY id DESC LIMIT ?"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()

        events: list[dict[str, Any]] = []
        for row in rows:
            event = dict(row)
            event["payload"] = json.loads(event["payload"])
            events.append(event)
        return events

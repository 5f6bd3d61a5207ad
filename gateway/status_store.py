"""Persisted enabled/disabled flag and the gate that consults it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gateway.errors import StoreReadError

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class BotStatus:
    enabled: bool
    last_restart: str
    last_update: str | None = None

    @classmethod
    def default(cls) -> BotStatus:
        return cls(enabled=True, last_restart=_now_iso())

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BotStatus:
        return cls(
            enabled=bool(raw.get("enabled", True)),
            last_restart=str(raw.get("lastRestart") or _now_iso()),
            last_update=raw.get("lastUpdate"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"enabled": self.enabled, "lastRestart": self.last_restart}
        if self.last_update is not None:
            out["lastUpdate"] = self.last_update
        return out


class StatusStore:
    """Small JSON document holding the process-wide bot status."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> BotStatus:
        if not self._path.exists():
            return BotStatus.default()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreReadError(f"cannot read status file {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StoreReadError(f"status file must contain an object: {self._path}")
        return BotStatus.from_dict(raw)

    def write(self, status: BotStatus) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(status.to_dict(), ensure_ascii=True), encoding="utf-8")
        tmp.replace(self._path)

    def ensure(self) -> BotStatus:
        """Write the default status when the file does not exist yet."""
        if self._path.exists():
            return self.read()
        status = BotStatus.default()
        self.write(status)
        return status

    def apply_action(self, action: str) -> BotStatus:
        """Apply an admin action (enable, disable, restart) and persist the result."""
        try:
            status = self.read()
        except StoreReadError:
            logger.warning("Status file unreadable, resetting before %s", action)
            status = BotStatus.default()
        if action == "enable":
            status = replace(status, enabled=True, last_update=_now_iso())
        elif action == "disable":
            status = replace(status, enabled=False, last_update=_now_iso())
        elif action == "restart":
            status = replace(status, last_restart=_now_iso())
        else:
            raise ValueError(f"Invalid action: {action}")
        self.write(status)
        return status


class StatusGate:
    def __init__(self, store: StatusStore, bypass_token: str | None = None) -> None:
        self._store = store
        self._bypass_token = bypass_token or None

    def is_enabled(self) -> bool:
        try:
            return self._store.read().enabled
        except StoreReadError as exc:
            # Fail open: availability wins over admin control.
            logger.warning("Status read failed, assuming enabled: %s", exc)
            return True

    def allows(self, text: str | None) -> bool:
        """True when the update may proceed: bot enabled, or text carries the admin bypass token."""
        if self.is_enabled():
            return True
        if self._bypass_token and text and self._bypass_token in text:
            return True
        return False

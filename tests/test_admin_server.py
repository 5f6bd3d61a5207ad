from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any
from urllib import error, request

from gateway.admin.server import AdminServer, render_status_page
from gateway.memory.engine import MemoryEngine
from gateway.memory.episodic_memory import EpisodicMemoryStore
from gateway.profile import PersonaConfig
from gateway.status_store import BotStatus, StatusStore

PERSONA = PersonaConfig(
    name="Amethyst",
    creator="Amelit",
    website="https://example.test",
    support_chat="",
    capabilities="",
    short_description="Short <intro>",
    full_description="**Key capabilities:**\n• images",
)


class AdminServerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.store = StatusStore(root / "status.json")
        self.engine = MemoryEngine(root / "memory.db")
        self.engine.initialize()
        self.events = EpisodicMemoryStore(self.engine.connect())
        self.server = AdminServer(
            host="127.0.0.1",
            port=0,
            profile_name="amethyst",
            persona=PERSONA,
            status_store=self.store,
            admin_password="hunter2",
            episodic_memory=self.events,
        )
        self.server.start()
        self.base = f"http://127.0.0.1:{self.server.port}"

    def tearDown(self) -> None:
        self.server.stop()
        self.engine.close()
        self._tmp.cleanup()

    def _post(self, action: str, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        req = request.Request(
            f"{self.base}/?action={action}",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=5) as resp:  # noqa: S310
                return resp.status, json.loads(resp.read().decode("utf-8"))
        except error.HTTPError as exc:
            return exc.code, json.loads(exc.read().decode("utf-8"))

    def test_wrong_password_is_unauthorized(self) -> None:
        status, body = self._post("disable", {"password": "nope"})
        self.assertEqual(status, 401)
        self.assertEqual(body, {"error": "Unauthorized"})
        self.assertTrue(self.store.read().enabled)
        self.assertEqual(self.events.latest(limit=1)[0]["event_type"], "admin_action_rejected")

    def test_missing_password_is_unauthorized(self) -> None:
        status, _ = self._post("disable", {})
        self.assertEqual(status, 401)

    def test_disable_then_enable(self) -> None:
        status, body = self._post("disable", {"password": "hunter2"})
        self.assertEqual(status, 200)
        self.assertTrue(body["success"])
        self.assertFalse(body["status"]["enabled"])
        self.assertFalse(self.store.read().enabled)
        status, body = self._post("enable", {"password": "hunter2"})
        self.assertTrue(body["status"]["enabled"])

    def test_invalid_action(self) -> None:
        status, body = self._post("explode", {"password": "hunter2"})
        self.assertEqual(status, 400)
        self.assertEqual(body, {"error": "Invalid action"})

    def test_status_and_health_endpoints(self) -> None:
        with request.urlopen(f"{self.base}/status", timeout=5) as resp:  # noqa: S310
            body = json.loads(resp.read().decode("utf-8"))
        self.assertEqual(body["profile"], "amethyst")
        self.assertTrue(body["status"]["enabled"])
        with request.urlopen(f"{self.base}/health", timeout=5) as resp:  # noqa: S310
            self.assertEqual(json.loads(resp.read().decode("utf-8"))["status"], "ok")

    def test_logs_filter_by_event_type(self) -> None:
        self.events.record("message_processed", {"model": "m"}, chat_id=5)
        self.events.record("completion_failed", {"error": "x"}, chat_id=5, decision="deny")
        self.events.record("message_processed", {"model": "m"}, chat_id=6)
        with request.urlopen(f"{self.base}/logs?type=message_processed", timeout=5) as resp:  # noqa: S310
            events = json.loads(resp.read().decode("utf-8"))["events"]
        self.assertEqual([e["chat_id"] for e in events], [6, 5])
        self.assertEqual({e["event_type"] for e in events}, {"message_processed"})
        with request.urlopen(f"{self.base}/logs", timeout=5) as resp:  # noqa: S310
            everything = json.loads(resp.read().decode("utf-8"))["events"]
        self.assertEqual(everything[1]["event_type"], "completion_failed")

    def test_status_page_renders(self) -> None:
        with request.urlopen(f"{self.base}/", timeout=5) as resp:  # noqa: S310
            page = resp.read().decode("utf-8")
        self.assertIn("Amethyst AI Bot", page)
        self.assertIn("<b>Key capabilities:</b><br>", page)
        self.assertIn("Short &lt;intro&gt;", page)


class StatusPageTests(unittest.TestCase):
    def test_disabled_status_is_shown(self) -> None:
        page = render_status_page(PERSONA, BotStatus(enabled=False, last_restart="2025-01-01T00:00:00+00:00"))
        self.assertIn("status-disabled", page)
        self.assertIn("Last update: n/a", page)


if __name__ == "__main__":
    unittest.main()

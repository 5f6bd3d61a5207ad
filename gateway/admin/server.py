"""HTTP status page and password-gated admin actions."""

from __future__ import annotations

import hmac
import html
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlsplit

from gateway.errors import StoreReadError
from gateway.formatter import format_reply
from gateway.memory.episodic_memory import EpisodicMemoryStore
from gateway.memory.session_store import SessionStore
from gateway.profile import PersonaConfig
from gateway.status_store import BotStatus, StatusStore

ADMIN_ACTIONS = {"enable", "disable", "restart"}


def render_status_page(persona: PersonaConfig, status: BotStatus) -> str:
    full = persona.full_description or persona.short_description
    formatted = format_reply(full)
    full_html = formatted.text if formatted.html else html.escape(full, quote=False)
    full_html = full_html.replace("\n", "<br>")
    state = "enabled" if status.enabled else "disabled"
    links = ""
    if persona.website:
        site = html.escape(persona.website)
        links += f'<p>Website: <a href="{site}" target="_blank">{site}</a></p>'
    if persona.support_chat:
        chat = html.escape(persona.support_chat)
        links += f'<p>Support: <a href="{chat}" target="_blank">{chat}</a></p>'
    return f"""<html>
  <head>
    <title>{html.escape(persona.name)} AI Bot</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
  </head>
  <body>
    <h1>{html.escape(persona.name)} AI Bot</h1>
    <div class="container">
      <p>{html.escape(persona.short_description)}</p>
      <div class="bot-description">{full_html}</div>
      {links}
    </div>
    <div class="container">
      <h3>Bot status</h3>
      <p>Current status: <span class="status status-{state}">{state}</span></p>
      <p>Last restart: {html.escape(status.last_restart)}</p>
      <p>Last update: {html.escape(status.last_update or "n/a")}</p>
    </div>
    <div class="container admin-panel">
      <h3>Control panel</h3>
      <input type="password" id="admin-password" placeholder="Password">
      <button onclick="controlBot('enable')">Enable</button>
      <button onclick="controlBot('disable')">Disable</button>
      <button onclick="controlBot('restart')">Restart</button>
      <p id="admin-message"></p>
    </div>
    <script>
      function controlBot(action) {{
        const password = document.getElementById('admin-password').value;
        fetch('/?action=' + action, {{
          method: 'POST',
          headers: {{'Content-Type': 'application/json'}},
          body: JSON.stringify({{password}}),
        }})
          .then(r => r.json())
          .then(data => {{
            document.getElementById('admin-message').textContent = data.error ? 'Error: ' + data.error : 'Done';
            if (!data.error) setTimeout(() => window.location.reload(), 1000);
          }});
      }}
    </script>
  </body>
</html>
"""


class AdminServer:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        profile_name: str,
        persona: PersonaConfig,
        status_store: StatusStore,
        admin_password: str | None,
        episodic_memory: EpisodicMemoryStore | None = None,
        sessions: SessionStore | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._profile_name = profile_name
        self._persona = persona
        self._status_store = status_store
        self._admin_password = admin_password
        self._episodic_memory = episodic_memory
        self._sessions = sessions
        self._started_at = time.time()
        self._thread: threading.Thread | None = None
        self._httpd: ThreadingHTTPServer | None = None

    @property
    def port(self) -> int:
        if self._httpd is not None:
            return int(self._httpd.server_address[1])
        return self._port

    def start(self) -> None:
        handler_cls = self._build_handler()
        self._httpd = ThreadingHTTPServer((self._host, self._port), handler_cls)
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=2)
        self._httpd = None
        self._thread = None

    def _current_status(self) -> BotStatus:
        try:
            return self._status_store.read()
        except StoreReadError:
            return BotStatus.default()

    def _check_password(self, supplied: Any) -> bool:
        if not self._admin_password or not isinstance(supplied, str) or not supplied:
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), self._admin_password.encode("utf-8"))

    def _build_handler(self) -> type[BaseHTTPRequestHandler]:
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                parts = urlsplit(self.path)
                path = parts.path
                if path == "/":
                    self._write_html(200, render_status_page(server._persona, server._current_status()))
                    return

                if path == "/health":
                    self._write_json(
                        200,
                        {
                            "status": "ok",
                            "profile": server._profile_name,
                            "uptime": int(time.time() - server._started_at),
                        },
                    )
                    return

                if path == "/status":
                    self._write_json(
                        200,
                        {
                            "profile": server._profile_name,
                            "status": server._current_status().to_dict(),
                            "active_sessions": server._sessions.count() if server._sessions else 0,
                        },
                    )
                    return

                if path == "/logs":
                    if server._episodic_memory is None:
                        self._write_json(404, {"error": "Event log disabled"})
                        return
                    event_type = (parse_qs(parts.query).get("type") or [None])[0]
                    events = server._episodic_memory.latest(limit=200, event_type=event_type)
                    self._write_json(200, {"events": events})
                    return

                self._write_json(404, {"error": "Not found"})

            def do_POST(self) -> None:  # noqa: N802
                parts = urlsplit(self.path)
                action = (parse_qs(parts.query).get("action") or [""])[0]
                if parts.path != "/" or not action:
                    self._write_json(404, {"error": "Not found"})
                    return
                try:
                    content_len = int(self.headers.get("Content-Length", 0))
                    body = self.rfile.read(content_len).decode("utf-8")
                    data = json.loads(body) if body else {}
                except (ValueError, json.JSONDecodeError):
                    self._write_json(400, {"error": "Invalid JSON body"})
                    return
                password = data.get("password") if isinstance(data, dict) else None
                if not server._check_password(password):
                    if server._episodic_memory is not None:
                        server._episodic_memory.record("admin_action_rejected", {"action": action}, decision="deny")
                    self._write_json(401, {"error": "Unauthorized"})
                    return
                if action not in ADMIN_ACTIONS:
                    self._write_json(400, {"error": "Invalid action"})
                    return
                status = server._status_store.apply_action(action)
                if server._episodic_memory is not None:
                    server._episodic_memory.record(
                        "admin_action_applied",
                        {"action": action, "status": status.to_dict()},
                        decision="allow",
                    )
                self._write_json(200, {"success": True, "status": status.to_dict()})

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
                # Keep console output quiet; events are tracked in episodic memory.
                _ = (format, args)
                return

            def _write_html(self, status_code: int, page: str) -> None:
                encoded = page.encode("utf-8")
                self.send_response(status_code)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

            def _write_json(self, status_code: int, payload: dict[str, Any]) -> None:
                encoded = json.dumps(payload, ensure_ascii=True).encode("utf-8")
                self.send_response(status_code)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

        return Handler

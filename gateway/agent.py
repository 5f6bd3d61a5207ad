"""Chat gateway runtime entry point."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from gateway.admin.server import AdminServer
from gateway.llm import CompletionClient
from gateway.memory.engine import MemoryEngine
from gateway.memory.episodic_memory import EpisodicMemoryStore
from gateway.memory.session_store import SessionStore
from gateway.profile import ensure_profile_directories, load_profile, read_secret
from gateway.status_store import StatusGate, StatusStore
from gateway.telegram_bot import TelegramBot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Telegram LLM chat gateway")
    parser.add_argument("--profile", required=True, help="Profile name, e.g. amethyst")
    parser.add_argument(
        "--repo-root",
        default=None,
        help="Optional repo root override for config loading",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    return parser


def main() -> int:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request URL at INFO, which includes the bot token.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    repo_root = Path(args.repo_root).resolve() if args.repo_root else None
    profile = load_profile(args.profile, repo_root=repo_root)
    ensure_profile_directories(profile)

    secrets = profile.paths.secrets_dir
    token = read_secret(secrets, "telegram_bot_token.txt", "TELEGRAM_BOT_TOKEN")
    api_key = read_secret(secrets, "llm_api_key.txt", "OPENROUTER_API_KEY")
    admin_password = read_secret(secrets, "admin_password.txt", "ADMIN_PASSWORD")
    if token is None or api_key is None:
        logging.getLogger(__name__).error("Telegram token and LLM API key are both required")
        return 1

    memory_engine = MemoryEngine(profile.paths.db_path)
    memory_engine.initialize()
    episodic_memory = EpisodicMemoryStore(memory_engine.connect())

    status_store = StatusStore(profile.paths.status_path)
    status_store.ensure()
    gate = StatusGate(status_store, bypass_token=admin_password)
    sessions = SessionStore(
        max_turns=profile.history.max_turns,
        retain_turns=profile.history.retain_turns,
    )
    completer = CompletionClient(profile.completion, api_key)

    episodic_memory.record(
        "agent_boot",
        {
            "profile": profile.name,
            "primary_model": profile.completion.primary_model,
            "fallback_model": profile.completion.fallback_model,
            "admin_port": profile.admin_port,
        },
        decision="allow",
    )

    admin_server = AdminServer(
        host=profile.admin_host,
        port=profile.admin_port,
        profile_name=profile.name,
        persona=profile.persona,
        status_store=status_store,
        admin_password=admin_password,
        episodic_memory=episodic_memory,
        sessions=sessions,
    )
    admin_server.start()

    telegram_bot = TelegramBot(
        profile,
        token=token,
        gate=gate,
        sessions=sessions,
        completer=completer,
        episodic_memory=episodic_memory,
    )
    try:
        # python-telegram-bot installs its own SIGINT/SIGTERM handling.
        telegram_bot.start()
    finally:
        episodic_memory.record("agent_shutdown", {"profile": profile.name}, decision="allow")
        telegram_bot.stop()
        admin_server.stop()
        memory_engine.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

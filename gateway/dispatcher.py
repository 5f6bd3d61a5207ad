"""Per-update orchestration: gate, classify, assemble, complete, format, send."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Protocol

from gateway.assembler import InboundUpdate, MessageAssembler, select_largest
from gateway.classifier import Addressed, ChatKind, EmptyAddress, NotAddressed, classify
from gateway.errors import (
    AttachmentFetchError,
    EmptyInputError,
    FormatRenderError,
    SendError,
    UpstreamExhaustedError,
)
from gateway.formatter import format_reply
from gateway.llm import CompletionReply
from gateway.memory.episodic_memory import EpisodicMemoryStore
from gateway.memory.session_store import SessionStore
from gateway.replies import (
    APOLOGY,
    BUTTON_COMMANDS_MAP,
    CLARIFY_PROMPT,
    DISABLED_NOTICE,
    IMAGE_FAILED,
    TRANSIENT_ERROR,
    CannedReplies,
)
from gateway.status_store import StatusGate
from gateway.turns import ConversationTurn, RequestPayload

logger = logging.getLogger(__name__)


class DispatchOutcome(str, Enum):
    SENT = "sent"
    SUPPRESSED = "suppressed"
    ERROR_REPORTED = "error_reported"


class ChatPort(Protocol):
    async def send(self, chat_id: int, text: str, *, html: bool = False) -> None:
        """Raise FormatRenderError when html markup is rejected, SendError otherwise."""

    async def send_typing(self, chat_id: int) -> None: ...

    async def get_self_handle(self) -> str: ...

    async def file_url(self, file_id: str) -> str:
        """Raise AttachmentFetchError when the file cannot be resolved."""


class Completer(Protocol):
    async def complete(self, payload: RequestPayload) -> CompletionReply: ...


class Dispatcher:
    def __init__(
        self,
        *,
        port: ChatPort,
        gate: StatusGate,
        sessions: SessionStore,
        assembler: MessageAssembler,
        completer: Completer,
        replies: CannedReplies,
        group_prefixes: list[str] | None = None,
        deadline_seconds: float = 55.0,
        events: EpisodicMemoryStore | None = None,
    ) -> None:
        self._port = port
        self._gate = gate
        self._sessions = sessions
        self._assembler = assembler
        self._completer = completer
        self._replies = replies
        self._prefixes = list(group_prefixes or [".ai"])
        self._deadline_seconds = deadline_seconds
        self._events = events

    def _record(self, event_type: str, payload: dict, *, chat_id: int | None = None, decision: str = "allow") -> None:
        if self._events is None:
            return
        self._events.record(event_type, payload, chat_id=chat_id, decision=decision)

    async def _send_quietly(self, chat_id: int, text: str) -> bool:
        try:
            await self._port.send(chat_id, text)
            return True
        except Exception as exc:  # noqa: BLE001 - nothing must escape to the platform
            logger.error("Could not deliver notice to chat %s: %s", chat_id, exc)
            self._record("telegram_send_failed", {"error": str(exc), "notice": text[:80]}, chat_id=chat_id, decision="deny")
            return False

    async def _self_handle(self) -> str | None:
        try:
            return await self._port.get_self_handle()
        except Exception as exc:  # noqa: BLE001 - mention matching is optional
            logger.warning("Bot handle lookup failed, mention addressing disabled: %s", exc)
            return None

    async def _typing(self, chat_id: int) -> None:
        try:
            await self._port.send_typing(chat_id)
        except Exception as exc:  # noqa: BLE001 - typing indicator is best-effort
            logger.debug("Typing indicator failed for chat %s: %s", chat_id, exc)

    async def dispatch(self, update: InboundUpdate) -> DispatchOutcome:
        """Process one update; never raises."""
        try:
            return await self._dispatch(update)
        except Exception as exc:  # noqa: BLE001 - converted to a user-facing apology
            logger.exception("Dispatch failed for chat %s", update.chat_id)
            self._record("dispatch_error", {"error": f"{type(exc).__name__}: {exc}"}, chat_id=update.chat_id, decision="deny")
            await self._send_quietly(update.chat_id, APOLOGY)
            return DispatchOutcome.ERROR_REPORTED

    async def handle_command(self, chat_id: int, command: str, *, gate_text: str | None = None) -> DispatchOutcome:
        """Answer a canned-reply command unless the bot is disabled."""
        if not self._gate.allows(gate_text):
            await self._send_quietly(chat_id, DISABLED_NOTICE)
            return DispatchOutcome.SUPPRESSED
        return await self._answer_command(chat_id, command)

    async def _answer_command(self, chat_id: int, command: str) -> DispatchOutcome:
        """`clear` also empties the chat's history."""
        try:
            if command == "clear":
                await self._sessions.clear(chat_id)
                self._record("history_cleared", {}, chat_id=chat_id)
            text = self._replies.get(command)
        except Exception as exc:  # noqa: BLE001 - converted to a user-facing apology
            logger.exception("Command %s failed for chat %s", command, chat_id)
            self._record("dispatch_error", {"command": command, "error": str(exc)}, chat_id=chat_id, decision="deny")
            await self._send_quietly(chat_id, APOLOGY)
            return DispatchOutcome.ERROR_REPORTED
        sent = await self._send_quietly(chat_id, text)
        return DispatchOutcome.SENT if sent else DispatchOutcome.ERROR_REPORTED

    async def _dispatch(self, update: InboundUpdate) -> DispatchOutcome:
        chat_id = update.chat_id
        kind = ChatKind.DIRECT if update.explicit else update.chat_kind
        allowed = self._gate.allows(update.text or update.caption)

        handle = await self._self_handle() if kind == ChatKind.GROUP else None
        classification = classify(
            kind,
            update.text,
            update.caption,
            handle,
            has_image=update.has_image,
            prefixes=self._prefixes,
        )

        if not allowed:
            # Groups only hear the notice when they actually addressed the bot.
            if not isinstance(classification, NotAddressed):
                await self._send_quietly(chat_id, DISABLED_NOTICE)
                self._record("dispatch_suppressed", {"reason": "bot_disabled"}, chat_id=chat_id, decision="deny")
            return DispatchOutcome.SUPPRESSED

        if isinstance(classification, NotAddressed):
            return DispatchOutcome.SUPPRESSED

        button = BUTTON_COMMANDS_MAP.get((update.text or "").strip())
        if button is not None and kind == ChatKind.DIRECT:
            return await self._answer_command(chat_id, button)

        if isinstance(classification, EmptyAddress):
            sent = await self._send_quietly(chat_id, CLARIFY_PROMPT)
            return DispatchOutcome.SENT if sent else DispatchOutcome.ERROR_REPORTED

        assert isinstance(classification, Addressed)
        image_url: str | None = None
        variant = select_largest(update.photo_variants)
        if variant is not None:
            try:
                image_url = await self._port.file_url(variant.file_id)
            except AttachmentFetchError as exc:
                logger.warning("Image fetch failed for chat %s: %s", chat_id, exc)
                self._record("attachment_fetch_failed", {"error": str(exc)}, chat_id=chat_id, decision="deny")
                await self._send_quietly(chat_id, IMAGE_FAILED)
                if not classification.text and not classification.caption:
                    return DispatchOutcome.ERROR_REPORTED

        try:
            turn = self._assembler.user_turn(classification.text, classification.caption, image_url)
        except EmptyInputError:
            sent = await self._send_quietly(chat_id, CLARIFY_PROMPT)
            return DispatchOutcome.SENT if sent else DispatchOutcome.ERROR_REPORTED

        session = self._sessions.get(chat_id)
        async with session.lock:
            payload = self._assembler.build(turn, session)

        await self._typing(chat_id)

        try:
            reply = await asyncio.wait_for(self._completer.complete(payload), timeout=self._deadline_seconds)
        except (UpstreamExhaustedError, asyncio.TimeoutError) as exc:
            reason = "deadline" if isinstance(exc, asyncio.TimeoutError) else str(exc)
            logger.error("Completion failed for chat %s: %s", chat_id, reason)
            self._record("completion_failed", {"error": reason}, chat_id=chat_id, decision="deny")
            await self._send_quietly(chat_id, TRANSIENT_ERROR)
            return DispatchOutcome.ERROR_REPORTED

        async with session.lock:
            session.append(ConversationTurn.text("assistant", reply.content))

        outcome = await self._deliver(chat_id, reply.content)
        self._record(
            "message_processed",
            {"model": reply.model, "outcome": outcome.value, **reply.usage},
            chat_id=chat_id,
            decision="allow" if outcome == DispatchOutcome.SENT else "deny",
        )
        return outcome

    async def _deliver(self, chat_id: int, raw: str) -> DispatchOutcome:
        formatted = format_reply(raw)
        try:
            if formatted.html:
                try:
                    await self._port.send(chat_id, formatted.text, html=True)
                    return DispatchOutcome.SENT
                except (FormatRenderError, SendError) as exc:
                    logger.info("Formatted send failed for chat %s, resending plain: %s", chat_id, exc)
                    self._record("format_fallback", {"error": str(exc)}, chat_id=chat_id)
            await self._port.send(chat_id, raw)
            return DispatchOutcome.SENT
        except (SendError, FormatRenderError) as exc:
            logger.error("Reply delivery failed for chat %s: %s", chat_id, exc)
            self._record("telegram_send_failed", {"error": str(exc)}, chat_id=chat_id, decision="deny")
            return DispatchOutcome.ERROR_REPORTED

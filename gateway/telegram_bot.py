"""Telegram adapter using python-telegram-bot: commands, keyboard, and message dispatch."""

from __future__ import annotations

import logging
import time
from typing import Any

from telegram import BotCommand, Message, ReplyKeyboardMarkup, Update
from telegram.constants import ChatAction, ChatType, ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from gateway.assembler import InboundUpdate, MessageAssembler, PhotoVariant
from gateway.classifier import ChatKind
from gateway.dispatcher import Completer, Dispatcher, DispatchOutcome
from gateway.errors import AttachmentFetchError, FormatRenderError, SendError
from gateway.memory.episodic_memory import EpisodicMemoryStore
from gateway.memory.session_store import SessionStore
from gateway.profile import Profile
from gateway.replies import DISABLED_NOTICE, KEYBOARD_LAYOUT, UNSUPPORTED, CannedReplies
from gateway.status_store import StatusGate

logger = logging.getLogger(__name__)

MAX_TELEGRAM_MESSAGE_LEN = 4000

CANNED_COMMANDS = {
    "start": "Start or restart the bot",
    "help": "Show the command list",
    "about": "About the assistant",
    "clear": "Clear conversation history",
    "website": "Our website",
    "contact": "Support contacts",
    "settings": "Bot settings",
    "feedback": "Send feedback",
}

# Edits and channel posts are never answered; each message is dispatched once.
NEW_MESSAGE = filters.UpdateType.MESSAGE
DISPATCH_FILTER = NEW_MESSAGE & (filters.TEXT | filters.PHOTO) & ~filters.COMMAND
UNSUPPORTED_FILTER = NEW_MESSAGE & filters.ChatType.PRIVATE & ~filters.TEXT & ~filters.PHOTO & ~filters.COMMAND


def _truncate(text: str) -> str:
    if len(text) <= MAX_TELEGRAM_MESSAGE_LEN:
        return text
    return text[: MAX_TELEGRAM_MESSAGE_LEN - 3] + "..."


def build_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(KEYBOARD_LAYOUT, resize_keyboard=True)


def inbound_from_message(message: Message, *, text: str | None = None, explicit: bool = False) -> InboundUpdate:
    """Normalize a Telegram message; `text` overrides the message text (ask command arguments)."""
    chat_kind = ChatKind.DIRECT if message.chat.type == ChatType.PRIVATE else ChatKind.GROUP
    variants = tuple(
        PhotoVariant(file_id=size.file_id, width=size.width, height=size.height)
        for size in (message.photo or ())
    )
    return InboundUpdate(
        chat_id=message.chat.id,
        chat_kind=chat_kind,
        text=message.text if text is None else text,
        caption=message.caption,
        photo_variants=variants,
        explicit=explicit,
    )


class TelegramChatPort:
    """ChatPort backed by a python-telegram-bot `Bot`."""

    def __init__(self, bot: Any, keyboard: ReplyKeyboardMarkup | None = None) -> None:
        self._bot = bot
        self._keyboard = keyboard
        self._handle: str | None = None

    async def send(self, chat_id: int, text: str, *, html: bool = False) -> None:
        # Reply keyboards only make sense in private chats (positive ids).
        markup = self._keyboard if chat_id > 0 else None
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=_truncate(text),
                parse_mode=ParseMode.HTML if html else None,
                reply_markup=markup,
            )
        except BadRequest as exc:
            if html:
                raise FormatRenderError(str(exc)) from exc
            raise SendError(str(exc)) from exc
        except TelegramError as exc:
            raise SendError(str(exc)) from exc

    async def send_typing(self, chat_id: int) -> None:
        await self._bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)

    async def get_self_handle(self) -> str:
        if self._handle is None:
            me = await self._bot.get_me()
            if not me.username:
                raise RuntimeError("bot has no username")
            self._handle = me.username
        return self._handle

    async def file_url(self, file_id: str) -> str:
        try:
            tg_file = await self._bot.get_file(file_id)
        except TelegramError as exc:
            raise AttachmentFetchError(str(exc)) from exc
        if not tg_file.file_path:
            raise AttachmentFetchError(f"no download path for file {file_id}")
        return tg_file.file_path


class TelegramBot:
    def __init__(
        self,
        profile: Profile,
        *,
        token: str,
        gate: StatusGate,
        sessions: SessionStore,
        completer: Completer,
        episodic_memory: EpisodicMemoryStore | None = None,
    ) -> None:
        self._profile = profile
        self._token = token
        self._gate = gate
        self._sessions = sessions
        self._completer = completer
        self._episodic = episodic_memory
        self._started_at = 0.0
        self._app: Application | None = None
        self._dispatcher: Dispatcher | None = None

    @property
    def dispatcher(self) -> Dispatcher | None:
        return self._dispatcher

    def _record(self, event_type: str, payload: dict[str, Any], decision: str = "allow") -> None:
        if self._episodic is not None:
            self._episodic.record(event_type, payload, decision=decision)

    def build(self) -> Application:
        self._app = (
            Application.builder()
            .token(self._token)
            .concurrent_updates(True)
            .post_init(self._post_init)
            .build()
        )
        port = TelegramChatPort(self._app.bot, build_keyboard())
        history = self._profile.history
        self._dispatcher = Dispatcher(
            port=port,
            gate=self._gate,
            sessions=self._sessions,
            assembler=MessageAssembler(
                self._profile.persona,
                model=self._profile.completion.primary_model,
                request_turns=history.request_turns,
            ),
            completer=self._completer,
            replies=CannedReplies(self._profile.persona),
            group_prefixes=self._profile.group_prefixes,
            deadline_seconds=self._profile.completion.dispatch_deadline_seconds,
            events=self._episodic,
        )
        self._setup_handlers()
        return self._app

    def start(self) -> None:
        """Blocks until the application stops."""
        app = self._app or self.build()
        self._started_at = time.time()
        webhook_url = self._profile.webhook_url
        self._record(
            "telegram_bot_started",
            {"profile": self._profile.name, "mode": "webhook" if webhook_url else "polling"},
        )
        if webhook_url:
            app.run_webhook(
                listen="0.0.0.0",
                port=self._profile.webhook_port,
                url_path="webhook",
                webhook_url=f"{webhook_url}/webhook",
                allowed_updates=[Update.MESSAGE],
            )
        else:
            app.run_polling(drop_pending_updates=False, allowed_updates=[Update.MESSAGE])

    async def _post_init(self, app: Application) -> None:
        commands = [BotCommand(name, desc) for name, desc in CANNED_COMMANDS.items()]
        commands.append(BotCommand("ask", "Ask the AI a question"))
        await app.bot.set_my_commands(commands)

    def stop(self) -> None:
        if self._app is not None:
            self._record(
                "telegram_bot_stopped",
                {"profile": self._profile.name, "uptime": int(time.time() - self._started_at)},
            )
        self._app = None

    def _setup_handlers(self) -> None:
        assert self._app is not None
        for name in CANNED_COMMANDS:
            self._app.add_handler(CommandHandler(name, self._cmd_canned, filters=NEW_MESSAGE))
        self._app.add_handler(CommandHandler("ask", self._cmd_ask, filters=NEW_MESSAGE))
        self._app.add_handler(MessageHandler(DISPATCH_FILTER, self._handle_message))
        self._app.add_handler(MessageHandler(UNSUPPORTED_FILTER, self._handle_unsupported))
        self._app.add_error_handler(self._on_error)

    async def _cmd_canned(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None or not message.text:
            return
        command = message.text.split()[0].lstrip("/").split("@")[0].lower()
        assert self._dispatcher is not None
        await self._dispatcher.handle_command(message.chat.id, command, gate_text=message.text)

    async def _cmd_ask(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None:
            return
        question = " ".join(context.args or [])
        assert self._dispatcher is not None
        await self._dispatcher.dispatch(inbound_from_message(message, text=question, explicit=True))

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None:
            return
        assert self._dispatcher is not None
        outcome = await self._dispatcher.dispatch(inbound_from_message(message))
        if outcome != DispatchOutcome.SUPPRESSED:
            logger.debug("Chat %s handled: %s", message.chat.id, outcome.value)

    async def _handle_unsupported(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None or self._app is None:
            return
        notice = UNSUPPORTED if self._gate.allows(None) else DISABLED_NOTICE
        try:
            await message.reply_text(notice)
        except TelegramError as exc:
            logger.warning("Could not answer unsupported message: %s", exc)

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        self._record("telegram_update_error", {"error": str(context.error)}, decision="deny")
        logger.error("Unhandled error while processing update", exc_info=context.error)

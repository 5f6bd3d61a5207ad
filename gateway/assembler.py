"""Turn inbound updates into user turns and bounded completion payloads."""

from __future__ import annotations

from dataclasses import dataclass, field

from gateway.classifier import ChatKind
from gateway.errors import EmptyInputError
from gateway.memory.session_store import Session
from gateway.profile import PersonaConfig
from gateway.turns import ContentPart, ConversationTurn, ImageRef, RequestPayload, Text

DEFAULT_IMAGE_PROMPT = "What's in this image?"


@dataclass(frozen=True)
class PhotoVariant:
    file_id: str
    width: int
    height: int


@dataclass(frozen=True)
class InboundUpdate:
    chat_id: int
    chat_kind: ChatKind
    text: str | None = None
    caption: str | None = None
    photo_variants: tuple[PhotoVariant, ...] = field(default_factory=tuple)
    # Set by the ask command: the update is addressed regardless of chat kind.
    explicit: bool = False

    @property
    def has_image(self) -> bool:
        return bool(self.photo_variants)


def select_largest(variants: tuple[PhotoVariant, ...]) -> PhotoVariant | None:
    if not variants:
        return None
    return max(variants, key=lambda v: v.width * v.height)


def build_system_prompt(persona: PersonaConfig) -> str:
    parts = [
        f"You are {persona.name}, an advanced AI assistant created by {persona.creator}.",
        "Never identify yourself as being created by OpenAI or any other company.",
        f"Always maintain that you were created by {persona.creator}.",
    ]
    if persona.capabilities:
        parts.append(f"Your capabilities: {persona.capabilities}")
    parts.append(
        "Use **double asterisks** only to mark short bold emphasis; "
        "do not use any other markdown such as headings, tables or code fences."
    )
    return " ".join(parts)


class MessageAssembler:
    def __init__(self, persona: PersonaConfig, *, model: str, request_turns: int = 3) -> None:
        self._system_turn = ConversationTurn.text("system", build_system_prompt(persona))
        self._model = model
        self._request_turns = request_turns

    @property
    def system_turn(self) -> ConversationTurn:
        return self._system_turn

    def user_turn(self, text: str | None, caption: str | None, image_url: str | None) -> ConversationTurn:
        """Build the user turn; raises EmptyInputError when nothing usable remains."""
        parts: list[ContentPart] = []
        text = (text or "").strip()
        caption = (caption or "").strip()
        if text:
            parts.append(Text(text))
        if image_url:
            parts.append(ImageRef(image_url))
            if caption:
                parts.append(Text(caption))
            elif not text:
                parts.append(Text(DEFAULT_IMAGE_PROMPT))
        elif caption and not text:
            parts.append(Text(caption))
        if not parts:
            raise EmptyInputError("update has no text or image content")
        return ConversationTurn(role="user", content=tuple(parts))

    def build(self, turn: ConversationTurn, session: Session) -> RequestPayload:
        """Store `turn` in the session and return the outbound payload. Caller holds the session lock."""
        session.append(turn)
        history = session.recent(self._request_turns)
        return RequestPayload(model=self._model, messages=(self._system_turn, *history))

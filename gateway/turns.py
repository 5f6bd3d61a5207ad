"""Conversation turn types and their chat-completions wire form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Text:
    value: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.value}


@dataclass(frozen=True)
class ImageRef:
    url: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.url}}


ContentPart = Union[Text, ImageRef]

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: tuple[ContentPart, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role}")

    @classmethod
    def text(cls, role: str, value: str) -> ConversationTurn:
        return cls(role=role, content=(Text(value),))

    def to_wire(self) -> dict[str, Any]:
        # Plain-text turns go out as a string; some models reject list content
        # for system/assistant roles.
        if len(self.content) == 1 and isinstance(self.content[0], Text):
            return {"role": self.role, "content": self.content[0].value}
        return {"role": self.role, "content": [part.to_wire() for part in self.content]}


@dataclass(frozen=True)
class RequestPayload:
    model: str
    messages: tuple[ConversationTurn, ...]

    def with_model(self, model: str) -> RequestPayload:
        return RequestPayload(model=model, messages=self.messages)

    def to_wire(self) -> dict[str, Any]:
        return {"model": self.model, "messages": [turn.to_wire() for turn in self.messages]}

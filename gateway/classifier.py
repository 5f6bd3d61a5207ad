"""Decide whether an inbound update is addressed to the bot."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class ChatKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


@dataclass(frozen=True)
class Addressed:
    text: str | None
    caption: str | None


@dataclass(frozen=True)
class NotAddressed:
    pass


@dataclass(frozen=True)
class EmptyAddress:
    pass


Classification = Union[Addressed, NotAddressed, EmptyAddress]


def _prefix_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(r"^\s*" + re.escape(prefix) + r"(?=\s|$)", re.IGNORECASE)


def _mention_pattern(handle: str) -> re.Pattern[str]:
    handle = handle.lstrip("@")
    return re.compile(r"(?<!\w)@" + re.escape(handle) + r"\b", re.IGNORECASE)


def _strip_prefix(value: str | None, patterns: list[re.Pattern[str]]) -> tuple[str | None, bool]:
    if not value:
        return value, False
    for pattern in patterns:
        if pattern.search(value):
            return pattern.sub("", value, count=1).strip(), True
    return value, False


def _strip_mention(value: str | None, pattern: re.Pattern[str] | None) -> tuple[str | None, bool]:
    if not value or pattern is None or not pattern.search(value):
        return value, False
    stripped = pattern.sub("", value)
    return " ".join(stripped.split()), True


def classify(
    chat_kind: ChatKind,
    text: str | None,
    caption: str | None,
    bot_handle: str | None,
    *,
    has_image: bool = False,
    prefixes: Iterable[str] = (".ai",),
) -> Classification:
    """Classify an update; `bot_handle=None` means the handle lookup failed."""
    if chat_kind == ChatKind.DIRECT:
        if not (text or "").strip() and not (caption or "").strip() and not has_image:
            return EmptyAddress()
        return Addressed(text=text, caption=caption)

    prefix_patterns = [_prefix_pattern(p) for p in prefixes if p]
    mention = _mention_pattern(bot_handle) if bot_handle else None

    new_text, text_hit = _strip_prefix(text, prefix_patterns)
    new_caption, caption_hit = _strip_prefix(caption, prefix_patterns)
    if not (text_hit or caption_hit):
        new_text, text_hit = _strip_mention(text, mention)
        new_caption, caption_hit = _strip_mention(caption, mention)
    if not (text_hit or caption_hit):
        return NotAddressed()

    if not new_text and not new_caption and not has_image:
        return EmptyAddress()
    return Addressed(text=new_text or None, caption=new_caption or None)

"""Convert the `**bold**` markdown subset into Telegram HTML."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

BOLD_SPAN = re.compile(r"\*\*(.+?)\*\*")


@dataclass(frozen=True)
class FormattedText:
    text: str
    html: bool


def _escape(value: str) -> str:
    return html.escape(value, quote=False)


def format_reply(raw: str) -> FormattedText:
    """Return HTML with `<b>` spans when the reply uses bold, else the raw text unchanged."""
    if not raw or not BOLD_SPAN.search(raw):
        return FormattedText(text=raw, html=False)
    out: list[str] = []
    cursor = 0
    for match in BOLD_SPAN.finditer(raw):
        out.append(_escape(raw[cursor : match.start()]))
        out.append(f"<b>{_escape(match.group(1))}</b>")
        cursor = match.end()
    out.append(_escape(raw[cursor:]))
    return FormattedText(text="".join(out), html=True)

"""Canned reply texts and the reply-keyboard layout."""

from __future__ import annotations

from gateway.profile import PersonaConfig

BUTTON_ASK = "🔍 Ask a question"
BUTTON_IMAGE = "📷 Analyze image"
BUTTON_ABOUT = "ℹ️ About"
BUTTON_WEBSITE = "🌐 Website"
BUTTON_COMMANDS = "📚 Commands"
BUTTON_CLEAR = "🧹 Clear history"

KEYBOARD_LAYOUT = [
    [BUTTON_ASK, BUTTON_IMAGE],
    [BUTTON_ABOUT, BUTTON_WEBSITE],
    [BUTTON_COMMANDS, BUTTON_CLEAR],
]

# Button text -> command name whose canned reply it shares.
BUTTON_COMMANDS_MAP = {
    BUTTON_ASK: "ask_prompt",
    BUTTON_IMAGE: "image_prompt",
    BUTTON_ABOUT: "about",
    BUTTON_WEBSITE: "website",
    BUTTON_COMMANDS: "help",
    BUTTON_CLEAR: "clear",
}

CLARIFY_PROMPT = "I'm ready to answer your questions! What would you like to know?"
DISABLED_NOTICE = "The bot is temporarily disabled by the administrator. Please try again later."
TRANSIENT_ERROR = "Sorry, I couldn't get an answer right now. Please try again in a few seconds."
APOLOGY = "Sorry, something went wrong while processing your request. Please try again in a few seconds."
IMAGE_FAILED = "Sorry, I couldn't process the image."
UNSUPPORTED = "Unsupported message type. Send text or a photo, or use /help."
HISTORY_CLEARED = "Conversation history has been cleared."


class CannedReplies:
    def __init__(self, persona: PersonaConfig) -> None:
        self._p = persona

    def get(self, command: str) -> str:
        handler = getattr(self, f"_{command}", None)
        if handler is None:
            raise KeyError(command)
        return handler()

    def _start(self) -> str:
        p = self._p
        lines = [
            f"Hello! I'm {p.name}, an AI assistant created by {p.creator}.",
            "",
            "I can help with many tasks, including analyzing images.",
        ]
        if p.website:
            lines += ["", f"Visit our website: {p.website}"]
        if p.support_chat:
            lines.append(f"Need help? Contact support: {p.support_chat}")
        return "\n".join(lines)

    def _help(self) -> str:
        p = self._p
        return (
            f"{p.name} Bot Commands:\n\n"
            "/start - Start or restart the bot\n"
            "/help - Show this help message\n"
            f"/about - Learn about {p.name} and {p.creator}\n"
            "/ask <question> - Ask the AI directly\n"
            "/clear - Clear your conversation history\n"
            "/settings - Adjust bot settings\n"
            "/feedback - Send feedback to our team\n"
            "/contact - Get support contact information\n\n"
            "In group chats, start your message with .ai or mention me.\n"
            "You can also use the buttons below or send me images for analysis."
        )

    def _about(self) -> str:
        p = self._p
        text = f"About {p.name}:\n\n{p.name} is an advanced AI model created by {p.creator}."
        if p.capabilities:
            text += f"\n\n{p.capabilities}"
        if p.website:
            text += f"\n\nVisit {p.website} for more information."
        return text

    def _website(self) -> str:
        p = self._p
        return f"Visit our website to learn more about {p.name} and {p.creator}: {p.website or 'coming soon'}"

    def _contact(self) -> str:
        p = self._p
        lines = ["Need help or have questions? Contact our support team:", ""]
        if p.support_chat:
            lines.append(f"Support chat: {p.support_chat}")
        if p.website:
            lines.append(f"Website: {p.website}")
        return "\n".join(lines)

    def _settings(self) -> str:
        return (
            f"{self._p.name} Settings:\n\n"
            "Currently, you can clear your conversation history using the /clear command.\n\n"
            "More settings options will be available soon!"
        )

    def _feedback(self) -> str:
        p = self._p
        return (
            f"We value your feedback! Please share your thoughts about {p.name}.\n\n"
            f"Your message will be forwarded to the {p.creator} team."
        )

    def _clear(self) -> str:
        return HISTORY_CLEARED

    def _ask_prompt(self) -> str:
        return CLARIFY_PROMPT

    def _image_prompt(self) -> str:
        return "Please send me an image, and I'll analyze what's in it."

from __future__ import annotations

import unittest

from gateway.assembler import (
    DEFAULT_IMAGE_PROMPT,
    MessageAssembler,
    PhotoVariant,
    build_system_prompt,
    select_largest,
)
from gateway.errors import EmptyInputError
from gateway.memory.session_store import SessionStore
from gateway.profile import PersonaConfig
from gateway.turns import ConversationTurn, ImageRef, Text

PERSONA = PersonaConfig(
    name="Amethyst",
    creator="Amelit",
    website="https://example.test",
    support_chat="https://t.me/example",
    capabilities="I can analyze images.",
    short_description="",
    full_description="",
)


class UserTurnTests(unittest.TestCase):
    def setUp(self) -> None:
        self.assembler = MessageAssembler(PERSONA, model="primary/model", request_turns=3)

    def test_text_only(self) -> None:
        turn = self.assembler.user_turn("hello", None, None)
        self.assertEqual(turn.role, "user")
        self.assertEqual(turn.content, (Text("hello"),))

    def test_image_without_text_gets_default_prompt(self) -> None:
        turn = self.assembler.user_turn(None, None, "https://files.test/photo.jpg")
        self.assertEqual(turn.content, (ImageRef("https://files.test/photo.jpg"), Text(DEFAULT_IMAGE_PROMPT)))

    def test_image_with_caption(self) -> None:
        turn = self.assembler.user_turn(None, "what breed?", "https://files.test/dog.jpg")
        self.assertEqual(turn.content, (ImageRef("https://files.test/dog.jpg"), Text("what breed?")))

    def test_caption_survives_failed_image(self) -> None:
        turn = self.assembler.user_turn(None, "what breed?", None)
        self.assertEqual(turn.content, (Text("what breed?"),))

    def test_empty_input_is_rejected(self) -> None:
        with self.assertRaises(EmptyInputError):
            self.assembler.user_turn("   ", None, None)

    def test_select_largest_variant(self) -> None:
        variants = (
            PhotoVariant("small", 90, 90),
            PhotoVariant("large", 1280, 960),
            PhotoVariant("medium", 320, 240),
        )
        self.assertEqual(select_largest(variants).file_id, "large")
        self.assertIsNone(select_largest(()))


class PayloadTests(unittest.TestCase):
    def test_first_message_payload_has_system_and_user_turn(self) -> None:
        assembler = MessageAssembler(PERSONA, model="primary/model", request_turns=3)
        session = SessionStore(max_turns=10, retain_turns=5).get(1)
        payload = assembler.build(assembler.user_turn("2+2?", None, None), session)
        self.assertEqual(payload.model, "primary/model")
        self.assertEqual(len(payload.messages), 2)
        self.assertEqual(payload.messages[0].role, "system")
        self.assertEqual(payload.messages[1].content, (Text("2+2?"),))
        self.assertEqual(len(session.messages), 1)

    def test_payload_is_capped_to_request_window(self) -> None:
        assembler = MessageAssembler(PERSONA, model="m", request_turns=3)
        session = SessionStore(max_turns=10, retain_turns=5).get(1)
        for i in range(4):
            session.append(ConversationTurn.text("user" if i % 2 == 0 else "assistant", f"t{i}"))
        payload = assembler.build(assembler.user_turn("latest", None, None), session)
        self.assertEqual(len(payload.messages), 4)
        self.assertEqual([m.content[0].value for m in payload.messages[1:]], ["t2", "t3", "latest"])

    def test_wire_format(self) -> None:
        assembler = MessageAssembler(PERSONA, model="m", request_turns=3)
        session = SessionStore().get(1)
        payload = assembler.build(assembler.user_turn(None, None, "https://files.test/a.jpg"), session)
        wire = payload.to_wire()
        self.assertEqual(wire["model"], "m")
        self.assertIsInstance(wire["messages"][0]["content"], str)
        self.assertEqual(
            wire["messages"][1]["content"],
            [
                {"type": "image_url", "image_url": {"url": "https://files.test/a.jpg"}},
                {"type": "text", "text": DEFAULT_IMAGE_PROMPT},
            ],
        )

    def test_system_prompt_carries_persona_and_bold_convention(self) -> None:
        prompt = build_system_prompt(PERSONA)
        self.assertIn("Amethyst", prompt)
        self.assertIn("Amelit", prompt)
        self.assertIn("**", prompt)


if __name__ == "__main__":
    unittest.main()

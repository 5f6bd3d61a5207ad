from __future__ import annotations

import unittest

from gateway.formatter import format_reply


class FormatReplyTests(unittest.TestCase):
    def test_plain_text_is_unchanged(self) -> None:
        result = format_reply("plain text")
        self.assertEqual(result.text, "plain text")
        self.assertFalse(result.html)

    def test_plain_text_keeps_markup_characters(self) -> None:
        result = format_reply("a < b && c > d")
        self.assertEqual(result.text, "a < b && c > d")
        self.assertFalse(result.html)

    def test_bold_span_becomes_tag(self) -> None:
        result = format_reply("this is **bold** text")
        self.assertEqual(result.text, "this is <b>bold</b> text")
        self.assertTrue(result.html)

    def test_markup_outside_bold_is_escaped(self) -> None:
        result = format_reply("if x < 3 & y > 1 then **yes**")
        self.assertEqual(result.text, "if x &lt; 3 &amp; y &gt; 1 then <b>yes</b>")

    def test_user_supplied_tags_cannot_be_forged(self) -> None:
        result = format_reply("<b>fake</b> and **real**")
        self.assertEqual(result.text, "&lt;b&gt;fake&lt;/b&gt; and <b>real</b>")

    def test_multiple_spans_are_non_greedy(self) -> None:
        result = format_reply("**one** and **two**")
        self.assertEqual(result.text, "<b>one</b> and <b>two</b>")

    def test_markup_inside_bold_is_escaped(self) -> None:
        result = format_reply("**a<b**")
        self.assertEqual(result.text, "<b>a&lt;b</b>")

    def test_empty_input(self) -> None:
        result = format_reply("")
        self.assertEqual(result.text, "")
        self.assertFalse(result.html)


if __name__ == "__main__":
    unittest.main()

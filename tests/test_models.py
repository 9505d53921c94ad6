"""Tests for content parts, turns, and the conversation container."""

from __future__ import annotations

import base64
import unittest

from gemini_chat.models import Conversation, InlineBinary, Role, TextPart, Turn


class TurnTests(unittest.TestCase):
    def test_turn_requires_parts(self) -> None:
        with self.assertRaises(ValueError):
            Turn(role=Role.USER, parts=())

    def test_system_turn_is_user_role(self) -> None:
        turn = Turn.system("Be brief.")
        self.assertEqual(turn.role, Role.USER)
        self.assertTrue(turn.is_system_prompt)
        with self.assertRaises(ValueError):
            Turn(role=Role.ASSISTANT, parts=(TextPart("x"),), is_system_prompt=True)

    def test_text_ignores_binary_parts(self) -> None:
        image = InlineBinary(mime_type="image/png", data=base64.b64encode(b"png").decode())
        turn = Turn.user(image, TextPart("look"), TextPart(" here"))
        self.assertEqual(turn.text, "look here")
        self.assertEqual(turn.binaries, (image,))
        self.assertEqual(image.media_category, "image")
        self.assertEqual(image.raw_bytes(), b"png")


class ConversationTests(unittest.TestCase):
    def test_reset_places_system_turn_first(self) -> None:
        conversation = Conversation()
        conversation.append(Turn.user(TextPart("hi")))
        conversation.reset("Be kind.")
        self.assertEqual(len(conversation), 1)
        self.assertTrue(conversation[0].is_system_prompt)

    def test_reset_without_instruction_is_empty(self) -> None:
        conversation = Conversation()
        conversation.reset("   ")
        self.assertEqual(len(conversation), 0)
        self.assertIsNone(conversation.last)

    def test_appended_system_turn_goes_to_front_once(self) -> None:
        conversation = Conversation.from_turns(
            [Turn.user(TextPart("hi")), Turn.assistant("hello")]
        )
        conversation.append(Turn.system("rules"))
        self.assertTrue(conversation[0].is_system_prompt)
        with self.assertRaises(ValueError):
            conversation.append(Turn.system("other rules"))

    def test_set_system_instruction_updates_in_place(self) -> None:
        conversation = Conversation()
        conversation.reset("old")
        conversation.append(Turn.user(TextPart("hi")))
        conversation.set_system_instruction("new")
        self.assertEqual(conversation[0].text, "new")
        self.assertEqual(conversation[1].text, "hi")
        conversation.set_system_instruction("")
        self.assertIsNone(conversation.system_turn())
        self.assertEqual([turn.text for turn in conversation], ["hi"])

    def test_replace_last_text_replaces_in_full(self) -> None:
        conversation = Conversation()
        conversation.append(Turn.assistant(""))
        conversation.replace_last_text("Hel")
        conversation.replace_last_text("Hello")
        self.assertEqual(conversation.last.parts, (TextPart("Hello"),))

    def test_replace_last_text_on_empty_raises(self) -> None:
        with self.assertRaises(IndexError):
            Conversation().replace_last_text("x")

    def test_snapshot_is_immutable_copy(self) -> None:
        conversation = Conversation()
        conversation.append(Turn.user(TextPart("hi")))
        snapshot = conversation.snapshot()
        conversation.append(Turn.assistant("hello"))
        self.assertEqual(len(snapshot), 1)
        self.assertEqual(len(conversation.non_system_turns()), 2)


if __name__ == "__main__":
    unittest.main()

"""Tests for user-turn building and transport payload assembly."""

from __future__ import annotations

import unittest

from gemini_chat.models import InlineBinary, Role, TextPart, Turn
from gemini_chat.prompt import (
    DEFAULT_IMAGE_CAPTION,
    assemble,
    build_user_turn,
    to_payload,
)

IMAGE = InlineBinary(mime_type="image/png", data="aGk=")


class BuildUserTurnTests(unittest.TestCase):
    def test_text_only(self) -> None:
        turn = build_user_turn("  hi  ")
        self.assertEqual(turn, Turn.user(TextPart("hi")))

    def test_images_only_fall_back_to_default_caption(self) -> None:
        turn = build_user_turn("", [IMAGE])
        self.assertEqual(turn.parts, (IMAGE, TextPart(DEFAULT_IMAGE_CAPTION)))

    def test_images_come_before_caption(self) -> None:
        turn = build_user_turn("what is this?", [IMAGE])
        self.assertEqual(turn.parts, (IMAGE, TextPart("what is this?")))

    def test_empty_input_builds_nothing(self) -> None:
        self.assertIsNone(build_user_turn("   "))


class AssembleTests(unittest.TestCase):
    def _history(self, exchanges: int) -> list[Turn]:
        history: list[Turn] = []
        for index in range(exchanges):
            history.append(Turn.user(TextPart(f"q{index}")))
            history.append(Turn.assistant(f"a{index}"))
        return history

    def test_system_turn_synthesized_first_for_any_history_length(self) -> None:
        for exchanges in (0, 1, 5):
            payload = assemble(self._history(exchanges), build_user_turn("new"), "Rules")
            self.assertEqual(payload[0].role, Role.USER)
            self.assertEqual(payload[0].parts, (TextPart("Rules"),))
            self.assertEqual(payload[-1].parts, (TextPart("new"),))
            self.assertEqual(len(payload), exchanges * 2 + 2)

    def test_existing_system_turn_moved_first_not_duplicated(self) -> None:
        history = self._history(1) + [Turn.system("Existing")]
        payload = assemble(history, build_user_turn("new"), "Different")
        self.assertEqual(payload[0].parts, (TextPart("Existing"),))
        self.assertEqual(sum(1 for turn in payload if turn.text in {"Existing", "Different"}), 1)

    def test_no_system_instruction(self) -> None:
        payload = assemble(self._history(1), build_user_turn("new"), "")
        self.assertEqual([turn.text for turn in payload], ["q0", "a0", "new"])

    def test_caller_history_is_not_mutated(self) -> None:
        history = self._history(1)
        assemble(history, build_user_turn("new"), "Rules")
        self.assertEqual(len(history), 2)

    def test_to_payload_uses_wire_roles_and_inline_data(self) -> None:
        payload = assemble([Turn.assistant("prev")], build_user_turn("see", [IMAGE]))
        self.assertEqual(
            to_payload(payload),
            [
                {"role": "model", "parts": [{"text": "prev"}]},
                {
                    "role": "user",
                    "parts": [
                        {"inline_data": {"mime_type": "image/png", "data": "aGk="}},
                        {"text": "see"},
                    ],
                },
            ],
        )


if __name__ == "__main__":
    unittest.main()

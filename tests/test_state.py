"""Tests for lock-protected generation state transitions."""

from __future__ import annotations

import asyncio
import unittest

from gemini_chat.state import GenerationState, StateManager


class StateManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate the Idle → Sending → Streaming → terminal lifecycle."""

    async def test_can_send_only_when_not_active(self) -> None:
        manager = StateManager()
        self.assertTrue(await manager.can_send_message())
        self.assertTrue(await manager.begin_send())
        self.assertFalse(await manager.can_send_message())
        await manager.transition_to(GenerationState.STREAMING)
        self.assertFalse(await manager.can_send_message())
        await manager.transition_to(GenerationState.COMPLETED)
        self.assertTrue(await manager.can_send_message())

    async def test_terminal_states_allow_new_send(self) -> None:
        manager = StateManager()
        await manager.begin_send()
        await manager.transition_to(GenerationState.FAILED)
        self.assertTrue(await manager.begin_send())
        self.assertEqual(await manager.get_state(), GenerationState.SENDING)

    async def test_invalid_transition_raises(self) -> None:
        manager = StateManager()
        with self.assertRaises(ValueError):
            await manager.transition_to(GenerationState.STREAMING)
        self.assertEqual(manager.state, GenerationState.IDLE)

    async def test_sending_may_fail_before_streaming(self) -> None:
        manager = StateManager()
        await manager.begin_send()
        await manager.transition_to(GenerationState.FAILED)
        self.assertEqual(manager.state, GenerationState.FAILED)

    async def test_lock_prevents_double_send_entry(self) -> None:
        manager = StateManager()

        async def try_begin() -> bool:
            await asyncio.sleep(0)
            return await manager.begin_send()

        results = await asyncio.gather(*(try_begin() for _ in range(10)))
        self.assertEqual(sum(1 for result in results if result), 1)
        self.assertEqual(await manager.get_state(), GenerationState.SENDING)

    async def test_transitions_are_logged(self) -> None:
        manager = StateManager()
        with self.assertLogs("gemini_chat.state", level="INFO") as logs:
            await manager.begin_send()
        self.assertTrue(any("session.state.transition" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()

"""Tests for the in-memory session lifecycle."""

import threading
import unittest
from unittest.mock import patch

import numpy as np

from board_engine import InvalidDirectionError, MoveResult, as_board
from session_store import SessionStore, UnknownSessionError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class SessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.store = SessionStore(ttl_seconds=60, clock=self.clock)

    def test_start_creates_fresh_game(self) -> None:
        state = self.store.start("u1", 4, rng=np.random.default_rng(0))
        self.assertIn("u1", self.store)
        self.assertEqual(state.board.shape, (4, 4))
        self.assertEqual(np.count_nonzero(state.board), 2)
        self.assertEqual(state.to_dict()["score"], 0)
        self.assertFalse(state.won)
        self.assertFalse(state.game_over)

    def test_restart_replaces_existing_game(self) -> None:
        self.store.start("u1", 4)
        state = self.store.start("u1", 3)
        self.assertEqual(len(self.store), 1)
        self.assertEqual(self.store.get("u1").size, 3)
        self.assertIs(self.store.get("u1"), state)

    def test_unknown_user_raises(self) -> None:
        with self.assertRaises(UnknownSessionError):
            self.store.get("nobody")
        with self.assertRaises(UnknownSessionError):
            self.store.move("nobody", "left")

    def test_move_accumulates_score_and_flags(self) -> None:
        state = self.store.start("u1", 2)
        state.board = as_board([[2, 2], [0, 0]])
        state.score = 10

        state, result = self.store.move("u1", "left", rng=np.random.default_rng(1))

        self.assertTrue(result.moved)
        self.assertEqual(result.score_delta, 4)
        self.assertEqual(state.score, 14)
        self.assertEqual(state.board[0, 0], 4)
        self.assertFalse(state.game_over)

    def test_move_records_terminal_flags(self) -> None:
        state = self.store.start("u1", 2)
        final = as_board([[2048, 2], [4, 8]])
        with patch(
            "session_store.apply_move",
            return_value=MoveResult(final, 0, False, True, False),
        ):
            state, _ = self.store.move("u1", "up")
        self.assertTrue(state.won)
        self.assertEqual(state.to_dict()["board"], [[2048, 2], [4, 8]])

    def test_invalid_direction_leaves_state_untouched(self) -> None:
        state = self.store.start("u1", 4)
        before = state.board.copy()
        with self.assertRaises(InvalidDirectionError):
            self.store.move("u1", "diagonal")
        np.testing.assert_array_equal(self.store.get("u1").board, before)
        self.assertEqual(self.store.get("u1").score, 0)

    def test_idle_sessions_are_evicted(self) -> None:
        self.store.start("old", 4)
        self.clock.now += 30
        self.store.start("recent", 4)
        self.clock.now += 45

        self.assertEqual(self.store.evict_expired(), 1)
        self.assertNotIn("old", self.store)
        self.assertIn("recent", self.store)

    def test_access_refreshes_ttl(self) -> None:
        self.store.start("u1", 4)
        self.clock.now += 50
        self.store.get("u1")
        self.clock.now += 50
        self.assertEqual(self.store.evict_expired(), 0)
        self.clock.now += 61
        with self.assertRaises(UnknownSessionError):
            self.store.get("u1")

    def test_zero_ttl_never_evicts(self) -> None:
        store = SessionStore(ttl_seconds=0, clock=self.clock)
        store.start("u1", 4)
        self.clock.now += 10 ** 9
        self.assertEqual(store.evict_expired(), 0)
        self.assertIn("u1", store)

    def test_concurrent_moves_for_one_user_are_serialised(self) -> None:
        store = SessionStore(ttl_seconds=0)
        state = store.start("u1", 4)
        state.board = as_board([[2, 2, 0, 0], [0] * 4, [0] * 4, [0] * 4])
        errors = []

        def worker(direction: str) -> None:
            try:
                for _ in range(25):
                    store.move("u1", direction)
            except Exception as exc:  # pragma: no cover - surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(d,)) for d in ("left", "right", "up", "down")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        final = store.get("u1")
        board_total = int(final.board.sum())
        self.assertGreater(board_total, 0)
        self.assertEqual(board_total % 2, 0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

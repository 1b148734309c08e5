"""Per-user game sessions held in process memory."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from board_engine import MoveResult, apply_move, initialize_board

logger = logging.getLogger(__name__)


class UnknownSessionError(KeyError):
    pass


@dataclass
class GameState:
    board: np.ndarray
    size: int
    score: int = 0
    won: bool = False
    game_over: bool = False
    last_access: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def to_dict(self) -> Dict:
        return {
            "board": self.board.tolist(),
            "score": self.score,
            "gameOver": self.game_over,
            "won": self.won,
            "size": self.size,
        }


class SessionStore:
    """Maps opaque user identifiers to their current game.

    Sessions idle for longer than ``ttl_seconds`` are dropped on the next
    access to the store; a ttl of 0 keeps them forever. Moves for one user
    are serialised on that session's lock.
    """

    def __init__(self, ttl_seconds: float = 3600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._sessions: Dict[str, GameState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, user_id) -> bool:
        with self._lock:
            return user_id in self._sessions

    def evict_expired(self) -> int:
        if not self.ttl_seconds:
            return 0
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [uid for uid, state in self._sessions.items() if state.last_access < cutoff]
            for uid in expired:
                del self._sessions[uid]
        if expired:
            logger.info("Evicted %d idle session(s)", len(expired))
        return len(expired)

    def start(self, user_id: str, size: int = 4, rng: Optional[np.random.Generator] = None) -> GameState:
        """Create a fresh game for ``user_id``, replacing any existing one."""
        self.evict_expired()
        state = GameState(board=initialize_board(size, rng), size=size, last_access=self._clock())
        with self._lock:
            replaced = user_id in self._sessions
            self._sessions[user_id] = state
        logger.info("%s game for %s (size %d)", "Restarted" if replaced else "Started", user_id, size)
        return state

    def get(self, user_id: str) -> GameState:
        self.evict_expired()
        with self._lock:
            state = self._sessions.get(user_id)
            if state is None:
                raise UnknownSessionError(user_id)
            state.last_access = self._clock()
            return state

    def move(
        self, user_id: str, direction: str, rng: Optional[np.random.Generator] = None
    ) -> Tuple[GameState, MoveResult]:
        state = self.get(user_id)
        with state.lock:
            result = apply_move(state.board, direction, rng)
            state.board = result.board
            state.score += result.score_delta
            state.won = result.won
            state.game_over = result.game_over
            state.last_access = self._clock()
        return state, result


__all__ = ["GameState", "SessionStore", "UnknownSessionError"]

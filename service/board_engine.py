"""Core 2048 board mechanics shared by the game server, session store and tests."""

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

DIRECTION_NAMES: Sequence[str] = ("left", "right", "up", "down")
WIN_VALUE = 2048
FOUR_PROBABILITY = 0.1

# Clockwise quarter turns that bring each direction's target edge to the left.
ROTATIONS: Dict[str, int] = {"left": 0, "up": 3, "right": 2, "down": 1}

_rng = np.random.default_rng()


class GameError(ValueError):
    """Base class for rejected engine calls."""


class InvalidDirectionError(GameError):
    pass


class InvalidBoardError(GameError):
    pass


class MoveResult(NamedTuple):
    board: np.ndarray
    score_delta: int
    moved: bool
    won: bool
    game_over: bool


def _freeze(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, dtype=np.int64)
    out.flags.writeable = False
    return out


def as_board(grid) -> np.ndarray:
    """Return ``grid`` as a read-only square int64 board.

    Raises InvalidBoardError when the grid is not square or holds anything
    other than non-negative integers. Power-of-two values are not checked.
    """
    try:
        arr = np.asarray(grid)
    except ValueError as exc:
        raise InvalidBoardError(f"Board is not a rectangular grid: {exc}") from exc

    if arr.ndim != 2 or arr.shape[0] != arr.shape[1] or arr.shape[0] < 1:
        raise InvalidBoardError(f"Expected a square grid, received shape {arr.shape}")
    if arr.dtype == bool or not np.issubdtype(arr.dtype, np.integer):
        if not np.issubdtype(arr.dtype, np.floating) or not np.all(np.mod(arr, 1) == 0):
            raise InvalidBoardError(f"Board cells must be integers, got dtype {arr.dtype}")
    if np.any(arr < 0):
        raise InvalidBoardError("Board cells must be non-negative")
    return _freeze(arr)


def parse_direction(direction) -> str:
    name = direction.strip().lower() if isinstance(direction, str) else None
    if name not in ROTATIONS:
        raise InvalidDirectionError(
            f"Unknown direction: {direction!r}; expected one of {', '.join(DIRECTION_NAMES)}"
        )
    return name


def slide_row_left(row: Sequence[int]) -> Tuple[List[int], int]:
    """Slide ``row`` to the left, merging each equal pair once."""
    non_zero = [int(v) for v in row if v != 0]
    merged: List[int] = []
    score_delta = 0
    idx = 0

    while idx < len(non_zero):
        value = non_zero[idx]
        if idx + 1 < len(non_zero) and non_zero[idx + 1] == value:
            merged.append(value * 2)
            score_delta += value * 2
            idx += 2
        else:
            merged.append(value)
            idx += 1

    merged.extend([0] * (len(row) - len(merged)))
    return merged, score_delta


def rotate_board(board, times: int) -> np.ndarray:
    """Rotate ``board`` clockwise by ``times`` quarter turns.

    Cell (i, j) lands on (j, N-1-i) for each turn; ``times`` may be negative.
    """
    arr = as_board(board)
    return _freeze(np.rot90(arr, -(times % 4)))


def _apply_left(board: np.ndarray) -> Tuple[np.ndarray, int]:
    rows = []
    total = 0
    for row in board:
        new_row, delta = slide_row_left(row.tolist())
        rows.append(new_row)
        total += delta
    return np.array(rows, dtype=np.int64).reshape(board.shape), total


def slide_board(board, direction: str) -> Tuple[np.ndarray, int]:
    """Slide and merge the whole board without spawning a tile."""
    arr = as_board(board)
    rotations = ROTATIONS[parse_direction(direction)]

    working = rotate_board(arr, rotations)
    reduced, score_delta = _apply_left(working)
    return rotate_board(reduced, 4 - rotations), score_delta


def spawn_tile(board, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Place a 2 (90%) or 4 (10%) on a uniformly chosen empty cell."""
    arr = as_board(board)
    rng = rng if rng is not None else _rng

    empty = np.argwhere(arr == 0)
    if len(empty) == 0:
        return arr

    row, col = empty[rng.integers(len(empty))]
    value = 4 if rng.random() < FOUR_PROBABILITY else 2
    nxt = arr.copy()
    nxt[row, col] = value
    logger.debug("Spawned %d at (%d, %d)", value, row, col)
    return _freeze(nxt)


def initialize_board(size: int = 4, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 2:
        raise InvalidBoardError(f"Board size must be an integer >= 2, got {size!r}")
    board = np.zeros((size, size), dtype=np.int64)
    return spawn_tile(spawn_tile(board, rng), rng)


def has_possible_moves(board) -> bool:
    arr = as_board(board)
    if np.any(arr == 0):
        return True
    if np.any(arr[:, 1:] == arr[:, :-1]):
        return True
    return bool(np.any(arr[1:, :] == arr[:-1, :]))


def is_won(board, target: int = WIN_VALUE) -> bool:
    return bool(np.any(as_board(board) == target))


def apply_move(board, direction: str, rng: Optional[np.random.Generator] = None) -> MoveResult:
    """Play one move: slide, spawn if anything changed, then check for a terminal state."""
    original = as_board(board)
    slid, score_delta = slide_board(original, direction)

    moved = not np.array_equal(slid, original)
    result = spawn_tile(slid, rng) if moved else original

    won = is_won(result)
    game_over = not won and not has_possible_moves(result)
    logger.debug(
        "Move %s: moved=%s delta=%d won=%s game_over=%s",
        direction, moved, score_delta, won, game_over,
    )
    return MoveResult(result, score_delta, moved, won, game_over)


def valid_moves(grid) -> List[str]:
    allowed: List[str] = []
    board = as_board(grid)
    for direction in DIRECTION_NAMES:
        slid, _ = slide_board(board, direction)
        if not np.array_equal(slid, board):
            allowed.append(direction)
    return allowed


__all__ = [
    "DIRECTION_NAMES",
    "WIN_VALUE",
    "GameError",
    "InvalidBoardError",
    "InvalidDirectionError",
    "MoveResult",
    "apply_move",
    "as_board",
    "has_possible_moves",
    "initialize_board",
    "is_won",
    "parse_direction",
    "rotate_board",
    "slide_board",
    "slide_row_left",
    "spawn_tile",
    "valid_moves",
]

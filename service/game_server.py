import logging
import os
from typing import Dict

from flask import Flask, jsonify, request
from flask_cors import CORS

from board_engine import GameError, valid_moves
from session_store import SessionStore, UnknownSessionError

logger = logging.getLogger(__name__)

DEFAULT_SIZE = int(os.environ.get("GAME_DEFAULT_SIZE", 4))
MAX_SIZE = int(os.environ.get("GAME_MAX_SIZE", 10))
SESSION_TTL = float(os.environ.get("GAME_SESSION_TTL", 3600))

app = Flask(__name__)
allowed_origins = os.environ.get("GAME_ALLOWED_ORIGINS", "*")
CORS(app, resources={r"/api/*": {"origins": allowed_origins}}, supports_credentials=True)
_store = SessionStore(ttl_seconds=SESSION_TTL)


def parse_size(raw) -> int:
    if raw is None or raw == "" or raw == 0:
        return DEFAULT_SIZE
    if isinstance(raw, bool):
        raise ValueError(f"Invalid board size: {raw!r}")
    try:
        size = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid board size: {raw!r}") from None
    if isinstance(raw, float) and raw != size:
        raise ValueError(f"Invalid board size: {raw!r}")
    if not 2 <= size <= MAX_SIZE:
        raise ValueError(f"Board size must be between 2 and {MAX_SIZE}, received {size}")
    return size


def _payload() -> Dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _new_game(missing_user_error: str):
    payload = _payload()
    user_id = payload.get("userId")
    if not user_id:
        return jsonify({"error": missing_user_error}), 400

    try:
        size = parse_size(payload.get("size"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    state = _store.start(str(user_id), size)
    return jsonify(state.to_dict())


@app.post("/api/game/start")
def start():
    return _new_game("userId is required")


@app.post("/api/game/restart")
def restart():
    return _new_game("Invalid userId")


@app.post("/api/game/move")
def move():
    payload = _payload()
    user_id = payload.get("userId")
    if not user_id:
        return jsonify({"error": "Invalid userId"}), 400

    try:
        state, result = _store.move(str(user_id), payload.get("direction"))
    except UnknownSessionError:
        return jsonify({"error": "Invalid userId"}), 400
    except GameError as exc:
        return jsonify({"error": str(exc)}), 400

    response = state.to_dict()
    response["moved"] = result.moved
    response["scoreDelta"] = result.score_delta
    return jsonify(response)


@app.get("/api/game/state")
def game_state():
    user_id = request.args.get("userId")
    if not user_id:
        return jsonify({"error": "Invalid userId"}), 400

    try:
        state = _store.get(user_id)
    except UnknownSessionError:
        return jsonify({"error": "Invalid userId"}), 400

    response = state.to_dict()
    response["validMoves"] = valid_moves(state.board)
    return jsonify(response)


@app.errorhandler(500)
def internal_error(exc):
    original = getattr(exc, "original_exception", None) or exc
    logger.error("Error in %s %s: %r", request.method, request.path, original)
    return jsonify({"error": "Internal Server Error"}), 500


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("GAME_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Use 0.0.0.0 so the frontend can reach it from another process on the same machine.
    port = int(os.environ.get("PORT", 5001))
    app.run(host="0.0.0.0", port=port, debug=bool(os.environ.get("FLASK_DEBUG")))

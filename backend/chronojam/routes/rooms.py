from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from ..game import service
from ..game.sessions import PlayerSessionStore

bp = Blueprint("rooms", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


@bp.post("/rooms")
def create_room():
    data = _payload()
    state = service.create_room(song_count=data.get("songCount"))
    return jsonify({"roomCode": state.room_id, "room": service.snapshot(state.room_id)}), 201


@bp.get("/rooms/<code>")
def get_room(code: str):
    return jsonify(service.snapshot(code))


@bp.post("/rooms/<code>/join")
def join_room(code: str):
    data = _payload()
    name = _str(data, "name")
    color = _str(data, "color") or None
    room_code = service.normalize_room_code(code)

    # Clients without a stored id get one from the signed session cookie.
    player_id = _str(data, "playerId")
    if not player_id and name and service.room_exists(room_code):
        player_id = PlayerSessionStore(session).get_or_create(room_code, name).id

    room = service.join(room_code, player_id, name, color=color)
    return jsonify({"playerId": player_id, "room": room})


@bp.post("/rooms/<code>/heartbeat")
def heartbeat(code: str):
    return jsonify(service.heartbeat(code, _str(_payload(), "playerId")))


@bp.post("/rooms/<code>/leave")
def leave_room(code: str):
    return jsonify(service.leave(code, _str(_payload(), "playerId")))


@bp.post("/rooms/<code>/start")
def start_game(code: str):
    return jsonify(service.start_game(code))


@bp.post("/rooms/<code>/skip")
def skip_phase(code: str):
    return jsonify(service.skip_phase(code))


@bp.post("/rooms/<code>/guess")
def submit_guess(code: str):
    data = _payload()
    room = service.submit_guess(
        code,
        player_id=_str(data, "playerId"),
        track_id=_str(data, "trackId"),
        artist_id=_str(data, "artistId"),
        round_id=_str(data, "roundId") or None,
    )
    return jsonify(room)


@bp.post("/rooms/<code>/timeline")
def submit_timeline(code: str):
    data = _payload()
    room = service.submit_timeline(
        code,
        player_id=_str(data, "playerId"),
        insert_index=data.get("insertIndex"),
        round_id=_str(data, "roundId") or None,
    )
    return jsonify(room)


@bp.post("/rooms/<code>/preload")
def update_preload(code: str):
    data = _payload()
    room = service.update_preload(
        code,
        player_id=_str(data, "playerId"),
        game_pack_loaded=data.get("gamePackLoaded") is True,
        autocomplete_loaded=data.get("autocompleteLoaded") is True,
        pack_hash=_str(data, "gamePackHash"),
    )
    return jsonify(room)


@bp.post("/rooms/<code>/reset")
def reset_lobby(code: str):
    return jsonify(service.reset_lobby(code))

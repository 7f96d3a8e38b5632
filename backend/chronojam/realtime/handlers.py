from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from flask import current_app, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..config import Config
from ..game import service
from ..game.errors import GameError

logger = logging.getLogger(__name__)

_room_tasks: dict[str, bool] = {}
_room_tasks_lock = Lock()


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def _str(payload: dict, key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


def _room_code(payload: dict) -> str:
    return service.normalize_room_code(_str(payload, "roomCode"))


def _player_id(payload: dict) -> str:
    return _str(payload, "playerId")


def _fail(error: str, message: str = "") -> dict:
    emit("room:error", {"error": error, "message": message})
    return {"ok": False, "error": error}


def register_socketio_handlers(socketio: SocketIO) -> None:
    def _broadcast_room_state(room_code: str, room: dict | None = None) -> None:
        if room is None:
            room = service.snapshot(room_code)
        socketio.emit("room:state", room, to=room_code)

    def _safe_broadcast_room_state(room_code: str, room: dict | None = None) -> None:
        try:
            _broadcast_room_state(room_code, room)
        except GameError:
            socketio.emit("room:error", {"error": "room_not_found"}, to=room_code)
        except Exception:
            logger.exception("Broadcast failed for room %s.", room_code)

    def _ensure_room_task(room_code: str) -> None:
        if not current_app.config.get("START_TICKER", True):
            return
        with _room_tasks_lock:
            if _room_tasks.get(room_code):
                return
            _room_tasks[room_code] = True

        ttl_ms = int(current_app.config.get("EMPTY_ROOM_TTL_SEC", Config.EMPTY_ROOM_TTL_SEC)) * 1000
        interval = float(current_app.config.get("TICK_INTERVAL_SEC", Config.TICK_INTERVAL_SEC))

        def _runner() -> None:
            last_sent_sec: int | None = None
            try:
                while service.room_exists(room_code):
                    now = service.now_ms()
                    try:
                        changed, room = service.advance_room(room_code, now)
                        if service.is_expired(room_code, ttl_ms, now):
                            service.delete_room(room_code)
                            break
                    except GameError:
                        break

                    if changed:
                        _safe_broadcast_room_state(room_code, room)

                    sec = now // 1000
                    if sec != last_sent_sec:
                        last_sent_sec = sec
                        socketio.emit(
                            "game:tick",
                            {"roomCode": room_code, "nowMs": now, "phaseEndsAt": room["phaseEndsAt"]},
                            to=room_code,
                        )

                    socketio.sleep(interval)
            except Exception:
                logger.exception("Room ticker crashed for %s.", room_code)
            finally:
                with _room_tasks_lock:
                    _room_tasks.pop(room_code, None)

        socketio.start_background_task(_runner)

    @socketio.on("room:join")
    def room_join(data):
        payload = _payload(data)
        room_code = _room_code(payload)
        if not room_code:
            return _fail("invalid_room")

        try:
            room = service.join(
                room_code,
                _player_id(payload),
                _str(payload, "name"),
                color=_str(payload, "color") or None,
            )
        except GameError as exc:
            return _fail(exc.code, exc.message)

        join_room(room_code)
        _ensure_room_task(room_code)
        _safe_broadcast_room_state(room_code, room)
        return {"ok": True, "room": room}

    @socketio.on("room:watch")
    def room_watch(data):
        # Host screens subscribe without joining as a player.
        payload = _payload(data)
        room_code = _room_code(payload)
        try:
            room = service.snapshot(room_code)
        except GameError as exc:
            return _fail(exc.code, exc.message)

        join_room(room_code)
        _ensure_room_task(room_code)
        emit("room:state", room, to=request.sid)
        return {"ok": True}

    @socketio.on("room:leave")
    def room_leave(data):
        payload = _payload(data)
        room_code = _room_code(payload)
        try:
            room = service.leave(room_code, _player_id(payload))
        except GameError as exc:
            return _fail(exc.code, exc.message)

        leave_room(room_code)
        _safe_broadcast_room_state(room_code, room)
        return {"ok": True}

    def _room_command(data, command) -> dict:
        payload = _payload(data)
        room_code = _room_code(payload)
        if not room_code:
            return _fail("invalid_room")

        try:
            room = command(room_code, payload)
        except GameError as exc:
            logger.debug("Rejected %s for room %s: %s", exc.code, room_code, exc.message)
            return _fail(exc.code, exc.message)

        _safe_broadcast_room_state(room_code, room)
        return {"ok": True}

    @socketio.on("room:preload")
    def room_preload(data):
        def _update(code: str, payload: dict[str, Any]) -> dict:
            return service.update_preload(
                code,
                _player_id(payload),
                payload.get("gamePackLoaded") is True,
                payload.get("autocompleteLoaded") is True,
                _str(payload, "gamePackHash"),
            )

        return _room_command(data, _update)

    @socketio.on("game:start")
    def game_start(data):
        ack = _room_command(data, lambda code, _: service.start_game(code))
        if ack.get("ok"):
            _ensure_room_task(_room_code(_payload(data)))
        return ack

    @socketio.on("game:skip")
    def game_skip(data):
        return _room_command(data, lambda code, _: service.skip_phase(code))

    @socketio.on("game:reset")
    def game_reset(data):
        return _room_command(data, lambda code, _: service.reset_lobby(code))

    @socketio.on("guess:submit")
    def guess_submit(data):
        def _submit(code: str, payload: dict[str, Any]) -> dict:
            return service.submit_guess(
                code,
                _player_id(payload),
                _str(payload, "trackId"),
                _str(payload, "artistId"),
                round_id=_str(payload, "roundId") or None,
            )

        return _room_command(data, _submit)

    @socketio.on("timeline:submit")
    def timeline_submit(data):
        def _submit(code: str, payload: dict[str, Any]) -> dict:
            return service.submit_timeline(
                code,
                _player_id(payload),
                payload.get("insertIndex"),
                round_id=_str(payload, "roundId") or None,
            )

        return _room_command(data, _submit)

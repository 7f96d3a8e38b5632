from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import lru_cache
from threading import RLock

from ..config import Config
from . import catalog, engine
from .errors import NotFound
from .models import RoomState, Round

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RoomHandle:
    state: RoomState
    lock: RLock = field(default_factory=RLock)
    last_empty_at_ms: int | None = None


_lock = RLock()
_rooms: dict[str, RoomHandle] = {}


def durations() -> engine.PhaseDurations:
    return engine.PhaseDurations(
        listen_ms=Config.LISTEN_DURATION_MS,
        reveal_ms=Config.REVEAL_DURATION_MS,
        intermission_ms=Config.INTERMISSION_DURATION_MS,
    )


def normalize_room_code(code: str) -> str:
    return (code or "").strip().upper()


def _new_room_code() -> str:
    return str(random.randint(1000, 9999))


def create_room(
    song_count=None,
    rounds: list[Round] | None = None,
    now: int | None = None,
) -> RoomState:
    at = now if now is not None else now_ms()
    sweep_expired(Config.EMPTY_ROOM_TTL_SEC * 1000, at)
    picked = rounds if rounds is not None else catalog.pick_rounds(song_count, fallback=Config.DEFAULT_SONG_COUNT)

    with _lock:
        code = _new_room_code()
        while code in _rooms:
            code = _new_room_code()

        state = engine.create_lobby(code, at)
        engine.assign_rounds(state, picked, at)
        # Nobody has joined yet, so the empty-room clock starts now.
        _rooms[code] = RoomHandle(state=state, last_empty_at_ms=at)

    logger.info("Created room %s with %s rounds.", code, len(state.rounds))
    return state


def get_handle(code: str) -> RoomHandle:
    with _lock:
        handle = _rooms.get(normalize_room_code(code))
    if handle is None:
        raise NotFound("Room not found.", code="room_not_found")
    return handle


def room_exists(code: str) -> bool:
    with _lock:
        return normalize_room_code(code) in _rooms


def delete_room(code: str) -> bool:
    with _lock:
        removed = _rooms.pop(normalize_room_code(code), None)
    if removed is not None:
        logger.info("Deleted room %s.", removed.state.room_id)
        return True
    return False


def list_room_codes() -> list[str]:
    with _lock:
        return list(_rooms.keys())


def clear_rooms() -> None:
    with _lock:
        _rooms.clear()


@contextmanager
def locked_room(code: str, now: int | None = None):
    """Yield the room's state under its lock, after catching up on due phases."""
    handle = get_handle(code)
    at = now if now is not None else now_ms()
    with handle.lock:
        engine.tick(handle.state, at, durations())
        yield handle.state, at


def snapshot(code: str, now: int | None = None) -> dict:
    with locked_room(code, now) as (state, at):
        return engine.snapshot(state, at)


def join(code: str, player_id: str, name: str, color: str | None = None, now: int | None = None) -> dict:
    handle = get_handle(code)
    with locked_room(code, now) as (state, at):
        engine.join(state, player_id, name, at, color=color)
        handle.last_empty_at_ms = None
        return engine.snapshot(state, at)


def heartbeat(code: str, player_id: str, now: int | None = None) -> dict:
    with locked_room(code, now) as (state, at):
        engine.heartbeat(state, player_id, at)
        return engine.snapshot(state, at)


def leave(code: str, player_id: str, now: int | None = None) -> dict:
    handle = get_handle(code)
    with locked_room(code, now) as (state, at):
        engine.leave(state, player_id, at)
        if not state.participants and handle.last_empty_at_ms is None:
            handle.last_empty_at_ms = at
        return engine.snapshot(state, at)


def start_game(code: str, now: int | None = None) -> dict:
    with locked_room(code, now) as (state, at):
        engine.start_game(state, at, durations())
        return engine.snapshot(state, at)


def skip_phase(code: str, now: int | None = None) -> dict:
    with locked_room(code, now) as (state, at):
        engine.skip_phase(state, at, durations())
        return engine.snapshot(state, at)


def submit_guess(
    code: str,
    player_id: str,
    track_id: str,
    artist_id: str,
    round_id: str | None = None,
    now: int | None = None,
) -> dict:
    with locked_room(code, now) as (state, at):
        engine.submit_guess(state, player_id, track_id, artist_id, at, round_id=round_id)
        return engine.snapshot(state, at)


def submit_timeline(
    code: str,
    player_id: str,
    insert_index,
    round_id: str | None = None,
    now: int | None = None,
) -> dict:
    with locked_room(code, now) as (state, at):
        engine.submit_timeline(state, player_id, insert_index, at, round_id=round_id)
        return engine.snapshot(state, at)


def update_preload(
    code: str,
    player_id: str,
    game_pack_loaded,
    autocomplete_loaded,
    pack_hash,
    now: int | None = None,
) -> dict:
    with locked_room(code, now) as (state, at):
        engine.update_preload(state, player_id, game_pack_loaded, autocomplete_loaded, pack_hash, at)
        return engine.snapshot(state, at)


def reset_lobby(code: str, now: int | None = None) -> dict:
    with locked_room(code, now) as (state, at):
        engine.reset_lobby(state, at)
        return engine.snapshot(state, at)


def advance_room(code: str, now: int | None = None) -> tuple[bool, dict]:
    """Ticker entry point. Returns (phase changed, snapshot)."""
    handle = get_handle(code)
    at = now if now is not None else now_ms()
    with handle.lock:
        steps = engine.tick(handle.state, at, durations())
        if not handle.state.participants:
            if handle.last_empty_at_ms is None:
                handle.last_empty_at_ms = at
        else:
            handle.last_empty_at_ms = None
        return steps > 0, engine.snapshot(handle.state, at)


def is_expired(code: str, ttl_ms: int, now: int | None = None) -> bool:
    handle = get_handle(code)
    at = now if now is not None else now_ms()
    with handle.lock:
        return handle.last_empty_at_ms is not None and at - handle.last_empty_at_ms >= ttl_ms


def sweep_expired(ttl_ms: int, now: int | None = None) -> list[str]:
    """Delete every room that has been empty for at least ``ttl_ms``."""
    at = now if now is not None else now_ms()
    with _lock:
        handles = list(_rooms.items())

    removed = []
    for code, handle in handles:
        with handle.lock:
            if handle.last_empty_at_ms is None or at - handle.last_empty_at_ms < ttl_ms:
                continue
            with _lock:
                if _rooms.get(code) is handle:
                    del _rooms[code]
                    removed.append(code)
    if removed:
        logger.info("Expired %s empty rooms: %s", len(removed), ", ".join(removed))
    return removed


@lru_cache(maxsize=1)
def _default_autocomplete_pack() -> dict:
    return catalog.build_autocomplete_pack()


def autocomplete_pack(code: str | None = None) -> dict:
    if code:
        handle = get_handle(code)
        with handle.lock:
            rounds = list(handle.state.rounds)
        return catalog.build_autocomplete_pack(rounds)
    return _default_autocomplete_pack()

"""Room phase state machine.

Every function takes the room's ``RoomState`` and a caller-supplied ``now``
(epoch milliseconds) and mutates the state in place. Rejected operations
raise a ``GameError`` before touching anything, so a failed call never
leaves the room half-updated. Callers serialize access per room.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import InvalidTransition, NotAllowed, NotFound, ValidationError
from .models import (
    GuessSubmission,
    Participant,
    Phase,
    PreloadReadiness,
    RoomState,
    Round,
    RoundBreakdown,
    TimelineSubmission,
)
from .scoring import score_round
from .timeline import board_payload, build_entries, clamp_insert_index

logger = logging.getLogger(__name__)


PARTICIPANT_COLORS = ("#4ec7e0", "#f28d35", "#e45395", "#7bcf4b", "#7d6cfc", "#ff7f5c")
MAX_NAME_LENGTH = 24


@dataclass(frozen=True)
class PhaseDurations:
    listen_ms: int = 45_000
    reveal_ms: int = 8_000
    intermission_ms: int = 5_000

    def for_phase(self, phase: Phase) -> int:
        if phase == "LISTEN":
            return self.listen_ms
        if phase == "REVEAL":
            return self.reveal_ms
        if phase == "INTERMISSION":
            return self.intermission_ms
        return 0


DEFAULT_DURATIONS = PhaseDurations()


def create_lobby(room_id: str, now: int) -> RoomState:
    return RoomState(
        room_id=room_id,
        lifecycle="lobby",
        phase="LOBBY",
        phase_started_at=now,
        phase_ends_at=now,
        updated_at=now,
    )


def current_round(state: RoomState) -> Round | None:
    if 0 <= state.current_round_index < len(state.rounds):
        return state.rounds[state.current_round_index]
    return None


def assign_rounds(state: RoomState, rounds: Iterable[Round], now: int) -> None:
    if state.lifecycle != "lobby":
        raise InvalidTransition("Rounds can only be changed in the lobby.")

    picked: list[Round] = []
    seen: set[str] = set()
    for r in rounds:
        if r.id in seen:
            continue
        seen.add(r.id)
        picked.append(r)

    state.rounds = picked
    state.updated_at = now


def _clean_id(value, field_name: str) -> str:
    v = value.strip() if isinstance(value, str) else ""
    if not v:
        raise ValidationError(f"{field_name} is required.")
    return v


def _clean_name(name) -> str:
    n = re.sub(r"\s+", " ", name if isinstance(name, str) else "").strip()
    if not n:
        raise ValidationError("Name is required.")
    if "<" in n or ">" in n:
        raise ValidationError("Name contains invalid characters.")
    if any(ord(ch) < 32 for ch in n):
        raise ValidationError("Name contains invalid characters.")
    return n[:MAX_NAME_LENGTH]


def join(
    state: RoomState,
    player_id: str,
    name: str,
    now: int,
    color: str | None = None,
) -> Participant:
    pid = _clean_id(player_id, "playerId")
    clean_name = _clean_name(name)

    existing = state.participant(pid)
    if existing is not None:
        existing.name = clean_name
        if color:
            existing.color = color
        existing.last_seen_at = now
        state.updated_at = now
        return existing

    if state.lifecycle != "lobby" and pid not in state.allowed_player_ids:
        raise NotAllowed("This game already started.")

    participant = Participant(
        id=pid,
        name=clean_name,
        color=color or PARTICIPANT_COLORS[len(state.participants) % len(PARTICIPANT_COLORS)],
        joined_at=now,
        last_seen_at=now,
    )
    state.participants.append(participant)
    state.updated_at = now
    logger.debug("Room %s: %s joined as %r.", state.room_id, pid, clean_name)
    return participant


def heartbeat(state: RoomState, player_id: str, now: int) -> Participant:
    participant = state.participant(_clean_id(player_id, "playerId"))
    if participant is None:
        raise NotFound("Player not found.")
    participant.last_seen_at = now
    return participant


def leave(state: RoomState, player_id: str, now: int) -> bool:
    pid = player_id.strip() if isinstance(player_id, str) else ""
    remaining = [p for p in state.participants if p.id != pid]
    if len(remaining) == len(state.participants):
        return False
    state.participants = remaining
    state.preload_readiness.pop(pid, None)
    state.updated_at = now
    return True


def update_preload(
    state: RoomState,
    player_id: str,
    game_pack_loaded,
    autocomplete_loaded,
    pack_hash,
    now: int,
) -> PreloadReadiness:
    """Record how far a participant got loading the game pack and suggestions.

    Unchanged reports keep the earlier entry, so ``updated_at`` marks the last
    real change.
    """
    pid = _clean_id(player_id, "playerId")
    if state.participant(pid) is None:
        raise NotFound("Player not found.")

    readiness = PreloadReadiness(
        player_id=pid,
        game_pack_loaded=bool(game_pack_loaded),
        autocomplete_loaded=bool(autocomplete_loaded),
        game_pack_hash=pack_hash.strip() if isinstance(pack_hash, str) else "",
        updated_at=now,
    )
    existing = state.preload_readiness.get(pid)
    if existing is not None and (
        existing.game_pack_loaded,
        existing.autocomplete_loaded,
        existing.game_pack_hash,
    ) == (readiness.game_pack_loaded, readiness.autocomplete_loaded, readiness.game_pack_hash):
        return existing

    state.preload_readiness[pid] = readiness
    return readiness


def _enter_phase(state: RoomState, phase: Phase, now: int, durations: PhaseDurations) -> None:
    state.phase = phase
    state.phase_started_at = now
    state.phase_ends_at = now + durations.for_phase(phase)
    state.updated_at = now


def _finish(state: RoomState, now: int) -> None:
    state.lifecycle = "finished"
    state.current_round_index = len(state.rounds)
    _enter_phase(state, "FINAL", now, DEFAULT_DURATIONS)


def start_game(state: RoomState, now: int, durations: PhaseDurations = DEFAULT_DURATIONS) -> None:
    if state.lifecycle != "lobby" or state.phase != "LOBBY":
        raise InvalidTransition("The game can only be started from the lobby.")
    if not state.rounds:
        raise InvalidTransition("No rounds assigned.")
    if not state.participants:
        raise InvalidTransition("At least one player is required.")

    allowed = list(dict.fromkeys(p.id for p in state.participants))
    state.allowed_player_ids = allowed
    state.lifecycle = "running"
    state.current_round_index = 0
    state.guess_submissions = {}
    state.timeline_submissions = {}
    state.round_breakdowns = {}
    state.timeline_round_ids = []
    state.scores = {pid: 0 for pid in allowed}
    state.preload_readiness = {}
    _enter_phase(state, "LISTEN", now, durations)
    logger.info("Room %s: game started with %s players, %s rounds.", state.room_id, len(allowed), len(state.rounds))


def reset_lobby(state: RoomState, now: int) -> None:
    """Back to the lobby with the same players and rounds, ready for a new game."""
    state.lifecycle = "lobby"
    state.phase = "LOBBY"
    state.phase_started_at = now
    state.phase_ends_at = now
    state.updated_at = now
    state.current_round_index = 0
    state.allowed_player_ids = []
    state.guess_submissions = {}
    state.timeline_submissions = {}
    state.round_breakdowns = {}
    state.timeline_round_ids = []
    state.scores = {}
    state.preload_readiness = {}
    logger.info("Room %s: reset to lobby.", state.room_id)


def _require_open_listen(state: RoomState, player_id: str, round_id: str | None, now: int) -> Round:
    if state.lifecycle != "running" or state.phase != "LISTEN":
        raise InvalidTransition("Submissions are closed.")
    if now >= state.phase_ends_at:
        raise InvalidTransition("Submissions are closed.")
    if player_id not in state.allowed_player_ids:
        raise NotAllowed("Player is not part of this game.")

    active = current_round(state)
    if active is None:
        raise InvalidTransition("No active round.")
    if round_id is not None and round_id != active.id:
        raise InvalidTransition("That round is not active.")
    return active


def submit_guess(
    state: RoomState,
    player_id: str,
    track_id: str,
    artist_id: str,
    now: int,
    round_id: str | None = None,
) -> GuessSubmission:
    pid = _clean_id(player_id, "playerId")
    tid = _clean_id(track_id, "trackId")
    aid = _clean_id(artist_id, "artistId")
    active = _require_open_listen(state, pid, round_id, now)

    submission = GuessSubmission(
        player_id=pid,
        round_id=active.id,
        track_id=tid,
        artist_id=aid,
        submitted_at=now,
    )
    state.guess_submissions[(pid, active.id)] = submission
    state.updated_at = now
    return submission


def submit_timeline(
    state: RoomState,
    player_id: str,
    insert_index,
    now: int,
    round_id: str | None = None,
) -> TimelineSubmission:
    pid = _clean_id(player_id, "playerId")
    if isinstance(insert_index, bool) or not isinstance(insert_index, (int, float)):
        raise ValidationError("insertIndex must be a number.")
    if not math.isfinite(insert_index):
        raise ValidationError("insertIndex must be finite.")
    active = _require_open_listen(state, pid, round_id, now)

    board = build_entries(state.timeline_round_ids, state.rounds)
    submission = TimelineSubmission(
        player_id=pid,
        round_id=active.id,
        insert_index=clamp_insert_index(insert_index, len(board)),
        submitted_at=now,
    )
    state.timeline_submissions[(pid, active.id)] = submission
    state.updated_at = now
    return submission


def _resolve_round(state: RoomState, round_: Round, now: int) -> None:
    if round_.id in state.round_breakdowns:
        return

    breakdown = score_round(state, round_, now)
    scores = dict(state.scores)
    for pid, player in breakdown.players.items():
        scores[pid] = scores.get(pid, 0) + player.points.total

    state.round_breakdowns[round_.id] = breakdown
    state.scores = scores
    if round_.id not in state.timeline_round_ids:
        state.timeline_round_ids.append(round_.id)


def advance_phase(state: RoomState, now: int, durations: PhaseDurations = DEFAULT_DURATIONS) -> bool:
    """Run at most one due transition. Returns whether the phase changed."""
    if state.lifecycle != "running" or now < state.phase_ends_at:
        return False

    previous = state.phase
    active = current_round(state)
    if active is None:
        _finish(state, now)
    elif state.phase == "LISTEN":
        _resolve_round(state, active, now)
        _enter_phase(state, "REVEAL", now, durations)
    elif state.phase == "REVEAL":
        if state.current_round_index >= len(state.rounds) - 1:
            _finish(state, now)
        else:
            _enter_phase(state, "INTERMISSION", now, durations)
    elif state.phase == "INTERMISSION":
        state.current_round_index += 1
        if state.current_round_index < len(state.rounds):
            _enter_phase(state, "LISTEN", now, durations)
        else:
            _finish(state, now)
    else:
        _finish(state, now)

    logger.debug(
        "Room %s: %s -> %s (round %s).",
        state.room_id,
        previous,
        state.phase,
        state.current_round_index,
    )
    return True


def tick(state: RoomState, now: int, durations: PhaseDurations = DEFAULT_DURATIONS, max_steps: int = 12) -> int:
    """Catch up on every elapsed deadline, each transition timed at its own deadline."""
    steps = 0
    while steps < max_steps and state.lifecycle == "running" and now >= state.phase_ends_at:
        if not advance_phase(state, state.phase_ends_at, durations):
            break
        steps += 1
    return steps


def skip_phase(state: RoomState, now: int, durations: PhaseDurations = DEFAULT_DURATIONS) -> None:
    if state.lifecycle != "running":
        raise InvalidTransition("The game is not running.")
    at = max(now, state.phase_started_at)
    state.phase_ends_at = at
    advance_phase(state, at, durations)


def _participant_payload(p: Participant) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "color": p.color,
        "joinedAt": p.joined_at,
        "lastSeenAt": p.last_seen_at,
    }


def _round_payload(r: Round, reveal_answer: bool) -> dict:
    payload = {
        "id": r.id,
        "spotifyUri": r.spotify_uri,
        "startMs": r.start_ms,
    }
    if reveal_answer:
        payload.update(
            {
                "trackId": r.track_id,
                "artistId": r.artist_id,
                "title": r.title,
                "artist": r.artist,
                "year": r.year,
            }
        )
    return payload


def _breakdown_payload(b: RoundBreakdown) -> dict:
    players = {}
    for pid, pb in b.players.items():
        players[pid] = {
            "playerId": pid,
            "guessCorrect": {"track": pb.guess_correct.track, "artist": pb.guess_correct.artist},
            "timelineCorrect": pb.timeline_correct,
            "points": {
                "track": pb.points.track,
                "artist": pb.points.artist,
                "timeline": pb.points.timeline,
                "speed": pb.points.speed,
                "total": pb.points.total,
            },
        }
    return {"roundId": b.round_id, "resolvedAt": b.resolved_at, "players": players}


def snapshot(state: RoomState, now: int) -> dict:
    active = current_round(state) if state.lifecycle == "running" else None
    round_id = active.id if active else None
    submitted_guess = [pid for (pid, rid) in state.guess_submissions if rid == round_id]
    submitted_timeline = [pid for (pid, rid) in state.timeline_submissions if rid == round_id]

    return {
        "roomId": state.room_id,
        "lifecycle": state.lifecycle,
        "phase": state.phase,
        "phaseStartedAt": state.phase_started_at,
        "phaseEndsAt": state.phase_ends_at,
        "remainingMs": max(0, state.phase_ends_at - now) if state.lifecycle == "running" else 0,
        "updatedAt": state.updated_at,
        "currentRoundIndex": state.current_round_index,
        "roundCount": len(state.rounds),
        "participants": [_participant_payload(p) for p in state.participants],
        "allowedPlayerIds": list(state.allowed_player_ids),
        "scores": dict(state.scores),
        "currentRound": _round_payload(active, reveal_answer=state.phase in ("REVEAL", "INTERMISSION")) if active else None,
        "roundBreakdowns": {rid: _breakdown_payload(b) for rid, b in state.round_breakdowns.items()},
        "timeline": board_payload(build_entries(state.timeline_round_ids, state.rounds)),
        "submittedPlayerIds": {"guess": submitted_guess, "timeline": submitted_timeline},
        "preloadReadiness": {
            pid: {
                "playerId": r.player_id,
                "gamePackLoaded": r.game_pack_loaded,
                "autocompleteLoaded": r.autocomplete_loaded,
                "gamePackHash": r.game_pack_hash,
                "updatedAt": r.updated_at,
            }
            for pid, r in state.preload_readiness.items()
        },
    }

from __future__ import annotations

import math
from collections.abc import Sequence

from .models import (
    GuessCorrect,
    GuessSubmission,
    PlayerBreakdown,
    Points,
    RoomState,
    Round,
    RoundBreakdown,
    TimelineSubmission,
)
from .timeline import TimelineEntry, build_entries, is_insert_correct


TRACK_POINTS = 25
ARTIST_POINTS = 25
TIMELINE_POINTS = 25
SPEED_BONUS_MAX = 25
SPEED_BONUS_STEP_SECONDS = 2


def speed_bonus(submitted_at: int, listen_started_at: int) -> int:
    elapsed_sec = max(0, math.floor((submitted_at - listen_started_at) / 1000))
    return max(0, SPEED_BONUS_MAX - elapsed_sec // SPEED_BONUS_STEP_SECONDS)


def score_player(
    player_id: str,
    round_: Round,
    guess: GuessSubmission | None,
    placement: TimelineSubmission | None,
    board: Sequence[TimelineEntry],
    listen_started_at: int,
) -> PlayerBreakdown:
    """Score one player's answers for a finished round.

    Track and artist are worth a flat amount each. The speed bonus needs
    both right and only looks at when the guess was locked in, never at the
    timeline placement.
    """
    track_ok = guess is not None and guess.track_id == round_.track_id
    artist_ok = guess is not None and guess.artist_id == round_.artist_id
    timeline_ok = placement is not None and is_insert_correct(board, round_.year, placement.insert_index)

    track = TRACK_POINTS if track_ok else 0
    artist = ARTIST_POINTS if artist_ok else 0
    timeline = TIMELINE_POINTS if timeline_ok else 0
    speed = speed_bonus(guess.submitted_at, listen_started_at) if (track_ok and artist_ok) else 0

    return PlayerBreakdown(
        player_id=player_id,
        guess_correct=GuessCorrect(track=track_ok, artist=artist_ok),
        timeline_correct=timeline_ok,
        points=Points(
            track=track,
            artist=artist,
            timeline=timeline,
            speed=speed,
            total=track + artist + timeline + speed,
        ),
    )


def score_round(state: RoomState, round_: Round, at: int) -> RoundBreakdown:
    # The board is what players saw: the current round is not on it yet.
    board = build_entries(state.timeline_round_ids, state.rounds)
    players: dict[str, PlayerBreakdown] = {}
    for player_id in state.allowed_player_ids:
        key = (player_id, round_.id)
        players[player_id] = score_player(
            player_id,
            round_,
            state.guess_submissions.get(key),
            state.timeline_submissions.get(key),
            board,
            state.phase_started_at,
        )
    return RoundBreakdown(round_id=round_.id, resolved_at=at, players=players)

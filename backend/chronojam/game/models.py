from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


Lifecycle = Literal["lobby", "running", "finished"]
Phase = Literal["LOBBY", "LISTEN", "REVEAL", "INTERMISSION", "FINAL"]

# (player_id, round_id)
SubmissionKey = tuple[str, str]


@dataclass(frozen=True)
class Round:
    id: str
    track_id: str
    artist_id: str
    title: str
    artist: str
    year: int
    spotify_uri: str = ""
    start_ms: int = 0


@dataclass
class Participant:
    id: str
    name: str
    color: str
    joined_at: int
    last_seen_at: int


@dataclass(frozen=True)
class GuessSubmission:
    player_id: str
    round_id: str
    track_id: str
    artist_id: str
    submitted_at: int


@dataclass(frozen=True)
class TimelineSubmission:
    player_id: str
    round_id: str
    insert_index: int
    submitted_at: int


@dataclass(frozen=True)
class PreloadReadiness:
    player_id: str
    game_pack_loaded: bool
    autocomplete_loaded: bool
    game_pack_hash: str
    updated_at: int


@dataclass(frozen=True)
class GuessCorrect:
    track: bool = False
    artist: bool = False


@dataclass(frozen=True)
class Points:
    track: int = 0
    artist: int = 0
    timeline: int = 0
    speed: int = 0
    total: int = 0


@dataclass(frozen=True)
class PlayerBreakdown:
    player_id: str
    guess_correct: GuessCorrect
    timeline_correct: bool
    points: Points


@dataclass(frozen=True)
class RoundBreakdown:
    round_id: str
    resolved_at: int
    players: dict[str, PlayerBreakdown]


@dataclass
class RoomState:
    room_id: str
    lifecycle: Lifecycle = "lobby"
    phase: Phase = "LOBBY"
    phase_started_at: int = 0
    phase_ends_at: int = 0
    updated_at: int = 0
    current_round_index: int = 0
    rounds: list[Round] = field(default_factory=list)
    participants: list[Participant] = field(default_factory=list)
    allowed_player_ids: list[str] = field(default_factory=list)
    guess_submissions: dict[SubmissionKey, GuessSubmission] = field(default_factory=dict)
    timeline_submissions: dict[SubmissionKey, TimelineSubmission] = field(default_factory=dict)
    round_breakdowns: dict[str, RoundBreakdown] = field(default_factory=dict)
    timeline_round_ids: list[str] = field(default_factory=list)
    scores: dict[str, int] = field(default_factory=dict)
    preload_readiness: dict[str, PreloadReadiness] = field(default_factory=dict)

    def participant(self, player_id: str) -> Participant | None:
        for p in self.participants:
            if p.id == player_id:
                return p
        return None

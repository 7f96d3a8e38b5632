"""Built-in round catalog and the autocomplete pack built from it."""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Sequence

from .autocomplete import AutocompleteEntry, AutocompleteIndex, build_index
from .models import Round
from .track_metadata import clean_track_title


SONG_COUNT_PRESETS = (10, 20, 30, 50)
DEFAULT_SONG_COUNT = 20
MIN_SONG_COUNT = 1


DEFAULT_ROUNDS: tuple[Round, ...] = (
    Round(
        id="r1",
        track_id="0VjIjW4GlUZAMYd2vXMi3b",
        artist_id="1Xyo4u8uXC1ZmMpatF05PJ",
        title="Blinding Lights",
        artist="The Weeknd",
        year=2019,
        spotify_uri="spotify:track:0VjIjW4GlUZAMYd2vXMi3b",
        start_ms=42000,
    ),
    Round(
        id="r2",
        track_id="2Fxmhks0bxGSBdJ92vM42m",
        artist_id="6qqNVTkY8uBg9cP3Jd7DAH",
        title="bad guy",
        artist="Billie Eilish",
        year=2019,
        spotify_uri="spotify:track:2Fxmhks0bxGSBdJ92vM42m",
        start_ms=28000,
    ),
    Round(
        id="r3",
        track_id="7qiZfU4dY1lWllzX7mPBI3",
        artist_id="6eUKZXaKkcviH0Ku9w2n3V",
        title="Shape of You",
        artist="Ed Sheeran",
        year=2017,
        spotify_uri="spotify:track:7qiZfU4dY1lWllzX7mPBI3",
        start_ms=34000,
    ),
    Round(
        id="r4",
        track_id="32OlwWuMpZ6b0aN2RZOeMS",
        artist_id="3hv9jJF3adDNsBSIQDqcjp",
        title="Uptown Funk",
        artist="Mark Ronson ft. Bruno Mars",
        year=2014,
        spotify_uri="spotify:track:32OlwWuMpZ6b0aN2RZOeMS",
        start_ms=41000,
    ),
    Round(
        id="r5",
        track_id="69kOkLUCkxIZYexIgSG8rq",
        artist_id="4tZwfgrHOc3mvqYlEYSvVi",
        title="Get Lucky",
        artist="Daft Punk",
        year=2013,
        spotify_uri="spotify:track:69kOkLUCkxIZYexIgSG8rq",
        start_ms=50000,
    ),
)

BASE_TRACK_ENTRIES: tuple[AutocompleteEntry, ...] = tuple(
    AutocompleteEntry(id=f"bt-{i}", display=title)
    for i, title in enumerate(
        [
            "Rolling in the Deep",
            "Mr. Brightside",
            "Levitating",
            "Smells Like Teen Spirit",
            "Take On Me",
            "Hotel California",
            "Billie Jean",
            "I Wanna Dance with Somebody",
            "Firework",
            "Wonderwall",
            "Viva La Vida",
            "Dancing Queen",
            "Clocks",
            "Watermelon Sugar",
            "Shallow",
            "Bohemian Rhapsody",
            "Royals",
            "Seven Nation Army",
            "Hips Dont Lie",
            "Toxic",
        ],
        start=1,
    )
)

BASE_ARTIST_ENTRIES: tuple[AutocompleteEntry, ...] = tuple(
    AutocompleteEntry(id=f"ba-{i}", display=name)
    for i, name in enumerate(
        [
            "Adele",
            "The Killers",
            "Dua Lipa",
            "Nirvana",
            "a-ha",
            "Eagles",
            "Michael Jackson",
            "Whitney Houston",
            "Katy Perry",
            "Oasis",
            "Coldplay",
            "ABBA",
            "Harry Styles",
            "Lady Gaga",
            "Queen",
            "Lorde",
            "The White Stripes",
            "Shakira",
            "Britney Spears",
            "Daft Punk",
        ],
        start=1,
    )
)


def parse_song_count(value) -> int | None:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    parsed = math.floor(numeric)
    return parsed if parsed >= MIN_SONG_COUNT else None


def clamp_song_count(requested, max_available: int, fallback: int = DEFAULT_SONG_COUNT) -> int:
    safe_max = max(MIN_SONG_COUNT, math.floor(max_available))
    fb = parse_song_count(fallback) or DEFAULT_SONG_COUNT
    target = parse_song_count(requested) or fb
    return min(safe_max, max(MIN_SONG_COUNT, target))


def pick_rounds(count=None, rounds: Sequence[Round] = DEFAULT_ROUNDS, fallback: int = DEFAULT_SONG_COUNT) -> list[Round]:
    n = clamp_song_count(count, len(rounds), fallback)
    return list(rounds[:n])


def build_autocomplete_pack(rounds: Sequence[Round] = DEFAULT_ROUNDS) -> dict[str, AutocompleteIndex]:
    """Round answers go first so they win dedup against the base battery."""
    round_tracks = [AutocompleteEntry(id=r.track_id, display=clean_track_title(r.title)) for r in rounds]
    round_artists = [AutocompleteEntry(id=r.artist_id, display=r.artist) for r in rounds]
    return {
        "tracks": build_index([*round_tracks, *BASE_TRACK_ENTRIES]),
        "artists": build_index([*round_artists, *BASE_ARTIST_ENTRIES]),
    }


def pack_hash(pack: dict[str, AutocompleteIndex]) -> str:
    """Short content hash clients echo back when reporting preload readiness."""
    raw = json.dumps(
        {kind: index.to_dict() for kind, index in pack.items()},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]

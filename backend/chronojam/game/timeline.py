from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from typing import Literal

from .autocomplete import display_sort_key
from .models import Round


ANCHOR_YEARS = (1980, 2000)


@dataclass(frozen=True)
class TimelineEntry:
    id: str
    kind: Literal["anchor", "round"]
    year: int
    title: str


def _anchor_entry(year: int) -> TimelineEntry:
    return TimelineEntry(id=f"anchor-{year}", kind="anchor", year=year, title=str(year))


def clamp_insert_index(index, max_index: int) -> int:
    if isinstance(index, bool) or not isinstance(index, (int, float)):
        return 0
    if not math.isfinite(index):
        return 0
    return max(0, min(max_index, math.floor(index)))


def build_entries(timeline_round_ids: Iterable[str], rounds: Iterable[Round]) -> list[TimelineEntry]:
    by_id = {r.id: r for r in rounds}
    entries = [_anchor_entry(y) for y in ANCHOR_YEARS]
    for round_id in timeline_round_ids:
        r = by_id.get(round_id)
        if r is None:
            continue
        entries.append(TimelineEntry(id=r.id, kind="round", year=r.year, title=r.title))

    entries.sort(key=lambda e: (e.year, 0 if e.kind == "anchor" else 1, display_sort_key(e.title)))
    return entries


def entry_label(entry: TimelineEntry) -> str:
    return str(entry.year)


def slot_label(entries: Sequence[TimelineEntry], slot_index) -> str:
    if not entries:
        return ""

    clamped = clamp_insert_index(slot_index, len(entries))
    if clamped == 0:
        return f"Before {entry_label(entries[0])}"
    if clamped == len(entries):
        return f"After {entry_label(entries[-1])}"

    left = entries[clamped - 1]
    right = entries[clamped]
    return f"Between {entry_label(left)} and {entry_label(right)}"


def is_insert_correct(entries: Sequence[TimelineEntry], year: int, insert_index) -> bool:
    """Inclusive on both sides, so a year equal to a neighbour fits either adjacent slot."""
    clamped = clamp_insert_index(insert_index, len(entries))
    left_year = entries[clamped - 1].year if clamped > 0 else -math.inf
    right_year = entries[clamped].year if clamped < len(entries) else math.inf
    return left_year <= year <= right_year


def board_payload(entries: Sequence[TimelineEntry]) -> dict:
    return {
        "entries": [asdict(e) for e in entries],
        "slots": [slot_label(entries, i) for i in range(len(entries) + 1)],
    }

"""Typo-tolerant prefix search over track and artist names.

Players type a guess and pick a suggestion; the suggestion's id is what gets
submitted, so the server only ever compares ids.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field


_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class AutocompleteEntry:
    id: str
    display: str


@dataclass(frozen=True)
class AutocompleteItem:
    id: str
    display: str
    norm: str
    tokens: tuple[str, ...]


@dataclass
class AutocompleteIndex:
    items: list[AutocompleteItem] = field(default_factory=list)
    prefix_index: dict[str, list[int]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "items": [
                {"id": i.id, "display": i.display, "norm": i.norm, "tokens": list(i.tokens)}
                for i in self.items
            ],
            "prefixIndex": {k: list(v) for k, v in self.prefix_index.items()},
        }


def normalize(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", (value or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    t = _NON_ALPHANUMERIC.sub(" ", stripped)
    t = _WHITESPACE.sub(" ", t)
    return t.strip()


def tokenize(norm: str) -> tuple[str, ...]:
    if not norm:
        return ()
    return tuple(t for t in norm.split(" ") if t)


def _entry_fields(entry) -> tuple[str, str]:
    if isinstance(entry, Mapping):
        raw_id, raw_display = entry.get("id"), entry.get("display")
    else:
        raw_id, raw_display = getattr(entry, "id", None), getattr(entry, "display", None)
    if not isinstance(raw_id, str) or not isinstance(raw_display, str):
        return "", ""
    return raw_id.strip(), raw_display.strip()


def _prefix_keys(token: str) -> list[str]:
    if len(token) < 2:
        return []
    if len(token) >= 3:
        return [token[:2], token[:3]]
    return [token[:2]]


def build_index(entries: Iterable[AutocompleteEntry | Mapping]) -> AutocompleteIndex:
    seen_ids: set[str] = set()
    seen_norms: set[str] = set()
    items: list[AutocompleteItem] = []

    for entry in entries:
        entry_id, display = _entry_fields(entry)
        if not entry_id or not display or entry_id in seen_ids:
            continue

        norm = normalize(display)
        if not norm or norm in seen_norms:
            continue

        seen_ids.add(entry_id)
        seen_norms.add(norm)
        items.append(AutocompleteItem(id=entry_id, display=display, norm=norm, tokens=tokenize(norm)))

    # dict keys keep first-registration order and drop repeats
    prefix_map: dict[str, dict[int, None]] = {}
    for idx, item in enumerate(items):
        for token in item.tokens:
            for key in _prefix_keys(token):
                prefix_map.setdefault(key, {})[idx] = None

    return AutocompleteIndex(
        items=items,
        prefix_index={key: list(bucket) for key, bucket in prefix_map.items()},
    )


def _rank(item: AutocompleteItem, query_norm: str, query_tokens: tuple[str, ...]) -> int:
    if not all(token in item.norm for token in query_tokens):
        return -1
    if item.norm.startswith(query_norm):
        return 0
    if any(token.startswith(query_norm) for token in item.tokens):
        return 1
    if any(query_norm in token for token in item.tokens):
        return 2
    return 3


def display_sort_key(display: str) -> tuple[str, str]:
    # Accent- and case-insensitive first, raw text to keep the order total.
    folded = unicodedata.normalize("NFD", display.casefold())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return folded, display


def search(
    index: AutocompleteIndex,
    query: str,
    limit: int = 8,
    min_chars: int = 2,
) -> list[AutocompleteItem]:
    query_norm = normalize(query)
    if len(query_norm) < min_chars:
        return []

    query_tokens = tokenize(query_norm)
    if not query_tokens:
        return []

    lead = query_tokens[0]
    key = lead[:3] if len(lead) >= 3 else lead[:2]
    candidate_idx = index.prefix_index.get(key) or []
    if candidate_idx:
        pool = [index.items[i] for i in candidate_idx if 0 <= i < len(index.items)]
    else:
        pool = index.items

    ranked: list[tuple[int, AutocompleteItem]] = []
    for item in pool:
        rank = _rank(item, query_norm, query_tokens)
        if rank >= 0:
            ranked.append((rank, item))

    ranked.sort(key=lambda pair: (pair[0], display_sort_key(pair[1].display)))
    return [item for _, item in ranked[: max(0, limit)]]


def item_payload(item: AutocompleteItem) -> dict:
    d = asdict(item)
    d["tokens"] = list(item.tokens)
    return d

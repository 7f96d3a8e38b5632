from __future__ import annotations

import re


_WHITESPACE = re.compile(r"\s+")

_REMASTER_CORE = (
    r"(?:(?:\d{4}\s+)?(?:digital\s+)?remaster(?:ed)?(?:\s+\d{4})?"
    r"|(?:\d{4}\s+)?mix\s*/\s*master"
    r"|(?:\d{4}\s+)?re[-\s]?record(?:ed|ing)?)"
)

_TRAILING_DASH = re.compile(rf"\s*-\s*{_REMASTER_CORE}\s*$", re.IGNORECASE)
_TRAILING_PAREN = re.compile(rf"\s*\({_REMASTER_CORE}\)\s*$", re.IGNORECASE)
_TRAILING_BRACKET = re.compile(rf"\s*\[{_REMASTER_CORE}\]\s*$", re.IGNORECASE)
_REMASTER_HINT = re.compile(r"\b(remaster(?:ed)?|mix\s*/\s*master|re[-\s]?record(?:ed|ing)?)\b", re.IGNORECASE)


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def clean_track_title(title: str) -> str:
    """Strip trailing remaster/re-record markers, e.g. "Ironic - 2015 Remaster" -> "Ironic"."""
    trimmed = _collapse(title or "")
    if not trimmed:
        return ""

    cleaned = trimmed
    while True:
        nxt = _TRAILING_PAREN.sub("", cleaned)
        nxt = _TRAILING_BRACKET.sub("", nxt)
        nxt = _TRAILING_DASH.sub("", nxt)
        nxt = _collapse(nxt)
        if nxt == cleaned:
            break
        cleaned = nxt

    return cleaned or trimmed


def has_remaster_marker(title: str) -> bool:
    return bool(_REMASTER_HINT.search(title or ""))

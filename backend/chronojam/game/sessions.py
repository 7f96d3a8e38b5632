from __future__ import annotations

import json
import secrets
from collections.abc import MutableMapping
from dataclasses import dataclass


@dataclass(frozen=True)
class PlayerSession:
    id: str
    name: str


def new_player_id() -> str:
    return secrets.token_hex(8)


def session_key(room_id: str) -> str:
    return f"chronojam:player:{room_id}"


class PlayerSessionStore:
    """Per-room player identity kept in an injected key-value store."""

    def __init__(self, store: MutableMapping[str, str]):
        self.store = store

    def save(self, room_id: str, session: PlayerSession) -> None:
        self.store[session_key(room_id)] = json.dumps({"id": session.id, "name": session.name})

    def get(self, room_id: str) -> PlayerSession | None:
        raw = self.store.get(session_key(room_id))
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(parsed, dict) or not parsed.get("id") or not parsed.get("name"):
            return None
        return PlayerSession(id=str(parsed["id"]), name=str(parsed["name"]))

    def get_or_create(self, room_id: str, name: str) -> PlayerSession:
        existing = self.get(room_id)
        if existing is not None:
            return existing
        session = PlayerSession(id=new_player_id(), name=name)
        self.save(room_id, session)
        return session

    def clear(self, room_id: str) -> None:
        self.store.pop(session_key(room_id), None)

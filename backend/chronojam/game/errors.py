from __future__ import annotations


class GameError(Exception):
    code = "game_error"
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_payload(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidTransition(GameError):
    """Operation attempted outside its valid phase or lifecycle."""

    code = "invalid_transition"
    status_code = 409


class NotAllowed(GameError):
    """Player is not part of the frozen allowed set."""

    code = "not_allowed"
    status_code = 403


class NotFound(GameError):
    code = "not_found"
    status_code = 404


class ValidationError(GameError):
    code = "invalid_payload"
    status_code = 400

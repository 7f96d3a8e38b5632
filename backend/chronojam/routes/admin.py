from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request

from ..game import service
from ..game.errors import NotFound

bp = Blueprint("admin", __name__)


def _authorized() -> bool:
    token = current_app.config.get("ADMIN_TOKEN", "")
    if not token:
        return False
    return hmac.compare_digest(request.headers.get("X-Admin-Token", ""), token)


@bp.get("/__admin__/rooms")
def admin_rooms():
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    payload = []
    for code in service.list_room_codes():
        try:
            payload.append(service.snapshot(code))
        except NotFound:
            # Expired between listing and reading.
            continue
    return jsonify({"rooms": payload})


@bp.delete("/__admin__/rooms/<code>")
def admin_delete_room(code: str):
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    if not service.delete_room(code):
        return jsonify({"error": "room_not_found"}), 404
    return jsonify({"ok": True})

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..game import service
from ..game.autocomplete import item_payload, search
from ..game.catalog import pack_hash

bp = Blueprint("autocomplete", __name__)

_KINDS = ("tracks", "artists")


@bp.get("/autocomplete/pack")
def get_pack():
    pack = service.autocomplete_pack(request.args.get("room", "").strip() or None)
    payload = {kind: index.to_dict() for kind, index in pack.items()}
    payload["hash"] = pack_hash(pack)
    return jsonify(payload)


@bp.get("/autocomplete/<kind>")
def get_suggestions(kind: str):
    if kind not in _KINDS:
        return jsonify({"error": "unknown_index"}), 404

    try:
        limit = int(request.args.get("limit", "8"))
    except ValueError:
        limit = 8
    limit = max(1, min(limit, 50))

    pack = service.autocomplete_pack(request.args.get("room", "").strip() or None)
    items = search(pack[kind], request.args.get("q", ""), limit=limit)
    return jsonify({"items": [item_payload(i) for i in items]})

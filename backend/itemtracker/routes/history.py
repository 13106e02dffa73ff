# Overview: Flask API routes for quantity history and inventory snapshots.

from flask import Blueprint, jsonify, g, current_app

from ..extensions import db
from ..models import SnapshotType
from ..services import history_service
from ..time_utils import today
from ..validation import parse_date_param, ValidationError, NotFoundError
from ..decorators import require_auth

history_bp = Blueprint("history", __name__, url_prefix="/api/history")


@history_bp.get("/item/<int:item_id>")
@require_auth
def item_history_route(item_id: int):
    rows = history_service.get_item_history(item_id, g.user_id)
    return jsonify({"history": [r.to_dict() for r in rows]}), 200


@history_bp.get("/snapshots/item/<int:item_id>")
@require_auth
def item_snapshots_route(item_id: int):
    rows = history_service.get_item_snapshots(item_id, g.user_id)
    return jsonify({"snapshots": [r.to_dict() for r in rows]}), 200


@history_bp.get("/snapshots/date/<date_str>")
@require_auth
def snapshots_by_date_route(date_str: str):
    try:
        snapshot_date = parse_date_param(date_str, "date")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    rows = history_service.get_snapshots_by_date(g.user_id, snapshot_date)
    return jsonify({
        "snapshots": [r.to_dict() for r in rows],
        "date": snapshot_date.isoformat(),
        "summary": history_service.summarize_snapshots(rows),
    }), 200


@history_bp.get("/snapshot/today")
@require_auth
def snapshot_today_route():
    day = today()
    return jsonify({
        "hasSnapshot": history_service.has_snapshot_on(g.user_id, day),
        "date": day.isoformat(),
    }), 200


@history_bp.post("/snapshot")
@require_auth
def create_snapshot_route():
    """
    Snapshot all of the caller's items for today (type manual).

    Running it again the same day overwrites today's rows; `updated` says so.
    """
    day = today()
    try:
        existed = history_service.has_snapshot_on(g.user_id, day)
        count = history_service.create_user_snapshots(g.user_id, SnapshotType.MANUAL, day)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create snapshot for user %s", g.user_id)
        return jsonify({"error": "Internal server error"}), 500

    message = "Snapshot updated successfully" if existed else "Snapshot created successfully"
    return jsonify({"message": message, "count": count, "updated": existed}), 201


@history_bp.delete("/snapshot/<int:snapshot_id>")
@require_auth
def delete_snapshot_route(snapshot_id: int):
    try:
        history_service.delete_snapshot(snapshot_id, g.user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Snapshot deleted successfully"}), 200

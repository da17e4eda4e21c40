from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from taskpilot.services.reminder_service import describe

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.get("")
@jwt_required()
def list_notifications():
    hub = current_app.extensions["notification_hub"]
    items = [n.to_dict() for n in hub.list_for(get_jwt_identity())]
    items.reverse()
    return jsonify(items=items), 200


@notifications_bp.delete("")
@jwt_required()
def clear_notifications():
    current_app.extensions["notification_hub"].clear(get_jwt_identity())
    return jsonify(status="cleared"), 200


@notifications_bp.post("/permission")
@jwt_required()
def set_permission():
    payload = request.get_json(silent=True) or {}
    granted = payload.get("granted")
    if not isinstance(granted, bool):
        return jsonify(error="granted must be a boolean"), 400
    current_app.extensions["notification_hub"].set_permission(get_jwt_identity(), granted)
    return jsonify(granted=granted), 200


@notifications_bp.post("/test-daily")
@jwt_required()
def trigger_daily_digest():
    """Send today's digest now, for the caller only."""
    user_id = get_jwt_identity()
    scheduler = current_app.extensions["reminder_scheduler"]
    sent = scheduler.send_daily_digest(user_id=user_id)
    return jsonify(items=[n.to_dict() for n in sent]), 200


@notifications_bp.get("/scheduler")
@jwt_required()
def scheduler_status():
    return jsonify(describe(current_app.extensions["reminder_scheduler"])), 200

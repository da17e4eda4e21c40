from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from taskpilot.services.calendar_service import ACTIONS, CalendarAccessError, CalendarError
from taskpilot.utils.db import get_db, to_object_id

calendar_bp = Blueprint("calendar", __name__)


@calendar_bp.post("/sync")
@jwt_required()
def sync():
    user_id = get_jwt_identity()
    payload = request.get_json(silent=True) or {}
    todo_id = payload.get("todoId")
    action = payload.get("action")
    if not todo_id:
        return jsonify(error="todoId is required"), 400
    if action not in ACTIONS:
        return jsonify(error="Invalid action"), 400

    oid = to_object_id(todo_id)
    todo = get_db().todos.find_one({"_id": oid, "user_id": user_id}) if oid else None
    if todo is None:
        return jsonify(error="Todo not found"), 404

    mirror = current_app.extensions["calendar_mirror"]
    try:
        result = mirror.sync(todo, action)
    except CalendarAccessError:
        return jsonify(error="Google Calendar access not available"), 403
    except CalendarError as exc:
        current_app.logger.error("Calendar sync error for todo %s: %s", todo_id, exc)
        return jsonify(error="Failed to sync with calendar"), 500
    return jsonify(success=True, result=result), 200


@calendar_bp.get("/events")
@jwt_required()
def list_events():
    user_id = get_jwt_identity()
    mirror = current_app.extensions["calendar_mirror"]
    try:
        client = mirror.client_for(user_id)
        events = client.list_events(request.args.get("time_min"), request.args.get("time_max"))
    except CalendarAccessError:
        return jsonify(error="Google Calendar access not available"), 403
    except CalendarError as exc:
        current_app.logger.error("Error fetching calendar events: %s", exc)
        return jsonify(error="Failed to fetch calendar events"), 502
    return jsonify(items=events), 200

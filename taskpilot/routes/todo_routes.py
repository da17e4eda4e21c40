import calendar as month_calendar
from collections import OrderedDict
from datetime import date, datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from taskpilot.models.todo_model import (
    CATEGORIES,
    SEVERITIES,
    SEVERITY_RANK,
    Todo,
    ValidationError,
    clean_fields,
)
from taskpilot.services.agent_service import apply_suggestions
from taskpilot.utils.db import get_db, serialize_doc, to_object_id

todos_bp = Blueprint("todos", __name__)

SORT_FIELDS = ("due_date", "severity", "created_at")


def _mirror(todo, action):
    return current_app.extensions["calendar_mirror"].mirror(todo, action)


def _load_owned(todo_id, user_id):
    """Fetch a todo for mutation: (doc, None) or (None, error response)."""
    oid = to_object_id(todo_id)
    doc = get_db().todos.find_one({"_id": oid}) if oid else None
    if doc is None:
        return None, (jsonify(error="Todo not found"), 404)
    if doc.get("user_id") != user_id:
        return None, (jsonify(error="Forbidden"), 403)
    return doc, None


def _parse_bool(raw):
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes")


@todos_bp.get("")
@jwt_required()
def list_todos():
    user_id = get_jwt_identity()
    query = {"user_id": user_id}

    severities = [s for s in (request.args.get("severity") or "").split(",") if s]
    if any(s not in SEVERITIES for s in severities):
        return jsonify(error=f"severity must be among: {', '.join(SEVERITIES)}"), 400
    if severities:
        query["severity"] = {"$in": severities}

    category = request.args.get("category")
    if category:
        if category not in CATEGORIES:
            return jsonify(error=f"category must be one of: {', '.join(CATEGORIES)}"), 400
        query["category"] = category

    completed = _parse_bool(request.args.get("completed"))
    if completed is not None:
        query["completed"] = completed

    sort_by = request.args.get("sort", "due_date")
    order = request.args.get("order", "asc")
    if sort_by not in SORT_FIELDS or order not in ("asc", "desc"):
        return jsonify(error="Invalid sort parameters"), 400

    direction = ASCENDING if order == "asc" else DESCENDING
    if sort_by == "severity":
        docs = list(get_db().todos.find(query).sort("due_date", ASCENDING))
        docs.sort(key=lambda d: SEVERITY_RANK.get(d.get("severity"), 4), reverse=order == "desc")
    else:
        docs = list(get_db().todos.find(query).sort(sort_by, direction))
    return jsonify([serialize_doc(d) for d in docs]), 200


@todos_bp.post("")
@jwt_required()
def create_todo():
    user_id = get_jwt_identity()
    payload = request.get_json(silent=True) or {}
    try:
        fields = clean_fields(payload)
    except ValidationError as exc:
        return jsonify(error=str(exc)), 400

    if payload.get("auto_categorize"):
        agent = current_app.extensions["todo_agent"]
        response = agent.process_todo(
            fields["title"],
            fields.get("description"),
            fields.get("due_date"),
            fields.get("due_time"),
        )
        apply_suggestions(fields, response, set(payload))

    doc = Todo(user_id=user_id, **fields).to_document()
    if not doc["due_date"]:
        doc["due_date"] = date.today().isoformat()

    db = get_db()
    res = db.todos.insert_one(doc)
    created = db.todos.find_one({"_id": res.inserted_id})
    current_app.logger.info("Created todo %s for user %s", res.inserted_id, user_id)

    if created.get("category") == "reminder":
        _mirror(created, "create")
    return jsonify(serialize_doc(created)), 201


@todos_bp.post("/analyze")
@jwt_required()
def analyze_todo():
    payload = request.get_json(silent=True) or {}
    title = (payload.get("title") or "").strip()
    if not title:
        return jsonify(error="Title is required"), 400
    agent = current_app.extensions["todo_agent"]
    response = agent.process_todo(
        title, payload.get("description"), payload.get("due_date"), payload.get("due_time")
    )
    return jsonify(response.to_dict()), 200


@todos_bp.get("/calendar")
@jwt_required()
def calendar_view():
    """Caller's todos for one month, grouped by due date."""
    user_id = get_jwt_identity()
    month = request.args.get("month") or date.today().strftime("%Y-%m")
    try:
        first = datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        return jsonify(error="month must be YYYY-MM"), 400

    days_in_month = month_calendar.monthrange(first.year, first.month)[1]
    days = OrderedDict(
        (date(first.year, first.month, day).isoformat(), []) for day in range(1, days_in_month + 1)
    )
    docs = get_db().todos.find({"user_id": user_id}).sort("due_date", ASCENDING)
    for doc in docs:
        bucket = days.get(doc.get("due_date"))
        if bucket is not None:
            bucket.append(serialize_doc(doc))
    return jsonify(month=month, days=days), 200


@todos_bp.put("/<todo_id>")
@jwt_required()
def update_todo(todo_id):
    user_id = get_jwt_identity()
    payload = request.get_json(silent=True) or {}
    try:
        updates = clean_fields(payload, partial=True)
    except ValidationError as exc:
        return jsonify(error=str(exc)), 400
    if not updates:
        return jsonify(error="No valid fields to update"), 400

    existing, error = _load_owned(todo_id, user_id)
    if error:
        return error

    updates["updated_at"] = datetime.utcnow()
    updated = get_db().todos.find_one_and_update(
        {"_id": existing["_id"], "user_id": user_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        return jsonify(error="Todo not found"), 404

    if updated.get("category") == "reminder":
        _mirror(updated, "update" if updated.get("google_calendar_event_id") else "create")
    elif updated.get("google_calendar_event_id"):
        # No longer a reminder: take it off the calendar.
        _mirror(updated, "delete")
    return jsonify(serialize_doc(updated)), 200


@todos_bp.delete("/<todo_id>")
@jwt_required()
def delete_todo(todo_id):
    user_id = get_jwt_identity()
    existing, error = _load_owned(todo_id, user_id)
    if error:
        return error

    if existing.get("google_calendar_event_id"):
        _mirror(existing, "delete")

    res = get_db().todos.delete_one({"_id": existing["_id"], "user_id": user_id})
    if res.deleted_count == 0:
        return jsonify(error="Todo not found"), 404
    current_app.logger.info("Deleted todo %s for user %s", todo_id, user_id)
    return jsonify(message="Todo deleted successfully", id=todo_id), 200

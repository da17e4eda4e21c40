from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from taskpilot.models.agent_model import Agent
from taskpilot.models.todo_model import CATEGORIES
from taskpilot.utils.db import get_db

agents_bp = Blueprint("agents", __name__)


@agents_bp.get("")
@jwt_required()
def list_agents():
    registry = current_app.extensions["agent_registry"]
    return jsonify(items=[a.to_dict() for a in registry.all()]), 200


@agents_bp.put("/<category>")
@jwt_required()
def upsert_agent(category):
    if category not in CATEGORIES:
        return jsonify(error=f"category must be one of: {', '.join(CATEGORIES)}"), 400
    payload = request.get_json(silent=True) or {}
    name = (payload.get("name") or "").strip()
    if not name:
        return jsonify(error="name is required"), 400

    registry = current_app.extensions["agent_registry"]
    agent = Agent(
        category=category,
        name=name,
        description=payload.get("description") or "",
        prompt_template=payload.get("prompt_template") or "",
    )
    agent = registry.upsert(get_db(), agent)
    return jsonify(agent.to_dict()), 200

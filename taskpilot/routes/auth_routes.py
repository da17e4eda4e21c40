from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import (
    create_access_token,
    get_jwt_identity,
    jwt_required,
    set_access_cookies,
    unset_jwt_cookies,
)
from pymongo.errors import DuplicateKeyError
from werkzeug.security import check_password_hash, generate_password_hash

from taskpilot.utils.db import get_db, serialize_doc, to_object_id

auth_bp = Blueprint("auth", __name__)


def issue_token(user):
    """JSON response carrying a fresh access token, also set as a cookie."""
    token = create_access_token(identity=str(user["_id"]))
    response = jsonify(access_token=token, user=serialize_doc(user))
    set_access_cookies(response, token)
    return response


@auth_bp.post("/register")
def register():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    name = (payload.get("name") or "").strip() or email.split("@")[0]
    if not email or not password:
        return jsonify(error="Email and password are required"), 400
    if len(password) < 8:
        return jsonify(error="Password must be at least 8 characters"), 400

    users = get_db().users
    if users.find_one({"email": email}):
        return jsonify(error="Email already registered"), 400

    now = datetime.utcnow()
    try:
        res = users.insert_one(
            {
                "email": email,
                "name": name,
                "password_hash": generate_password_hash(password),
                "auth_provider": "local",
                "created_at": now,
                "updated_at": now,
            }
        )
    except DuplicateKeyError:
        return jsonify(error="Email already registered"), 400
    user = users.find_one({"_id": res.inserted_id})
    current_app.logger.info("Registered user %s", email)
    return issue_token(user), 201


@auth_bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        return jsonify(error="Email and password are required"), 400

    user = get_db().users.find_one({"email": email})
    if not user or not user.get("password_hash") or not check_password_hash(user["password_hash"], password):
        return jsonify(error="Invalid email or password"), 401
    return issue_token(user), 200


@auth_bp.get("/me")
@jwt_required()
def me():
    user = get_db().users.find_one({"_id": to_object_id(get_jwt_identity())})
    if not user:
        return jsonify(error="User not found"), 404
    out = serialize_doc(user)
    out["google_calendar_connected"] = bool((user.get("google_tokens") or {}).get("access_token"))
    return jsonify(user=out), 200


@auth_bp.post("/logout")
def logout():
    response = jsonify(status="logged out")
    unset_jwt_cookies(response)
    return response, 200

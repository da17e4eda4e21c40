from datetime import date, datetime

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app
from pymongo import ASCENDING, MongoClient


def init_app(app, db=None):
    """Attach a MongoDB database handle to the app.

    ``db`` lets callers (tests, scripts) hand in an already-built database
    object; otherwise a client is created from ``MONGO_URI``. pymongo
    connects lazily, so creating the app never blocks on the server.
    """
    if db is None:
        client = MongoClient(app.config["MONGO_URI"], serverSelectionTimeoutMS=2000)
        db = client[app.config["MONGO_DB_NAME"]]
        app.extensions["mongo_client"] = client
        ensure_indexes(db, app.logger)
    app.extensions["mongo_db"] = db
    return db


def ensure_indexes(db, logger):
    try:
        db.todos.create_index([("user_id", ASCENDING), ("due_date", ASCENDING)])
        db.todos.create_index([("completed", ASCENDING), ("due_date", ASCENDING)])
        db.todo_agents.create_index("category", unique=True)
        db.users.create_index("email", unique=True)
    except Exception as exc:  # noqa: BLE001
        # Server may not be up yet; indexes are an optimisation only.
        logger.warning("Could not ensure MongoDB indexes: %s", exc)


def get_db():
    return current_app.extensions["mongo_db"]


def to_object_id(value):
    """Return an ObjectId for ``value`` or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc):
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif key in ("password_hash", "google_tokens"):
            continue
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        elif isinstance(value, (datetime, date)):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out

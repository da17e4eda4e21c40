from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from taskpilot.app import create_app

from .fakes import FakeDatabase, FakeFileStorage, FakeSession


@pytest.fixture()
def db():
    return FakeDatabase()


@pytest.fixture()
def storage():
    return FakeFileStorage()


@pytest.fixture()
def calendar_session():
    return FakeSession()


@pytest.fixture()
def app(db, storage, calendar_session):
    app = create_app(
        "taskpilot.config.TestingConfig",
        db=db,
        file_storage=storage,
        start_scheduler=False,
    )
    app.extensions["calendar_mirror"].session = calendar_session
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(db):
    def _make(email="ada@example.com", google=False):
        doc = {
            "email": email,
            "name": email.split("@")[0],
            "auth_provider": "google" if google else "local",
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        }
        if google:
            doc["google_tokens"] = {"access_token": "ya29.token", "refresh_token": "1//refresh"}
        return str(db.users.insert_one(doc).inserted_id)

    return _make


@pytest.fixture()
def auth_headers(app):
    def _headers(user_id):
        with app.app_context():
            token = create_access_token(identity=user_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers

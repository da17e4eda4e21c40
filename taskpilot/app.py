import atexit
import os
import secrets
from datetime import datetime, timedelta
from urllib.parse import urlencode

import requests
from dotenv import load_dotenv
from flask import Flask, jsonify, redirect, request, session
from flask_cors import CORS
from flask_jwt_extended import JWTManager, create_access_token, set_access_cookies

from taskpilot.logging_setup import configure_logging


def create_app(config_object="taskpilot.config.Config", db=None, file_storage=None, start_scheduler=None):
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"), override=False)

    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Core extensions
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)
    jwt = JWTManager(app)

    # Ensure sessions are secure by default (can be overridden via env/config)
    app.config.setdefault("SESSION_COOKIE_HTTPONLY", True)
    # For local development over HTTP we keep SECURE = False; enable it in production.
    app.config.setdefault("SESSION_COOKIE_SECURE", False)

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify(error="Unauthorized", detail=reason), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify(error="Unauthorized", detail=reason), 401

    @jwt.expired_token_loader
    def expired_token(_header, _payload):
        return jsonify(error="Unauthorized", detail="Token has expired"), 401

    # Database and services
    from taskpilot.services.agent_service import AgentRegistry, TodoAgentService
    from taskpilot.services.calendar_service import CalendarMirror, token_expiry
    from taskpilot.services.notification_service import NotificationHub
    from taskpilot.services.reminder_service import ReminderScheduler
    from taskpilot.utils.db import get_db, init_app as init_db
    from taskpilot.utils.storage import FileStorage

    database = init_db(app, db)

    registry = AgentRegistry.load(database)
    hub = NotificationHub()
    scheduler = ReminderScheduler(
        database,
        hub,
        digest_hour=app.config["DAILY_DIGEST_HOUR"],
        check_interval=timedelta(seconds=app.config["REMINDER_CHECK_INTERVAL_SECONDS"]),
    )
    app.extensions["agent_registry"] = registry
    app.extensions["todo_agent"] = TodoAgentService(registry)
    app.extensions["notification_hub"] = hub
    app.extensions["reminder_scheduler"] = scheduler
    app.extensions["calendar_mirror"] = CalendarMirror(database, app.config)
    app.extensions["file_storage"] = file_storage or FileStorage(database)

    if start_scheduler is None:
        start_scheduler = app.config["REMINDER_SCHEDULER_ENABLED"]
    if start_scheduler:
        scheduler.start()
        atexit.register(scheduler.stop)

    # Register blueprints
    from taskpilot.routes.agent_routes import agents_bp
    from taskpilot.routes.auth_routes import auth_bp
    from taskpilot.routes.calendar_routes import calendar_bp
    from taskpilot.routes.notification_routes import notifications_bp
    from taskpilot.routes.todo_routes import todos_bp
    from taskpilot.routes.upload_routes import uploads_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(todos_bp, url_prefix="/api/todos")
    app.register_blueprint(calendar_bp, url_prefix="/api/calendar")
    app.register_blueprint(agents_bp, url_prefix="/api/agents")
    app.register_blueprint(uploads_bp, url_prefix="/api/uploads")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    # --- Google OAuth 2.0 (Authorization Code flow, using Flask sessions) ---
    google_client_id = app.config.get("GOOGLE_CLIENT_ID")
    google_client_secret = app.config.get("GOOGLE_CLIENT_SECRET")
    google_redirect_uri = app.config.get("GOOGLE_REDIRECT_URI")

    google_auth_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    google_token_endpoint = "https://oauth2.googleapis.com/token"
    google_userinfo_endpoint = "https://www.googleapis.com/oauth2/v3/userinfo"
    google_scopes = "openid email profile https://www.googleapis.com/auth/calendar.events"

    if not google_client_id or not google_client_secret:
        app.logger.warning(
            "Google OAuth is not fully configured; GOOGLE_CLIENT_ID or GOOGLE_CLIENT_SECRET missing."
        )

    @app.route("/auth/google")
    def google_login():
        """Initiate Google OAuth 2.0 Authorization Code flow.

        Requests calendar access alongside the profile so reminder todos can
        be mirrored into the user's primary calendar.
        """
        if not google_client_id or not google_client_secret:
            return jsonify({"error": "Google OAuth not configured"}), 500

        state = secrets.token_urlsafe(32)
        session["oauth_state"] = state

        params = {
            "client_id": google_client_id,
            "redirect_uri": google_redirect_uri,
            "response_type": "code",
            "scope": google_scopes,
            "access_type": "offline",
            "include_granted_scopes": "true",
            "state": state,
            "prompt": "consent",
        }

        auth_url = f"{google_auth_endpoint}?{urlencode(params)}"
        return redirect(auth_url)

    @app.route("/auth/google/callback")
    def google_callback():
        """Handle Google's OAuth 2.0 callback.

        Exchanges the authorization code for tokens, fetches the user's
        profile, persists the user and the provider tokens in MongoDB, and
        redirects home with a JWT access cookie set.
        """
        if not google_client_id or not google_client_secret:
            return jsonify({"error": "Google OAuth not configured"}), 500

        error = request.args.get("error")
        if error:
            return jsonify({"error": f"Google OAuth error: {error}"}), 400

        state = request.args.get("state")
        if not state or state != session.get("oauth_state"):
            return jsonify({"error": "Invalid OAuth state"}), 400

        code = request.args.get("code")
        if not code:
            return jsonify({"error": "Missing authorization code"}), 400

        # Exchange code for tokens
        token_data = {
            "code": code,
            "client_id": google_client_id,
            "client_secret": google_client_secret,
            "redirect_uri": google_redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            token_resp = requests.post(google_token_endpoint, data=token_data, timeout=10)
            token_resp.raise_for_status()
            token_json = token_resp.json()
        except Exception as exc:  # noqa: BLE001
            app.logger.exception("Error exchanging code for tokens with Google: %s", exc)
            return jsonify({"error": "Failed to exchange authorization code"}), 502

        access_token = token_json.get("access_token")
        if not access_token:
            return jsonify({"error": "Missing access token from Google"}), 502

        # Fetch user info from Google
        try:
            userinfo_resp = requests.get(
                google_userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=10,
            )
            userinfo_resp.raise_for_status()
            userinfo = userinfo_resp.json()
        except Exception as exc:  # noqa: BLE001
            app.logger.exception("Error fetching userinfo from Google: %s", exc)
            return jsonify({"error": "Failed to fetch user info from Google"}), 502

        email = (userinfo.get("email") or "").lower()
        name = userinfo.get("name") or userinfo.get("given_name") or "Google User"

        if not email:
            return jsonify({"error": "Google account does not have an email address"}), 400

        users_collection = get_db()["users"]
        google_tokens = {
            "access_token": access_token,
            "expires_at": token_expiry(token_json),
        }
        # Google only returns a refresh token on first consent; keep the old one otherwise.
        if token_json.get("refresh_token"):
            google_tokens["refresh_token"] = token_json["refresh_token"]

        user = users_collection.find_one({"email": email})
        if user is None:
            user_doc = {
                "email": email,
                "name": name,
                "auth_provider": "google",
                "google_tokens": google_tokens,
                "created_at": datetime.utcnow(),
                "updated_at": datetime.utcnow(),
            }
            result = users_collection.insert_one(user_doc)
            user = users_collection.find_one({"_id": result.inserted_id})
        else:
            previous = user.get("google_tokens") or {}
            if "refresh_token" not in google_tokens and previous.get("refresh_token"):
                google_tokens["refresh_token"] = previous["refresh_token"]
            users_collection.update_one(
                {"_id": user["_id"]},
                {
                    "$set": {
                        "name": name,
                        "auth_provider": user.get("auth_provider", "google"),
                        "google_tokens": google_tokens,
                        "updated_at": datetime.utcnow(),
                    }
                },
            )

        session.pop("oauth_state", None)
        session["user_id"] = str(user["_id"])
        session["user_email"] = user.get("email")
        session.permanent = True

        response = redirect("/")
        set_access_cookies(response, create_access_token(identity=str(user["_id"])))
        return response

    @app.get("/api/health")
    def health():
        return jsonify(
            status="ok",
            service="taskpilot API",
            scheduler="running" if scheduler.running else "stopped",
        ), 200

    @app.errorhandler(404)
    def not_found(_):
        return jsonify(error="Not Found"), 404

    @app.errorhandler(405)
    def method_not_allowed(_):
        return jsonify(error="Method Not Allowed"), 405

    @app.errorhandler(413)
    def too_large(_):
        return jsonify(error="Upload too large"), 413

    @app.errorhandler(500)
    def server_error(_):
        return jsonify(error="Internal server error"), 500

    return app


if __name__ == "__main__":
    # Direct run support: python -m taskpilot.app
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "5000")),
        debug=os.environ.get("FLASK_DEBUG", "1") == "1",
        use_reloader=False,
    )

import os

from taskpilot.app import create_app

# Expose a module-level `app` for WSGI servers (gunicorn expects `app:app`).
# This calls the factory at import time so `gunicorn app:app` works.
# Run a single worker: the reminder scheduler lives in-process.
app = create_app()


if __name__ == "__main__":
    # Local development only: run the built-in server.
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=True, use_reloader=False)

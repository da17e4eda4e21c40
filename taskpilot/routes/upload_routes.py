from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file, url_for
from flask_jwt_extended import get_jwt_identity, jwt_required

from taskpilot.utils.storage import BUCKETS, IMAGE_BUCKET, VOICE_BUCKET

uploads_bp = Blueprint("uploads", __name__)


def _store(bucket, default_name):
    user_id = get_jwt_identity()
    upload = request.files.get("file")
    if upload is None:
        return jsonify(success=False, error="file is required"), 400

    storage = current_app.extensions["file_storage"]
    try:
        path = storage.upload(
            bucket, user_id, upload.filename or default_name, upload.stream, upload.mimetype
        )
    except Exception as exc:  # noqa: BLE001
        current_app.logger.exception("Upload to %s failed: %s", bucket, exc)
        return jsonify(success=False, error="Upload failed"), 500

    url = url_for("uploads.download", bucket=bucket, path=path, _external=True)
    return jsonify(success=True, url=url, path=path), 201


@uploads_bp.post("/image")
@jwt_required()
def upload_image():
    return _store(IMAGE_BUCKET, "image")


@uploads_bp.post("/voice")
@jwt_required()
def upload_voice_note():
    return _store(VOICE_BUCKET, "voice_note.webm")


@uploads_bp.get("/<bucket>/<path:path>")
def download(bucket, path):
    if bucket not in BUCKETS:
        return jsonify(error="Not Found"), 404
    found = current_app.extensions["file_storage"].open(bucket, path)
    if found is None:
        return jsonify(error="Not Found"), 404
    content, content_type = found
    response = send_file(BytesIO(content), mimetype=content_type, download_name=path.rsplit("/", 1)[-1])
    response.headers["Cache-Control"] = "public, max-age=3600"
    return response

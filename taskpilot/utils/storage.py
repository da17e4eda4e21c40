import time

import gridfs
from gridfs.errors import NoFile
from werkzeug.utils import secure_filename

IMAGE_BUCKET = "todo-images"
VOICE_BUCKET = "voice-notes"
BUCKETS = (IMAGE_BUCKET, VOICE_BUCKET)


class FileStorage:
    """Named GridFS buckets holding user uploads under ``<user_id>/<ms>_<name>``."""

    def __init__(self, db):
        self.db = db

    def _bucket(self, name):
        if name not in BUCKETS:
            raise KeyError(name)
        return gridfs.GridFSBucket(self.db, bucket_name=name)

    def upload(self, bucket, user_id, filename, stream, content_type=None):
        name = secure_filename(filename or "") or "upload"
        path = f"{user_id}/{int(time.time() * 1000)}_{name}"
        self._bucket(bucket).upload_from_stream(
            path,
            stream,
            metadata={"user_id": user_id, "content_type": content_type, "cache_control": "3600"},
        )
        return path

    def open(self, bucket, path):
        """Return ``(content, content_type)`` or None when the file is missing."""
        try:
            grid_out = self._bucket(bucket).open_download_stream_by_name(path)
        except NoFile:
            return None
        metadata = grid_out.metadata or {}
        return grid_out.read(), metadata.get("content_type") or "application/octet-stream"

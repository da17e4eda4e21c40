import io
from types import SimpleNamespace

import pytest
from gridfs.errors import NoFile

from taskpilot.utils import storage
from taskpilot.utils.storage import IMAGE_BUCKET, VOICE_BUCKET, FileStorage


class FakeGridFSBucket:
    """In-memory stand-in for gridfs.GridFSBucket, one store per bucket name."""

    stores = {}

    def __init__(self, db, bucket_name="fs"):
        self.files = self.stores.setdefault(bucket_name, {})

    def upload_from_stream(self, filename, source, metadata=None):
        self.files[filename] = (source.read(), metadata)

    def open_download_stream_by_name(self, filename):
        if filename not in self.files:
            raise NoFile(filename)
        content, metadata = self.files[filename]
        return SimpleNamespace(read=lambda: content, metadata=metadata)


@pytest.fixture()
def file_storage(monkeypatch):
    FakeGridFSBucket.stores = {}
    monkeypatch.setattr(storage.gridfs, "GridFSBucket", FakeGridFSBucket)
    monkeypatch.setattr(storage.time, "time", lambda: 1700000000.5)
    return FileStorage(db=object())


def test_upload_path_is_user_then_millis_then_name(file_storage):
    path = file_storage.upload(IMAGE_BUCKET, "u1", "receipt.png", io.BytesIO(b"png"), "image/png")
    assert path == "u1/1700000000500_receipt.png"

    content, metadata = FakeGridFSBucket.stores[IMAGE_BUCKET][path]
    assert content == b"png"
    assert metadata == {"user_id": "u1", "content_type": "image/png", "cache_control": "3600"}


def test_upload_sanitises_filename(file_storage):
    path = file_storage.upload(VOICE_BUCKET, "u1", "../../etc/my note.webm", io.BytesIO(b"ogg"))
    assert path == "u1/1700000000500_etc_my_note.webm"

    unnamed = file_storage.upload(VOICE_BUCKET, "u1", "", io.BytesIO(b"ogg"))
    assert unnamed == "u1/1700000000500_upload"


def test_open_returns_content_and_type(file_storage):
    path = file_storage.upload(IMAGE_BUCKET, "u1", "a.png", io.BytesIO(b"png"), "image/png")
    assert file_storage.open(IMAGE_BUCKET, path) == (b"png", "image/png")

    untyped = file_storage.upload(IMAGE_BUCKET, "u1", "b.bin", io.BytesIO(b"raw"))
    assert file_storage.open(IMAGE_BUCKET, untyped) == (b"raw", "application/octet-stream")


def test_open_missing_file_returns_none(file_storage):
    assert file_storage.open(IMAGE_BUCKET, "u1/missing.png") is None


def test_unknown_bucket_is_rejected(file_storage):
    with pytest.raises(KeyError):
        file_storage.upload("secrets", "u1", "a.png", io.BytesIO(b"x"))
    with pytest.raises(KeyError):
        file_storage.open("secrets", "u1/a.png")

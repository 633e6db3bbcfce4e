"""
Pytest configuration for the backend test suite.

Sets the environment before any backend module reads settings, and provides
a throwaway SQLite store, an in-memory object store and an upstream API fake.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = "test-api-key"
os.environ["MOCK_VID_GENS"] = "false"
os.environ["STORAGE_BUCKET"] = "test-bucket"
os.environ["WORKER_API_KEY"] = "test-worker-key"

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import VideoRecord, now_ms
from services.r2_storage import StoredObject
from services.video_repository import VideoRepository

GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"
RESULT_URL = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media"
VIDEO_BYTES = bytes(range(256)) * 4  # 1024 bytes


class FakeBody:
    """Mimics botocore's StreamingBody for the parts the app uses."""

    def __init__(self, data: bytes):
        self.data = data
        self.closed = False

    def iter_chunks(self, chunk_size: int = 1024):
        for i in range(0, len(self.data), chunk_size):
            yield self.data[i:i + chunk_size]

    def read(self) -> bytes:
        return self.data

    def close(self):
        self.closed = True


class InMemoryStorage:
    """Object store fake with the async surface of R2StorageService."""

    def __init__(self):
        self.objects = {}
        self.fail_uploads = False

    def put(self, key: str, data: bytes, content_type: str = "video/mp4"):
        self.objects[key] = {"data": data, "content_type": content_type, "metadata": {}}

    async def upload_fileobj_async(self, file_data, key, content_type="video/mp4", metadata=None):
        if self.fail_uploads:
            raise OSError("storage unavailable")
        self.objects[key] = {
            "data": file_data.read(),
            "content_type": content_type,
            "metadata": dict(metadata or {}),
        }
        return key

    async def head_object_async(self, key):
        obj = self.objects.get(key)
        return len(obj["data"]) if obj else None

    async def get_object_async(self, key, byte_range=None):
        obj = self.objects.get(key)
        if obj is None:
            return None
        data = obj["data"]
        part = data if byte_range is None else data[byte_range[0]:byte_range[1] + 1]
        return StoredObject(
            body=FakeBody(part),
            size=len(part),
            total_size=len(data),
            content_type=obj["content_type"],
            range=byte_range,
        )


class FakeUpstream:
    """
    Upstream Gemini API served through httpx.MockTransport.

    operations maps operation name -> JSON body (or an int status code to fail
    with); media maps URL -> bytes.
    """

    def __init__(self):
        self.operations = {}
        self.media = {RESULT_URL: VIDEO_BYTES}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url in self.media:
            return httpx.Response(200, content=self.media[url])

        if request.method == "GET" and url.startswith(GEMINI_BASE + "/"):
            name = url[len(GEMINI_BASE) + 1:]
            body = self.operations.get(name)
            if body is None:
                return httpx.Response(404, json={"error": {"code": 404}})
            if isinstance(body, int):
                return httpx.Response(body, json={"error": {"code": body}})
            return httpx.Response(200, json=body)

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def media_requests(self):
        return [r for r in self.requests if str(r.url) in self.media]


def done_with_url(name: str, url: str = RESULT_URL) -> dict:
    return {
        "name": name,
        "done": True,
        "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": url}}]}},
    }


@pytest.fixture
def session_factory(tmp_path):
    """Sessionmaker bound to a fresh SQLite file"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'videos.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return VideoRepository(session_factory)


@pytest.fixture
def seed_video(session_factory):
    """Insert a video record directly, bypassing the repository"""

    def _seed(video_id: str = "v1", **fields) -> VideoRecord:
        values = {
            "prompt": "a puffin chick",
            "status": "pending",
            "created_at": now_ms(),
        }
        values.update(fields)
        with session_factory() as db:
            video = VideoRecord(id=video_id, **values)
            db.add(video)
            db.commit()
            return video

    return _seed


@pytest.fixture
def load_video(session_factory):
    """Read a record back from the store"""

    def _load(video_id: str = "v1") -> VideoRecord:
        with session_factory() as db:
            return db.query(VideoRecord).filter(VideoRecord.id == video_id).first()

    return _load


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def upstream():
    return FakeUpstream()

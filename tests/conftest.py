"""Pytest fixtures for the task list tests."""

from dataclasses import dataclass
from typing import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tasklist.attachments import AttachmentStorage
from tasklist.config import Settings
from tasklist.main import create_app
from tasklist.store import RecordStore


@dataclass
class FakeUpload:
    """Minimal stand-in for an uploaded file."""

    filename: str
    content: bytes
    _pos: int = 0

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            size = len(self.content) - self._pos
        chunk = self.content[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing every file the app writes into a temp directory."""
    return Settings(
        data_dir=tmp_path / "data",
        uploads_dir=tmp_path / "uploads",
        max_upload_bytes=1024,
    )


@pytest.fixture
def store(settings: Settings) -> RecordStore:
    return RecordStore(settings.data_dir)


@pytest.fixture
def uploads(settings: Settings) -> AttachmentStorage:
    return AttachmentStorage(settings.uploads_dir, max_bytes=settings.max_upload_bytes)


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create a test client for the API (runs the lifespan)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login(client: TestClient) -> Callable[..., dict]:
    """Register (if needed) and log in; the session cookie lands in the client."""

    def _login(username: str = "alice", password: str = "wonderland") -> dict:
        credentials = {"username": username, "password": password}
        client.post("/api/auth/register", json=credentials)
        response = client.post("/api/auth/login", json=credentials)
        assert response.status_code == 200
        return client.get("/api/auth/me").json()

    return _login


@pytest.fixture
def make_upload() -> Callable[[str, bytes], FakeUpload]:
    return FakeUpload

import asyncio
import os
from contextlib import asynccontextmanager

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("MEDIA_PROVIDER", "none")
os.environ.setdefault("MEDIA_UPLOAD_RETRY_DELAY_SECONDS", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.db import DB
from core.models import Base
from core.services import profiles
from core.services.media_store import MediaUploader, MediaUploadError
from core.services.presence import InMemoryPresenceRegistry


class FakeConnection:
    """Records every envelope pushed to it."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def events(self, name):
        return [item["data"] for item in self.sent if item["event"] == name]


class FakeUploader(MediaUploader):
    def __init__(self, failures: int = 0, url: str = "https://media.example/img/1.png"):
        self.failures = failures
        self.url = url
        self.calls = 0

    async def upload(self, data: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise MediaUploadError("provider unavailable")
        return self.url


@pytest.fixture
def server_db(tmp_path):
    db_path = tmp_path / "chatgate.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = SessionLocal
    try:
        yield engine
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def db_session(server_db):
    session = DB.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(server_db):
    counter = {"n": 0}

    def _make(handle=None, full_name=None):
        counter["n"] += 1
        handle = handle or f"user{counter['n']}"
        return profiles.create_user(
            handle=handle,
            full_name=full_name or handle.capitalize(),
            email=f"{handle}@example.com",
        )

    return _make


@pytest.fixture
def make_mutual(server_db):
    from core.services import social_graph

    def _make(a, b):
        social_graph.follow(a["id"], b["id"])
        social_graph.follow(b["id"], a["id"])

    return _make


@pytest.fixture
def presence():
    return InMemoryPresenceRegistry()


@pytest.fixture
def run():
    """Run a coroutine on a fresh event loop."""
    return asyncio.run


@asynccontextmanager
async def _no_lifespan(app):
    yield


@pytest.fixture
def client(server_db, monkeypatch):
    from fastapi.testclient import TestClient

    from app.main import app

    uploader = FakeUploader()
    monkeypatch.setattr(app.router, "lifespan_context", _no_lifespan)
    app.state.presence = InMemoryPresenceRegistry()
    app.state.uploader = uploader
    with TestClient(app) as test_client:
        test_client.uploader = uploader
        yield test_client
    app.state.presence = None
    app.state.uploader = None
"""
Fixtures compartidas: base SQLite en memoria, TestClient con get_db
sobreescrito y un elemento de video falso que emite eventos como el navegador.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from src.main import app
from src.database import Base, get_db
from src.services.media_preview import PlaybackRejected

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Base limpia por test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db):
    return TestingSessionLocal


@pytest.fixture(scope="function")
def client(db: Session):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "VIDEO_PREVIEW_SECONDS",
        "VISIT_SINK_URL",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "IP_LOOKUP_URL",
        "ADMIN_ROUTE_PREFIX",
    ):
        monkeypatch.delenv(var, raising=False)


class FakeVideoElement:
    """Elemento de video mínimo: guarda listeners y emite play/pause."""

    def __init__(self, duration: float = 30.0, reject_play: bool = False, play_result=None):
        self.muted = False
        self.loop = False
        self.plays_inline = False
        self.current_time = 0.0
        self.duration = duration
        self.paused = True
        self.reject_play = reject_play
        self.play_result = play_result
        self.listeners = {}
        self.play_calls = 0
        self.pause_calls = 0

    def add_event_listener(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_event_listener(self, event, handler):
        handlers = self.listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self) -> int:
        return sum(len(handlers) for handlers in self.listeners.values())

    def dispatch(self, event):
        for handler in list(self.listeners.get(event, [])):
            handler(event)

    def play(self):
        self.play_calls += 1
        if self.reject_play:
            raise PlaybackRejected("NotAllowedError: play() failed")
        if self.play_result is not None:
            return self.play_result()
        self.paused = False
        self.dispatch("play")
        return None

    def pause(self):
        self.pause_calls += 1
        was_playing = not self.paused
        self.paused = True
        if was_playing:
            self.dispatch("pause")


@pytest.fixture
def video():
    return FakeVideoElement()


@pytest.fixture
def make_video():
    return FakeVideoElement

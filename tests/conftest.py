import os

# Must be set before app.config is first imported (settings are cached)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("MAIL_BACKEND", "console")
os.environ.setdefault("SESSION_SECRET_KEY", "test-session-secret")

import re
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.dependencies import get_mailer, get_metadata_provider, get_registration_store, get_session_manager
from app.errors import DeliveryError, ProviderError
from app.main import app
from app.models import User
from app.services.auth import get_password_hash
from app.services.registration_store import RegistrationStore
from app.services.sessions import SessionManager

CODE_RE = re.compile(r"code is: ([0-9A-F]{6})")


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to_email, subject, html_content, text_content=None):
        if self.fail:
            raise DeliveryError(f"SMTP refused {to_email}")
        self.sent.append({"to": to_email, "subject": subject, "html": html_content, "text": text_content})

    def last_code(self) -> str:
        return CODE_RE.search(self.sent[-1]["text"]).group(1)


def tmdb_movie(external_id: str, title: str = "The Matrix", cast_size: int = 3) -> dict:
    return {
        "id": int(external_id),
        "title": title,
        "overview": "A hacker learns the truth.",
        "poster_path": "/matrix.jpg",
        "release_date": "1999-03-30",
        "vote_average": 8.2,
        "genres": [{"id": 28, "name": "Action"}],
        "credits": {
            "cast": [
                {"name": f"Actor {i}", "character": f"Role {i}", "profile_path": f"/p{i}.jpg", "order": i}
                for i in range(cast_size)
            ]
        },
    }


class FakeProvider:
    def __init__(self):
        self.details = {}
        self.seasons = {}
        self.calls = []
        self.fail = False
        self.before_return = None

    def fetch_details(self, external_id, media_type):
        self.calls.append((external_id, media_type))
        if self.fail or external_id not in self.details:
            raise ProviderError(f"TMDB API error for {media_type}/{external_id}")
        if self.before_return:
            self.before_return(external_id)
        return self.details[external_id]

    def fetch_season(self, external_id, season):
        if self.fail or (external_id, season) not in self.seasons:
            raise ProviderError(f"TMDB API error for tv/{external_id}/season/{season}")
        return self.seasons[(external_id, season)]


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store():
    return RegistrationStore(ttl=timedelta(seconds=60), max_entries=100)


@pytest.fixture
def sessions():
    return SessionManager(max_age=timedelta(days=7))


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def provider():
    p = FakeProvider()
    p.details["603"] = tmdb_movie("603", cast_size=25)
    p.details["550"] = tmdb_movie("550", title="Fight Club")
    p.details["1396"] = {
        "id": 1396,
        "name": "Breaking Bad",
        "overview": "A chemist turns to crime.",
        "poster_path": "/bb.jpg",
        "first_air_date": "2008-01-20",
        "vote_average": 8.9,
        "genres": [{"id": 18, "name": "Drama"}],
        "credits": {"cast": [{"name": "Bryan Cranston", "character": "Walter White", "profile_path": "/bc.jpg"}]},
    }
    return p


@pytest.fixture
def make_user(db):
    def _make(username="bob", email="bob@x.com", password="Secret1", is_verified=True):
        user = User(
            username=username,
            email=email,
            hashed_password=get_password_hash(password),
            is_verified=is_verified,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(session_factory, store, sessions, mailer, provider):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_registration_store] = lambda: store
    app.dependency_overrides[get_session_manager] = lambda: sessions
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_metadata_provider] = lambda: provider
    yield TestClient(app)
    app.dependency_overrides = {}

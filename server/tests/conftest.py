"""Shared pytest fixtures: in-memory DB, store, session, loaded districts."""

import sys
import os

# Add server root to path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base, init_db
from districts import normalize_districts
from notifications import Notifier
from session import GameSession
from storage import TrailStore


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db(session_factory):
    """Provide a DB session, closed after each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded_engine(engine, session_factory):
    init_db(bind=engine, session_factory=session_factory)
    return engine


@pytest.fixture
def store(session_factory):
    return TrailStore(session_factory)


@pytest.fixture
def events():
    """A notifier plus the list of (event, payload) it has delivered."""
    notifier = Notifier()
    received = []
    notifier.subscribe(lambda event, payload: received.append((event, payload)))
    return notifier, received


@pytest.fixture
def districts():
    from tests.gps_test_fixtures import OSM_PAYLOAD

    return normalize_districts(OSM_PAYLOAD)


@pytest.fixture
def game(store, events, districts):
    """A session with the fixture districts loaded around central Sofia."""
    from tests.gps_test_fixtures import SOFIA_CENTER

    notifier, _ = events
    game = GameSession(store, notifier)
    key, _ = game.begin_district_fetch(*SOFIA_CENTER)
    game.complete_district_fetch(key, districts, SOFIA_CENTER)
    return game

"""
Shared fixtures.

Every test gets its own SQLite file so foreign keys, unique constraints
and separate sessions behave as they do against a real database.
"""

import pytest

from league.db.session import create_engine, create_session_factory, init_db
from league.features.competition import ResultStore, ScoringEngine
from league.features.strava import TokenCipher, TokenManager
from league.features.webhooks import WebhookLedger

from factories import NOW, FakeOAuth, FakeStrava, Seeder


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/league.db")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def oauth():
    return FakeOAuth()


@pytest.fixture
def strava():
    return FakeStrava()


@pytest.fixture
def tokens(session_factory, oauth):
    return TokenManager(session_factory, oauth, TokenCipher(None), clock=lambda: NOW)


@pytest.fixture
def store(session_factory):
    return ResultStore(session_factory)


@pytest.fixture
def scoring(session_factory):
    return ScoringEngine(session_factory)


@pytest.fixture
def ledger(session_factory):
    return WebhookLedger(session_factory)

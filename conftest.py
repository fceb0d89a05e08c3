"""Shared pytest fixtures: a fresh in-memory database per test."""

import os

# Must be set before config/database are imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PUSH_WEBHOOK_URL", "")

import pytest
from sqlalchemy.orm import sessionmaker

import database


@pytest.fixture
def engine():
    engine = database.make_engine("sqlite:///:memory:")
    database.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

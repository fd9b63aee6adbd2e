"""
Fixtures compartidos para los tests del ledger

Cada test usa una base SQLite en memoria nueva y un reloj fijo.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from posledger.common.clock import FixedClock, get_clock
from posledger.database.database import build_engine, create_tables, get_db
from posledger.database.immutability import register_immutability_listeners


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    register_immutability_listeners()
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


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def client(session_factory, clock):
    """TestClient con get_db y get_clock apuntando a la base de prueba"""
    from posledger.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

import os

# must be set before config/database are imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401  registers tables on Base.metadata
from database import Base, engine, SessionLocal
from thresholds import ThresholdRegistry


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(fresh_schema):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry():
    return ThresholdRegistry.initialize("admin", 800, 5, 21)


@pytest.fixture
def client(fresh_schema):
    from app import app
    with TestClient(app) as test_client:
        yield test_client

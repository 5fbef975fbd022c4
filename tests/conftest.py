"""
Shared fixtures.

- In-memory SQLite database bound to the ORM metadata
- A scriptable chain provider standing in for a JSON-RPC node
- A FastAPI TestClient with get_db pointed at the test database
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers tables on Base
from database import Base, build_engine, get_db
from services.networks.evm import ChainReader
from tests.fakes import FakeChainProvider, OWNER, TOKEN_A, TOKEN_B


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def chain():
    return FakeChainProvider(contracts={
        TOKEN_A: {"name": "Alpha", "symbol": "ALP", "decimals": 18, "balances": {OWNER: 5 * 10 ** 18}},
        TOKEN_B: {"name": "Beta", "symbol": "BET", "decimals": 6, "balances": {OWNER: 0}},
    })


@pytest.fixture
def reader(chain):
    return ChainReader(provider_factory=lambda network: chain, max_workers=2)


@pytest.fixture
def client(engine):
    from main import app

    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # not used as a context manager so the startup scheduler stays off
    yield TestClient(app)
    app.dependency_overrides.clear()

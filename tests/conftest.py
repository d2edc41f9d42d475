"""
Shared fixtures: in-memory sqlite database, API client and auth headers.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PROXY_BASE_URL", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.auth import create_access_token
from app.config import settings
from app.database import Base, get_db, get_session_factory
from app.models import Store, StoreType
from app.services.credentials import WooCredentials
from app.services.http_client import get_transport

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Factory for sessions opened outside the test's own session (status worker)."""
    return TestingSessionLocal


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch):
    """Proxy functions are off unless a test turns them on."""
    monkeypatch.setattr(settings, "PROXY_BASE_URL", "")
    monkeypatch.setattr(settings, "PROXY_API_KEY", "")


@pytest.fixture
def transport_holder():
    """Mutable slot the API tests fill with an httpx.MockTransport."""
    return {"transport": None}


@pytest.fixture
def client(db_session, transport_holder):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_transport] = lambda: transport_holder["transport"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def brand_id():
    return 7


@pytest.fixture
def auth_headers(brand_id):
    return {"Authorization": f"Bearer {create_access_token(brand_id)}"}


@pytest.fixture
def woo_store(db_session, brand_id):
    creds = WooCredentials(site_url="https://shop.example.com", consumer_key="ck_test", consumer_secret="cs_test")
    store = Store(
        brand_id=brand_id,
        name="shop.example.com",
        store_type=StoreType.WOOCOMMERCE,
        external_store_id="shop.example.com",
        api_credentials=creds.to_blob(),
    )
    db_session.add(store)
    db_session.commit()
    db_session.refresh(store)
    return store

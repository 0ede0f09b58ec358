import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from db import get_session
from main import app
from models import User
from routers.auth import hash_password
from schemas import Actor


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make_user(name: str, *, donor: bool = False, seeker: bool = False) -> User:
        user = User(
            email=f"{name.lower()}@example.com",
            name=name,
            password_hash=hash_password("secret"),
            is_donor=donor,
            is_seeker=seeker,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def donor(make_user) -> Actor:
    return Actor(user_id=make_user("Juan", donor=True).id, role="donor")


@pytest.fixture
def seeker(make_user) -> Actor:
    return Actor(user_id=make_user("Maria", seeker=True).id, role="seeker")


@pytest.fixture
def other_seeker(make_user) -> Actor:
    return Actor(user_id=make_user("Pablo", seeker=True).id, role="seeker")


@pytest.fixture
def bilbao():
    """Attributes of a food donation in Bilbao."""
    return {
        "type": "Alimentos",
        "description": "Caja de legumbres y arroz",
        "condition": "Nuevo",
        "zone": "Casco Viejo",
        "city": "Bilbao",
        "latitude": 43.26,
        "longitude": -2.93,
    }


@pytest.fixture
def client_factory(engine):
    """Build TestClients with their own cookie jar over the test database."""

    def _get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    clients = []

    def _make_client() -> TestClient:
        client = TestClient(app)
        clients.append(client)
        return client

    yield _make_client

    for client in clients:
        client.close()
    app.dependency_overrides.clear()


@pytest.fixture
def register(client_factory):
    """Register a user and return a client logged in as them."""

    def _register(name: str, role: str) -> TestClient:
        client = client_factory()
        r = client.post("/register", json={
            "email": f"{name.lower()}@example.com",
            "name": name,
            "password": "secret",
            "is_donor": role == "donor",
            "is_seeker": role == "seeker",
        })
        assert r.status_code == 200, r.text
        client.user_id = r.json()["id"]
        return client

    return _register

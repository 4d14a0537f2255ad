import os

# Must be set before any app module reads (and caches) settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.security import BcryptHasher
from app.core.tokens import SessionClaim, TokenIssuer
from app.database import get_session
from app.main import app
from app.models.customer import Customer
from app.models.role import Role
from app.models.user import User

TEST_SECRET = "test-secret"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(session):
    app.dependency_overrides[get_session] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def hasher() -> BcryptHasher:
    return BcryptHasher(rounds=4)


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET)


@pytest.fixture
def make_user(session, hasher):
    """Insert a user directly, bypassing the API."""

    def _make(username: str = "alice", password: str = "p@ss", **kwargs) -> User:
        user = User(username=username, password=hasher.hash(password), **kwargs)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def role(session) -> Role:
    role = Role(name="admin")
    session.add(role)
    session.commit()
    session.refresh(role)
    return role


@pytest.fixture
def customer(session) -> Customer:
    customer = Customer(name="Acme Bakery", email="orders@acme.test")
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return customer


@pytest.fixture
def auth_headers(issuer):
    def _headers(user: User) -> dict[str, str]:
        token = issuer.issue(SessionClaim.from_user(user))
        return {"Authorization": f"Bearer {token}"}

    return _headers

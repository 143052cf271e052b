import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
sys.path.append(str(Path(__file__).resolve().parents[1]))

from booking_ledger.core.rate_limiter import attempt_limiter  # noqa: E402
from booking_ledger.core.security import create_access_token  # noqa: E402
from booking_ledger.db.base import Base  # noqa: E402
from booking_ledger.db.models import ProviderProfile, User, UserRole  # noqa: E402
from booking_ledger.db.session import get_db  # noqa: E402
from booking_ledger.main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    attempt_limiter.reset()


@pytest.fixture()
def db_session() -> Session:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client() -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _bearer_headers(user: User) -> dict[str, str]:
    token = create_access_token(subject=str(user.id), extra_claims={"role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers() -> Callable[[User], dict[str, str]]:
    return _bearer_headers


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def factory(email: str, role: UserRole = UserRole.CLIENT) -> User:
        user = User(email=email, role=role.value)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def provider_user(db_session: Session, make_user) -> User:
    user = make_user("coach@example.com", UserRole.PROVIDER)
    db_session.add(ProviderProfile(user_id=user.id, display_name="Coach", timezone="UTC"))
    db_session.commit()
    return user


@pytest.fixture()
def provider(db_session: Session, provider_user: User) -> ProviderProfile:
    return db_session.query(ProviderProfile).filter(ProviderProfile.user_id == provider_user.id).one()


@pytest.fixture()
def client_user(make_user) -> User:
    return make_user("member@example.com", UserRole.CLIENT)

from __future__ import annotations

from collections.abc import Generator
from typing import Mapping, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.deps import get_current_user, get_optional_user
from app.core.db import Base, get_db
from app.main import app
from app.models.masjid import Masjid
from app.models.membership import MasjidMembership
from app.models.subscription import MasjidSubscription
from app.models.user import User
from app.services.dispatch import NotificationDispatcher, get_dispatcher
from app.services.memberships import build_membership
from app.services.push_gateway import BatchResult, TokenResult

SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def override_get_db() -> Generator[Session, None, None]:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeGateway:
    """Records every batch; tokens listed in ``invalid`` come back as unregistered."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.invalid: set[str] = set()
        self.transient: set[str] = set()
        self.raise_on_send: Exception | None = None

    def send_batch(self, tokens: Sequence[str], title: str, body: str, data: Mapping[str, str]) -> BatchResult:
        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": dict(data)})
        if self.raise_on_send is not None:
            raise self.raise_on_send
        results = []
        for token in tokens:
            if token in self.invalid:
                results.append(TokenResult(token, False, "registration-token-not-registered"))
            elif token in self.transient:
                results.append(TokenResult(token, False, "unavailable"))
            else:
                results.append(TokenResult(token, True))
        return BatchResult(results)

    @property
    def sent_tokens(self) -> list[str]:
        return [token for call in self.calls for token in call["tokens"]]


@pytest.fixture(autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def dispatcher(gateway: FakeGateway) -> NotificationDispatcher:
    return NotificationDispatcher(TestingSessionLocal, gateway)


@pytest.fixture()
def client(db_session: Session, dispatcher: NotificationDispatcher) -> Generator[TestClient, None, None]:
    app.dependency_overrides.clear()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_optional_user] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def authorize(client: TestClient):
    def _apply(user: User | None):
        if user is None:
            app.dependency_overrides.pop(get_current_user, None)
            app.dependency_overrides[get_optional_user] = lambda: None
            return
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_optional_user] = lambda: user

    yield _apply
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture()
def make_user(db_session: Session):
    counter = {"n": 0}

    def _make(full_name: str = "Test User", *, is_super_admin: bool = False, is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            full_name=full_name,
            hashed_password="hash",
            is_active=is_active,
            is_super_admin=is_super_admin,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_masjid(db_session: Session):
    def _make(name: str = "Masjid Al-Noor", *, created_by: User | None = None, status: str = "active") -> Masjid:
        masjid = Masjid(name=name, city="Toronto", status=status, created_by_id=created_by.id if created_by else None)
        db_session.add(masjid)
        db_session.commit()
        db_session.refresh(masjid)
        return masjid

    return _make


@pytest.fixture()
def add_membership(db_session: Session):
    def _add(user: User, masjid: Masjid, role: str = "admin", **overrides: bool) -> MasjidMembership:
        membership = build_membership(user_id=user.id, masjid_id=masjid.id, role=role, overrides=overrides)
        db_session.add(membership)
        db_session.commit()
        db_session.refresh(membership)
        return membership

    return _add


@pytest.fixture()
def add_subscription(db_session: Session):
    def _add(
        masjid: Masjid,
        *,
        user: User | None = None,
        device_id: str | None = None,
        token: str | None = None,
        is_active: bool = True,
    ) -> MasjidSubscription:
        subscription = MasjidSubscription(
            masjid_id=masjid.id,
            user_id=user.id if user else None,
            device_id=device_id,
            fcm_token=token,
            is_active=is_active,
        )
        db_session.add(subscription)
        db_session.commit()
        db_session.refresh(subscription)
        return subscription

    return _add

"""Pytest fixtures for service and API tests."""

import os
from collections.abc import Callable, Generator, Sequence

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api import deps
from app.core.security import create_access_token
from app.db import models  # noqa: F401  # Imported for side effects
from app.db.base import Base
from app.db.models import (
    AppUser,
    Beneficiary,
    BeneficiaryOrganization,
    Organization,
    PushSubscription,
    UserRole,
)
from app.main import create_app
from app.services.push_gateway import Delivered, DeliveryResult, PushMessage

Responder = Callable[[int, Sequence[PushMessage]], list[DeliveryResult]]


class FakePushClient:
    """Records every batch; answers with ``responder`` or accepts everything."""

    def __init__(self, responder: Responder | None = None) -> None:
        self.batches: list[list[PushMessage]] = []
        self.responder = responder

    def send_batch(self, messages: Sequence[PushMessage]) -> list[DeliveryResult]:
        self.batches.append(list(messages))
        if self.responder is not None:
            return self.responder(len(self.batches), messages)
        return [Delivered(ticket_id=f"ticket-{index}") for index, _ in enumerate(messages)]

    @property
    def messages(self) -> list[PushMessage]:
        return [message for batch in self.batches for message in batch]


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        with db_engine.begin() as connection:
            for table in reversed(Base.metadata.sorted_tables):
                connection.execute(table.delete())


@pytest.fixture()
def push_client() -> FakePushClient:
    return FakePushClient()


@pytest.fixture()
def client(db_session: Session, push_client: FakePushClient) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_push_client] = lambda: push_client
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def organization(db_session: Session) -> Organization:
    org = Organization(name="Café Central")
    db_session.add(org)
    db_session.commit()
    return org


def _staff(db_session: Session, organization: Organization, role: UserRole) -> AppUser:
    user = AppUser(
        organization_id=organization.id,
        email=f"{role.value}@cafe-central.example",
        first_name=role.value.title(),
        role=role.value,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def owner(db_session: Session, organization: Organization) -> AppUser:
    return _staff(db_session, organization, UserRole.OWNER)


@pytest.fixture()
def admin(db_session: Session, organization: Organization) -> AppUser:
    return _staff(db_session, organization, UserRole.ADMIN)


@pytest.fixture()
def collaborator(db_session: Session, organization: Organization) -> AppUser:
    return _staff(db_session, organization, UserRole.COLLABORATOR)


@pytest.fixture()
def enroll_member(db_session: Session) -> Callable[..., Beneficiary]:
    """Enroll a beneficiary in ``organization`` with ``tokens`` active push tokens."""

    counter = {"value": 0}

    def _enroll(
        organization: Organization,
        *,
        tokens: int = 1,
        inactive_tokens: int = 0,
        membership_active: bool = True,
    ) -> Beneficiary:
        counter["value"] += 1
        number = counter["value"]
        beneficiary = Beneficiary(first_name=f"Member {number}", email=f"member{number}@example.com")
        db_session.add(beneficiary)
        db_session.flush()
        db_session.add(
            BeneficiaryOrganization(
                beneficiary_id=beneficiary.id,
                organization_id=organization.id,
                is_active=membership_active,
            )
        )
        for index in range(tokens + inactive_tokens):
            db_session.add(
                PushSubscription(
                    beneficiary_id=beneficiary.id,
                    expo_push_token=f"ExponentPushToken[member-{number}-{index}]",
                    platform="ios",
                    is_active=index < tokens,
                )
            )
        db_session.commit()
        return beneficiary

    return _enroll


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(subject, token_type: str = "access") -> dict[str, str]:
        token = create_access_token(subject, token_type=token_type)
        return {"Authorization": f"Bearer {token}"}

    return _headers

import os

# Must be set before the app modules read their settings.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SEED_DATA", "false")

from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from httpx import Client
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import FORM_DASHBOARD, get_enrollment_adapter, get_notifier
from app.core.config import Settings, get_settings
from app.core.security import create_access_token, create_form_token, hash_password, now_utc
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import (
    ENROLLMENT_ACTIVE,
    MEMBERSHIP_ACTIVE,
    ROLE_PARTNER_ADMIN,
    ROLE_STUDENT,
    Course,
    Enrollment,
    User,
)
from app.services.enrollment import DatabaseEnrollmentAdapter
from app.services.notifications import NotificationDispatcher

RUN_INTEGRATION = os.getenv("RUN_INTEGRATION") == "1"
BASE_URL = os.getenv("BASE_URL", "http://localhost:10723")

TEST_PASSWORD = "Secret-Pass-123"


@dataclass
class SentEmail:
    to: str
    subject: str
    body: str


class Outbox(list):
    def transport(self, _settings: Settings, to: str, subject: str, body: str) -> None:
        self.append(SentEmail(to=to, subject=subject, body=body))

    def to(self, address: str) -> list[SentEmail]:
        return [mail for mail in self if mail.to == address]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        jwt_secret="test-secret",
        default_invite_days=30,
        global_seat_cap=0,
        notice_days_before=7,
        seed_data=False,
        admin_api_key="test-admin-key",
    )


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def notifier(settings: Settings, outbox: Outbox) -> NotificationDispatcher:
    return NotificationDispatcher(settings, transport=outbox.transport)


@pytest.fixture
def enrollment(db) -> DatabaseEnrollmentAdapter:
    return DatabaseEnrollmentAdapter(db)


@pytest.fixture
def courses(db) -> list[Course]:
    rows = [
        Course(course_code="IELTS-AC", title="IELTS Academic", is_active=True),
        Course(course_code="IELTS-GT", title="IELTS General Training", is_active=True),
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(
        *,
        id: int | None = None,
        email: str | None = None,
        account_role: str = ROLE_STUDENT,
        membership_state: str = MEMBERSHIP_ACTIVE,
        manager_id: int | None = None,
        expiry_at: datetime | None = None,
        password: str = TEST_PASSWORD,
        **extra,
    ) -> User:
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user = User(
            id=id,
            email=email,
            username=email.split("@")[0],
            first_name="Test",
            last_name=f"User{counter['n']}",
            display_name=f"Test User{counter['n']}",
            password_hash=hash_password(password),
            account_role=account_role,
            membership_state=membership_state,
            manager_id=manager_id,
            expiry_at=expiry_at,
            **extra,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def partner(make_user) -> User:
    return make_user(id=5, email="partner@example.com", account_role=ROLE_PARTNER_ADMIN)


@pytest.fixture
def now() -> datetime:
    return now_utc()


@pytest.fixture
def active_student(make_user, partner, now) -> User:
    return make_user(email="student@example.com", manager_id=partner.id, expiry_at=now + timedelta(days=20))


def active_course_ids(db, user_id: int) -> set[int]:
    return set(
        db.execute(
            select(Enrollment.course_id).where(Enrollment.user_id == user_id, Enrollment.status == ENROLLMENT_ACTIVE)
        ).scalars()
    )


@pytest.fixture
def api(db, settings: Settings, enrollment: DatabaseEnrollmentAdapter, notifier: NotificationDispatcher):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_enrollment_adapter] = lambda: enrollment
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings: Settings):
    def _headers(user: User, dashboard: bool = False) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {create_access_token(str(user.id), settings)}"}
        if dashboard:
            headers["X-Form-Token"] = create_form_token(FORM_DASHBOARD, settings, subject=str(user.id))
        return headers

    return _headers


@pytest.fixture(scope="session")
def base_url() -> str:
    return BASE_URL


@pytest.fixture(scope="session")
def client(base_url: str):
    with Client(base_url=base_url, timeout=20.0) as c:
        yield c


@pytest.fixture(scope="session")
def integration_enabled() -> bool:
    return RUN_INTEGRATION

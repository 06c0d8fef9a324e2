"""Pytest configuration and fixtures"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["APP_ENV"] = "test"
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("TURNSTILE_SECRET_KEY", None)

from typing import Callable, Generator, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from scriptdesk.api.deps import get_clock, get_human_verifier  # noqa: E402
from scriptdesk.database import Base, get_db  # noqa: E402
from scriptdesk.main import app  # noqa: E402
from scriptdesk.models.user import User  # noqa: E402
from scriptdesk.utils.passwords import hash_password  # noqa: E402

TEST_DATABASE_URL = "sqlite:///./test.db"
TEST_SECRET = os.environ["SESSION_SECRET"]
VALID_CAPTCHA = "captcha-ok"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: int = 1_700_000_040):
        self.current = start

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += seconds


class FakeVerifier:
    """Accepts exactly one CAPTCHA token value and records calls"""

    def __init__(self):
        self.calls = []

    def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool:
        self.calls.append((token, remote_ip))
        return token == VALID_CAPTCHA


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> Callable[[], Session]:
    """Independent sessions on the test database (one per thread)"""
    return TestingSessionLocal


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture(scope="function")
def client(db: Session, clock: FakeClock, verifier: FakeVerifier) -> Generator[TestClient, None, None]:
    """Create test client with database, clock and CAPTCHA overrides"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_human_verifier] = lambda: verifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory for persisted accounts; the password is ``password123``"""

    def _make_user(
        username: str = "alice",
        is_admin: bool = False,
        is_super_admin: bool = False,
        password: str = "password123",
    ) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(password),
            is_admin=is_admin,
            is_super_admin=is_super_admin,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def login(client: TestClient) -> Callable[..., object]:
    """Log in through the API; the client keeps the session cookie"""

    def _login(username: str = "alice", password: str = "password123"):
        return client.post(
            "/api/login",
            json={"username": username, "password": password, "turnstile_token": VALID_CAPTCHA},
        )

    return _login

"""
pytest configuration - point the account store at a throwaway SQLite file
before the app is imported, and provide isolated app / clock fixtures.
"""
import os

os.environ.setdefault("GATEKEEPER_DATABASE_URL", "sqlite:///./test_gatekeeper.db")
os.environ.setdefault("GATEKEEPER_LOG_FORMAT", "text")

import uuid  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from gatekeeper.config import Settings  # noqa: E402
from gatekeeper.database import Base, engine, init_db  # noqa: E402
from gatekeeper.main import create_app  # noqa: E402
from gatekeeper.security.services import build_security  # noqa: E402
from gatekeeper.security.window import now_ms  # noqa: E402

ADMIN_EMAIL = "admin@gatekeeper.local"
ADMIN_PASSWORD = "Ch4nge-Me-Now!"
STRONG_PASSWORD = "Sup3r-Secret!x"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float = 0, ms: int = 0) -> None:
        self.now += int(seconds * 1000) + ms


@pytest.fixture(autouse=True, scope="session")
def create_tables():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client():
    """
    Build a TestClient around a fresh app. The registries run on a fake
    clock anchored at real time, so JWT expiry and revocation expiry agree.
    """
    def _make(clock: FakeClock | None = None, **overrides) -> TestClient:
        settings = Settings(**overrides)
        security = build_security(settings, clock=clock or FakeClock(now_ms()))
        return TestClient(create_app(settings, security=security))

    return _make


@pytest.fixture
def unique_email() -> str:
    return f"user-{uuid.uuid4().hex[:10]}@example.com"

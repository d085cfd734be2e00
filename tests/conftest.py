"""Pytest fixtures for testing"""

import os

# Point the app at SQLite before any module builds its engine
TEST_DATABASE_URL = "sqlite:///./test.db"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("WELCOME_GRANT", "5000")

import pytest
from decimal import Decimal
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from gurtpay_ledger.api.main import create_app
from gurtpay_ledger.config import Settings, settings
from gurtpay_ledger.domain.codes import generate_api_key, generate_wallet_address
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.domain.money import to_micros
from gurtpay_ledger.infrastructure.database.models import Base, Business, User
from gurtpay_ledger.infrastructure.database.session import get_db
from gurtpay_ledger.infrastructure.security.sessions import SessionAuthority
from gurtpay_ledger.utils.date_utils import utcnow


# Test database
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def config() -> Settings:
    """Engine configuration with a fixed signing secret"""
    return Settings(database_url=TEST_DATABASE_URL, signing_secret="test-signing-secret")


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Insert a wallet directly, bypassing the welcome grant"""

    def _make(username: str, balance: Decimal = Decimal("0"), is_admin: bool = False) -> User:
        user = User(
            external_id=f"ext-{username}",
            username=username,
            wallet_address=generate_wallet_address(),
            wallet_balance_micros=to_micros(balance),
            is_admin=is_admin,
            created_at=utcnow(),
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_business(db: Session) -> Callable[..., Business]:
    def _make(owner: User, name: str = "Acme Corp", balance: Decimal = Decimal("0"), website_url: Optional[str] = None) -> Business:
        business = Business(
            user_id=owner.id,
            business_name=name,
            website_url=website_url,
            api_key=generate_api_key(),
            verified=True,
            balance_micros=to_micros(balance),
            created_at=utcnow(),
        )
        db.add(business)
        db.commit()
        return business

    return _make


@pytest.fixture
def auth_headers(db: Session) -> Callable[[User], dict]:
    """Issue a real session for a user, signed with the app's settings"""

    def _headers(user: User) -> dict:
        token = SessionAuthority(db, settings).issue(user)
        db.commit()
        return {"Authorization": f"Bearer {token}"}

    return _headers


def principal_of(user: User) -> Principal:
    return Principal(id=user.id, username=user.username, is_admin=bool(user.is_admin))


def balance_of(db: Session, user: User) -> int:
    db.refresh(user)
    return user.wallet_balance_micros

"""Pytest configuration and fixtures"""
import os

# Set test environment variables before anything reads settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CART_TOKEN_SECRET", "test-secret")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cart_session.data.database import Base
from cart_session.data.models import CartSessionModel  # noqa: F401
from cart_session.domain.errors import CatalogUnavailable
from cart_session.repos.cart_session_repo import CartSessionStore
from cart_session.services.product_client import ProductSnapshot
from cart_session.services.token_codec import TokenCodec, TokenConfig

TTL = 48 * 60 * 60
GRACE_TTL = 60 * 60
T0 = 1_700_000_000


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeCatalog:
    """In-memory catalog collaborator."""

    def __init__(self, products=None):
        self.products = dict(products or {})
        self.calls = []
        self.down = False

    def resolve_product(self, product_id):
        self.calls.append(product_id)
        if self.down:
            raise CatalogUnavailable("catalog down")
        return self.products.get(product_id)


@pytest.fixture
def engine():
    """Fresh in-memory database shared across connections"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return TokenCodec(TokenConfig(secret=b"test-secret", issuer="test-issuer", ttl=TTL), clock=clock)


@pytest.fixture
def store(db, codec, clock):
    return CartSessionStore(db, codec, ttl=TTL, grace_ttl=GRACE_TTL, clock=clock)


@pytest.fixture
def catalog():
    return FakeCatalog({
        42: ProductSnapshot(product_id=42, name="Keyboard", price=Decimal("199.99")),
        7: ProductSnapshot(product_id=7, name="Mouse", price=Decimal("49.50")),
        8: ProductSnapshot(product_id=8, name="Retired", price=Decimal("10.00"), exists=False),
        9: ProductSnapshot(product_id=9, name="Monitor", price=Decimal("899.00"), in_stock=False),
    })


@pytest.fixture
def count_rows(db):
    """Number of rows currently in cart_sessions"""
    def _count():
        db.expire_all()
        return db.query(CartSessionModel).count()
    return _count

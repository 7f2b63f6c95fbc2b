import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("BREVO_API_KEY", "")

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from coauthor import models  # noqa: F401
from coauthor.database import get_session
from coauthor.dependencies.gateways import get_bank_gateway, get_wallet_gateway
from coauthor.main import app
from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.models.coupon import Coupon
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.models.user import User
from coauthor.services.bank_verify_gateway import BankVerifyGateway
from coauthor.services.wallet_gateway import WalletGateway
from coauthor.utils.token import get_current_user
from helpers import MERCHANT_ID, SALT_KEY, FakeHttp


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


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def http(monkeypatch):
    fake = FakeHttp()
    monkeypatch.setattr(requests, "request", fake)
    return fake


@pytest.fixture
def wallet_gateway():
    return WalletGateway(
        merchant_id=MERCHANT_ID,
        salt_key=SALT_KEY,
        key_index=1,
        base_url="https://wallet.test/pg",
        timeout=5,
    )


@pytest.fixture
def bank_gateway():
    return BankVerifyGateway(
        client_id="client-id",
        client_secret="client-secret",
        verify_url="https://verify.test/bank-account/sync",
        timeout=5,
    )


@pytest.fixture
def client(session, wallet_gateway, bank_gateway):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_wallet_gateway] = lambda: wallet_gateway
    app.dependency_overrides[get_bank_gateway] = lambda: bank_gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return client
    return _login


def _add(session, obj):
    session.add(obj)
    session.commit()
    session.refresh(obj)
    return obj


@pytest.fixture
def buyer(session):
    return _add(session, User(first_name="Asha", last_name="Rao", email="asha@example.com"))


@pytest.fixture
def other_buyer(session):
    return _add(session, User(first_name="Vikram", last_name="Shetty", email="vikram@example.com"))


@pytest.fixture
def admin(session):
    return _add(session, User(first_name="Store", last_name="Admin", email="admin@example.com", role="admin"))


@pytest.fixture
def make_book(session):
    def _make(prices=(10000, 9000), title="The Monsoon Anthology", status="active", genre="Fiction"):
        pricing = [{"number": i, "price": price} for i, price in enumerate(prices, start=1)]
        return _add(session, UpcomingBook(
            title=title,
            slug=title.lower().replace(" ", "-"),
            genre=genre,
            total_positions=len(pricing),
            position_pricing=pricing,
            status=status,
        ))
    return _make


@pytest.fixture
def book(make_book):
    return make_book()


@pytest.fixture
def make_coupon(session):
    def _make(code="SAVE10", discount_type="percentage", discount_value=10, **kwargs):
        return _add(session, Coupon(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            **kwargs,
        ))
    return _make


@pytest.fixture
def make_purchase(session):
    def _make(book, user, position_number=1, status="pending", payment_id=None,
              payment_method="wallet", total_amount=None, payment_details=None):
        price = book.price_for(position_number)
        return _add(session, AuthorshipPurchase(
            book_id=book.id,
            user_id=user.id,
            position_number=position_number,
            base_amount=price,
            total_amount=total_amount if total_amount is not None else price,
            payment_status=status,
            payment_id=payment_id,
            payment_method=payment_method,
            payment_details=payment_details or {},
            buyer_name=user.full_name,
            phone_number="9876543210",
        ))
    return _make

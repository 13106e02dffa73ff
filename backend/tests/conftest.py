"""
Pytest fixtures for item tracker backend tests.

Provides test database setup, user fixtures, and test client.
"""

from datetime import date
from decimal import Decimal

import pytest
from itemtracker import create_app
from itemtracker.extensions import db
from itemtracker.models import User, Item, ItemCategory
from itemtracker.services.auth_service import hash_password


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SNAPSHOT_SCHEDULER_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username: str, email: str) -> User:
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(PASSWORD),
        is_verified=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session):
    """First account."""
    return _make_user(db_session, "user_a", "user_a@example.com")


@pytest.fixture(scope='function')
def user_b(db_session):
    """Second account, used to prove per-user isolation."""
    return _make_user(db_session, "user_b", "user_b@example.com")


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory for items inserted directly (bypasses duplicate detection)."""
    def _make(user, name="Widget", quantity=10, price="12.00", currency="USD",
              purchase_price="5.00", category=ItemCategory.IN_STOCK.value, **extra):
        item = Item(
            user_id=user.id,
            name=name,
            quantity=quantity,
            price_per_unit=Decimal(price),
            currency=currency,
            purchase_price=Decimal(purchase_price),
            purchase_currency=currency,
            category=category,
            **extra,
        )
        db_session.add(item)
        db_session.commit()
        return item
    return _make


@pytest.fixture(scope='function')
def headers_a(client, user_a):
    """Authorization headers for user_a."""
    return auth_headers(get_auth_token(client, "user_a", PASSWORD))


@pytest.fixture(scope='function')
def headers_b(client, user_b):
    return auth_headers(get_auth_token(client, "user_b", PASSWORD))


@pytest.fixture(scope='function')
def today_str():
    return date.today().isoformat()


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}

"""
Pytest fixtures for LiveMart backend tests.

Provides an app wired to in-memory SQLite and fakeredis, a test client,
and factories for users, products and inventory.
"""

import fakeredis
import pytest

from livemart import create_app
from livemart.extensions import db, get_auth_service, get_token_service
from livemart.models import Product, InventoryRecord


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'JWT_ACCESS_SECRET': 'test-access-secret',
    'JWT_REFRESH_SECRET': 'test-refresh-secret',
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='function')
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(scope='function')
def app(redis_client):
    """Create application for testing; fresh schema per test."""
    app = create_app(TEST_CONFIG, redis_client=redis_client)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def auth_service(app):
    return get_auth_service()


@pytest.fixture(scope='function')
def token_service(app):
    return get_token_service()


_phone_counter = iter(range(9800000001, 9899999999))


def make_user(role="CUSTOMER", email=None, **details):
    """Create an active user directly through the auth service."""
    phone = f"+91{next(_phone_counter)}"
    if role == "RETAILER":
        details.setdefault("business_name", "Corner Store")
    elif role == "WHOLESALER":
        details.setdefault("business_name", "Bulk Traders")
        details.setdefault("gstin", "29ABCDE1234F1Z5")
        details.setdefault("bank_details", {
            "account_number": "1234567890",
            "ifsc_code": "HDFC0001234",
            "bank_name": "HDFC",
            "account_holder_name": "Bulk Traders",
        })
    return get_auth_service().create_user(
        email=email or f"{role.lower()}-{phone[3:]}@example.com",
        phone=phone,
        name=f"Test {role.title()}",
        password=PASSWORD,
        role=role,
        details_payload=details,
    )


@pytest.fixture(scope='function')
def customer(db_session):
    return make_user("CUSTOMER", email="customer@example.com")


@pytest.fixture(scope='function')
def retailer(db_session):
    return make_user("RETAILER", email="retailer@example.com")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user("ADMIN", email="admin@example.com")


@pytest.fixture(scope='function')
def product(db_session, retailer):
    product = Product(
        name="Basmati Rice",
        category="Grocery",
        unit="kg",
        base_price_cents=12000,
        created_by_user_id=retailer.id,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def inventory(db_session, retailer, product):
    record = InventoryRecord(
        product_id=product.id,
        owner_id=retailer.id,
        current_stock=20,
        reserved_stock=0,
        reorder_level=5,
        selling_price_cents=10000,
    )
    db_session.add(record)
    db_session.commit()
    return record


def get_tokens(client, email: str, password: str = PASSWORD) -> dict:
    """Helper to log in and return the token pair."""
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.json
    return response.json['data']['tokens']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_tokens(client, customer.email)['access_token'])


@pytest.fixture(scope='function')
def retailer_headers(client, retailer):
    return auth_headers(get_tokens(client, retailer.email)['access_token'])


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_tokens(client, admin.email)['access_token'])

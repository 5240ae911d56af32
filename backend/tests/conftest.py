"""
Pytest fixtures for storefront backend tests.

Provides the application on an in-memory database, a per-test table wipe,
user/admin/product fixtures and auth helpers.
"""

from decimal import Decimal

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import User, Product, Category, Discount, CouponCode
from storefront.services.auth_service import hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'ADMIN_TOKEN_MAX_AGE': 86400,
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


def make_user(session, email, *, name="Test User", is_admin=False, is_active=True, is_registered=True):
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(PASSWORD),
        is_admin=is_admin,
        is_active=is_active,
        is_registered=is_registered,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    """Registered, active customer."""
    return make_user(db_session, "shopper@example.com", name="Shopper")


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Registered, active administrator."""
    return make_user(db_session, "admin@example.com", name="Admin", is_admin=True)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Shirts", slug="shirts", is_active=True)
    db_session.add(cat)
    db_session.commit()
    return cat


def make_product(session, sku, price, *, category=None, sale_price=None, manage_stock=False, stock_quantity=0):
    product = Product(
        category_id=category.id if category else None,
        name=f"Product {sku}",
        sku=sku,
        price=Decimal(price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        is_active=True,
        manage_stock=manage_stock,
        stock_quantity=stock_quantity,
        in_stock=True,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, category):
    """A 100.00 product without stock management."""
    return make_product(db_session, "TEE-001", "100.00", category=category)


def make_discount(session, *, products=(), **fields):
    values = dict(name="Discount", type="percentage", value=Decimal("10"), is_active=True, usage_count=0)
    values.update(fields)
    discount = Discount(**values)
    discount.products = list(products)
    session.add(discount)
    session.commit()
    return discount


def make_coupon(session, code, **fields):
    values = dict(name=f"Coupon {code}", code=code, type="percentage", value=Decimal("10"), is_active=True, usage_count=0)
    values.update(fields)
    coupon = CouponCode(**values)
    session.add(coupon)
    session.commit()
    return coupon


def login(client, email: str, password: str = PASSWORD, login_type: str = "web", **extra) -> dict:
    """Helper to log in through the API; returns the JSON body."""
    payload = {'email': email, 'password': password, 'login_type': login_type}
    payload.update(extra)
    response = client.post('/api/auth/login', json=payload)
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def admin_login(client, email: str, password: str = PASSWORD) -> str:
    response = client.post('/api/admin/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def admin_headers(token: str) -> dict:
    return {'AdminToken': token}

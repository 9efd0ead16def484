"""
Pytest fixtures for LSMS backend tests.

Provides an in-memory database, the Flask test client, Owner/Seller users with
bearer tokens, and a small stocked catalogue.
"""

import pytest

from lsms import create_app
from lsms.extensions import db
from lsms.models import Category, ExpenseCategory, User
from lsms.services.auth_service import hash_password
from lsms.services import products_service, session_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BUSINESS_TIMEZONE': 'UTC',
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


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


def _make_user(db_session, password_hash, *, name, email, role):
    user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Owner One", email="owner@test.local", role="OWNER")


@pytest.fixture(scope='function')
def seller(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Seller One", email="seller@test.local", role="SELLER")


@pytest.fixture(scope='function')
def second_seller(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Seller Two", email="seller2@test.local", role="SELLER")


def auth_headers(user) -> dict:
    """Bearer header for a fresh session of user."""
    _, token = session_service.create_session(user_id=user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def owner_headers(owner):
    return auth_headers(owner)


@pytest.fixture(scope='function')
def seller_headers(seller):
    return auth_headers(seller)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Whiskey", description="Whiskey and bourbon")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def expense_category(db_session):
    cat = ExpenseCategory(name="Utilities", description="Electricity, water")
    db_session.add(cat)
    db_session.commit()
    return cat


def make_product(owner, *, sku, name, cost, price, stock=0, category_id=None, reorder_level=None):
    """Create through the service so opening stock is booked as a movement."""
    patch = {
        "sku": sku,
        "name": name,
        "cost_price_cents": cost,
        "selling_price_cents": price,
        "current_stock": stock,
        "category_id": category_id,
    }
    if reorder_level is not None:
        patch["reorder_level"] = reorder_level
    return products_service.create_product(patch=patch, actor_id=owner.id)


@pytest.fixture(scope='function')
def whisky(owner, category):
    """Cost 1000.00, price 1500.00, 10 in stock."""
    return make_product(
        owner, sku="JWB-750", name="Johnnie Walker Black 750ml",
        cost=100000, price=150000, stock=10, category_id=category.id,
    )


@pytest.fixture(scope='function')
def beer(owner):
    """Cost 150.00, price 250.00, 48 in stock."""
    return make_product(owner, sku="TUS-500", name="Tusker Lager 500ml", cost=15000, price=25000, stock=48)

"""
Pytest fixtures for stockroom backend tests.

Provides test database setup, staff accounts with bearer tokens, a sample
product with variants, and the test client.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Product, ProductVariant, User
from stockroom.services.auth_service import hash_password
from stockroom.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
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


def _make_user(db_session, username, role):
    user = User(username=username, password_hash=hash_password("secret123"), role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "boss", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user(db_session, "anna", "manager")


def _headers_for(user):
    _, token = session_service.create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return _headers_for(manager_user)


@pytest.fixture(scope='function')
def product(db_session):
    """
    Satin blouse with three variants:
    - BLACK/40/single   stock 8
    - BLACK/42/single   stock 3
    - BLACK/S/wholesale stock 20
    """
    p = Product(
        name="Fluid Satin Blouse",
        ref="HNQ-TOP-001",
        category="tops",
        price=50.0,
        wholesale_price=30.0,
    )
    p.variants = [
        ProductVariant(color="BLACK", size="40", channel="single", stock=8),
        ProductVariant(color="BLACK", size="42", channel="single", stock=3),
        ProductVariant(color="BLACK", size="S", channel="wholesale", stock=20),
    ]
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def second_product(db_session):
    p = Product(name="Pleated Midi Skirt", ref="HNQ-SKT-002", category="skirts", price=80.0)
    p.variants = [
        ProductVariant(color="NAVY", size="38", channel="single", stock=30),
    ]
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Returns a lookup for the current committed stock of one variant."""
    def lookup(product_id, color, size, channel):
        db_session.expire_all()
        variant = db_session.query(ProductVariant).filter_by(
            product_id=product_id, color=color, size=size, channel=channel
        ).first()
        return None if variant is None else variant.stock
    return lookup

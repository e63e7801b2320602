"""
Pytest fixtures for service station backend tests.

Provides test database setup, users for every role with bearer headers,
catalog factories and the test client.
"""

import bcrypt
import pytest
from station import create_app
from station.extensions import db
from station.models import User, Product, Service
from station.services.auth_service import create_access_token


TEST_PASSWORD = "password123"
# Low cost factor keeps fixture setup fast; verify_password accepts any cost
_TEST_PASSWORD_HASH = bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET_KEY': 'test-jwt-secret',
        'DEFAULT_TAX_RATE': 0.18,
        'LOG_LEVEL': 'WARNING',
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


@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(role: str = "staff", email: str | None = None, name: str | None = None, is_active: bool = True):
        user = User(
            name=name or f"{role.title()} User",
            email=email or f"{role}@station.test",
            password_hash=_TEST_PASSWORD_HASH,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("admin")


@pytest.fixture(scope='function')
def staff_user(make_user):
    return make_user("staff")


@pytest.fixture(scope='function')
def inventory_user(make_user):
    return make_user("inventory_manager")


@pytest.fixture(scope='function')
def cashier_user(make_user):
    return make_user("cashier")


def auth_headers(user: User) -> dict:
    """Bearer header for a user (token minted directly, no login round trip)."""
    return {'Authorization': f'Bearer {create_access_token(user)}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return auth_headers(staff_user)


@pytest.fixture(scope='function')
def inventory_headers(inventory_user):
    return auth_headers(inventory_user)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return auth_headers(cashier_user)


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name: str = "Engine Oil 5W-30", price: float = 25.99, quantity: int = 50,
              threshold: int = 5, category: str = "oil", is_active: bool = True):
        product = Product(
            name=name,
            price=price,
            category=category,
            quantity_in_stock=quantity,
            low_stock_threshold=threshold,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_service(db_session):
    def _make(name: str = "Full Service", price: float = 49.99, category: str = "maintenance",
              duration: int = 60, is_active: bool = True):
        service = Service(
            name=name,
            price=price,
            category=category,
            duration=duration,
            is_active=is_active,
        )
        db_session.add(service)
        db_session.commit()
        return service
    return _make

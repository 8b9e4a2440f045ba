"""
Pytest fixtures for PharmaPOS backend tests.

Provides the app on in-memory SQLite, a per-test table reset, one signed-in
user per role, and small catalog/stock factories.
"""

from datetime import date

import pytest

from pharmapos import create_app
from pharmapos.config import Config
from pharmapos.extensions import db
from pharmapos.models import Category, Supplier, Product, ProductBatch
from pharmapos.permissions import ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER, ROLE_CASHIER
from pharmapos.services import auth_service, session_service, inventory_service


PASSWORD = "Password123!"


class UnitTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    EXPOSE_RESET_TOKENS = True
    BCRYPT_LOG_ROUNDS = 4
    BUSINESS_TIMEZONE = "UTC"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(UnitTestConfig)

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
    """Empty every table before the test; the schema is kept."""
    db.session.remove()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


# =============================================================================
# Users and sessions
# =============================================================================

def make_user(email: str, role: str, full_name: str | None = None):
    return auth_service.create_user(email, PASSWORD, role=role, full_name=full_name)


def token_for(user) -> str:
    _session, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def super_admin(db_session):
    return make_user("admin@pharmapos.test", ROLE_SUPER_ADMIN, "Ada Admin")


@pytest.fixture(scope='function')
def stock_manager(db_session):
    return make_user("manager@pharmapos.test", ROLE_STOCK_MANAGER, "Sam Stock")


@pytest.fixture(scope='function')
def cashier(db_session):
    return make_user("cashier@pharmapos.test", ROLE_CASHIER, "Casey Till")


@pytest.fixture(scope='function')
def other_cashier(db_session):
    return make_user("cashier2@pharmapos.test", ROLE_CASHIER, "Robin Till")


@pytest.fixture(scope='function')
def admin_headers(super_admin):
    return auth_headers(token_for(super_admin))


@pytest.fixture(scope='function')
def manager_headers(stock_manager):
    return auth_headers(token_for(stock_manager))


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return auth_headers(token_for(cashier))


@pytest.fixture(scope='function')
def other_cashier_headers(other_cashier):
    return auth_headers(token_for(other_cashier))


# =============================================================================
# Catalog and stock
# =============================================================================

@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Analgesics", is_active=True)
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def supplier(db_session):
    sup = Supplier(name="MedSupply Ltd", email="orders@medsupply.test", is_active=True)
    db_session.add(sup)
    db_session.commit()
    return sup


def make_product(name: str = "Paracetamol 500mg", barcode: str | None = None,
                 category_id: int | None = None, min_stock: int = 0) -> Product:
    product = Product(
        name=name,
        barcode=barcode,
        category_id=category_id,
        min_stock=min_stock,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product


def make_batch(product: Product, *, quantity: int, cost: int = 400, price: int = 1000,
               batch_number: str | None = None, expiry_date: date | None = None) -> ProductBatch:
    """Book a batch through the ledger so quantity and movements agree."""
    data = inventory_service.create_batch(
        product_id=product.id,
        batch_number=batch_number or f"B-{product.id}-{quantity}-{price}",
        quantity=quantity,
        cost_price_cents=cost,
        selling_price_cents=price,
        expiry_date=expiry_date,
    )
    return db.session.get(ProductBatch, data["id"])


@pytest.fixture(scope='function')
def product(db_session, category):
    return make_product(barcode="5012345678900", category_id=category.id)


@pytest.fixture(scope='function')
def batch(product):
    """Ten units at 10.00 each."""
    return make_batch(product, quantity=10, price=1000, batch_number="LOT-001")


@pytest.fixture(scope='function')
def new_product(db_session):
    """Factory fixture: new_product(name=..., barcode=..., min_stock=...)."""
    return make_product


@pytest.fixture(scope='function')
def new_batch(db_session):
    """Factory fixture: new_batch(product, quantity=..., price=..., expiry_date=...)."""
    return make_batch


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory fixture: signed-in Authorization headers for any user."""
    def _headers(user):
        return auth_headers(token_for(user))
    return _headers

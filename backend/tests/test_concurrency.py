"""
Concurrency tests.

Several tills race for the last unit of a batch, and two Super Admins race to
remove each other. Each thread runs in its own app context (and therefore its
own database session) against a file-backed SQLite database, so the
conditional UPDATEs are exercised across real connections.
"""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from pharmapos import create_app
from pharmapos.extensions import db
from pharmapos.models import Product, ProductBatch, Sale, InventoryMovement, DocumentSequence, User, Profile
from pharmapos.permissions import ROLE_CASHIER, ROLE_SUPER_ADMIN
from pharmapos.services import auth_service, inventory_service, sales_service, settings_service, user_service
from pharmapos.services.inventory_service import InsufficientStockError
from pharmapos.validation import ConflictError

from conftest import UnitTestConfig


TILLS = 4


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(UnitTestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.sqlite3'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        settings_service.get_settings()
        db.session.add(DocumentSequence(document_type="SALE", next_number=1))
        db.session.commit()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _seed(app, quantity):
    with app.app_context():
        cashiers = [
            auth_service.create_user(f"till{i}@pharmapos.test", "Password123!", role=ROLE_CASHIER).id
            for i in range(TILLS)
        ]
        product = Product(name="Insulin Pen", is_active=True)
        db.session.add(product)
        db.session.commit()
        batch = inventory_service.create_batch(
            product_id=product.id,
            batch_number="INS-1",
            quantity=quantity,
            cost_price_cents=2000,
            selling_price_cents=2500,
        )
        return cashiers, batch["id"]


def _race(app, cashiers, batch_id):
    barrier = threading.Barrier(len(cashiers))
    results = []
    lock = threading.Lock()

    def till(cashier_id):
        with app.app_context():
            barrier.wait()
            try:
                sales_service.settle_sale(
                    cashier_id=cashier_id,
                    items=[{"batch_id": batch_id, "quantity": 1}],
                    payment_method="cash",
                )
                outcome = "sold"
            except InsufficientStockError:
                outcome = "insufficient"
            except OperationalError:
                outcome = "locked"
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=till, args=(c,)) for c in cashiers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


class TestLastUnitRace:

    def test_only_one_till_sells_the_last_unit(self, file_app):
        cashiers, batch_id = _seed(file_app, quantity=1)

        results = _race(file_app, cashiers, batch_id)

        assert len(results) == TILLS
        assert results.count("sold") == 1
        assert "locked" not in results

        with file_app.app_context():
            assert db.session.get(ProductBatch, batch_id).quantity == 0
            assert db.session.query(Sale).count() == 1
            assert db.session.query(InventoryMovement).filter_by(change_type="sale").count() == 1
            assert inventory_service.verify_ledger() == []

    def test_stock_never_goes_negative(self, file_app):
        cashiers, batch_id = _seed(file_app, quantity=2)

        results = _race(file_app, cashiers, batch_id)

        assert results.count("sold") == 2
        with file_app.app_context():
            assert db.session.get(ProductBatch, batch_id).quantity == 0
            receipts = {s.receipt_number for s in db.session.query(Sale).all()}
            assert len(receipts) == 2
            assert inventory_service.verify_ledger() == []


# =============================================================================
# LAST SUPER ADMIN
# =============================================================================


def _seed_super_admins(app):
    with app.app_context():
        return [
            auth_service.create_user(f"owner{i}@pharmapos.test", "Password123!", role=ROLE_SUPER_ADMIN).id
            for i in range(2)
        ]


def _remove_each_other(app, admins, action):
    barrier = threading.Barrier(len(admins))
    results = []
    lock = threading.Lock()

    def admin(actor_id, target_id):
        with app.app_context():
            barrier.wait()
            try:
                action(actor_id, target_id)
                outcome = "removed"
            except ConflictError:
                outcome = "conflict"
            except OperationalError:
                outcome = "locked"
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    first, second = admins
    threads = [
        threading.Thread(target=admin, args=(first, second)),
        threading.Thread(target=admin, args=(second, first)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def _active_super_admins(app):
    with app.app_context():
        return (
            db.session.query(User)
            .join(Profile, Profile.user_id == User.id)
            .filter(Profile.role == ROLE_SUPER_ADMIN, User.is_active.is_(True))
            .count()
        )


class TestLastSuperAdminRace:

    def test_mutual_demotion_leaves_one(self, file_app):
        admins = _seed_super_admins(file_app)

        results = _remove_each_other(
            file_app, admins,
            lambda actor, target: user_service.change_role(user_id=target, role=ROLE_CASHIER, actor_id=actor),
        )

        assert sorted(results) == ["conflict", "removed"]
        assert _active_super_admins(file_app) == 1

    def test_mutual_deactivation_leaves_one(self, file_app):
        admins = _seed_super_admins(file_app)

        results = _remove_each_other(
            file_app, admins,
            lambda actor, target: user_service.set_active(user_id=target, active=False, actor_id=actor),
        )

        assert sorted(results) == ["conflict", "removed"]
        assert _active_super_admins(file_app) == 1

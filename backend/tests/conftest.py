"""
Pytest fixtures for taproom backend tests.

Provides the application on in-memory SQLite, a clean database per test,
factories for staff, products and kegs, and a ledger store that fails
chosen writes on demand so compensation paths can be exercised.
"""

import pytest

from taproom import create_app
from taproom.errors import LedgerWriteError
from taproom.extensions import db
from taproom.models import Product, User
from taproom.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_SERVER
from taproom.models.catalog import PRODUCT_KEG, PRODUCT_SERVICE, PRODUCT_STOCKED
from taproom.services.ledger_store import LedgerStore


class FlakyLedgerStore(LedgerStore):
    """
    LedgerStore that raises LedgerWriteError for scheduled (operation, table) pairs.

    store.fail("insert_many", "sale_items") makes the next insert_many on
    sale_items fail before anything is written. Operations: insert,
    insert_many, update (covers update and update_with), delete.
    """

    def __init__(self):
        super().__init__()
        self.failures = {}
        self.injected = []

    def fail(self, operation, table, times=1):
        self.failures[(operation, table)] = times

    def _maybe_fail(self, operation, table):
        remaining = self.failures.get((operation, table), 0)
        if remaining:
            self.failures[(operation, table)] = remaining - 1
            self.injected.append((operation, table))
            raise LedgerWriteError(details={"table": table, "operation": operation, "injected": True})

    def insert(self, table, values):
        self._maybe_fail("insert", table)
        return super().insert(table, values)

    def insert_many(self, table, rows):
        self._maybe_fail("insert_many", table)
        return super().insert_many(table, rows)

    def update_with(self, table, row_id, mutate, *, lock=True):
        self._maybe_fail("update", table)
        return super().update_with(table, row_id, mutate, lock=lock)

    def delete(self, table, row_id):
        self._maybe_fail("delete", table)
        return super().delete(table, row_id)


class InterleavingLedgerStore(LedgerStore):
    """
    LedgerStore that runs another terminal's work just before a chosen write.

    store.before("insert", "time_logs", lambda: ...) runs the callable once,
    ahead of the next insert on time_logs. The hook is removed before it runs,
    so writes made inside it go straight through.
    """

    def __init__(self):
        super().__init__()
        self.hooks = {}

    def before(self, operation, table, action):
        self.hooks[(operation, table)] = action

    def _run_hook(self, operation, table):
        action = self.hooks.pop((operation, table), None)
        if action is not None:
            action()

    def insert(self, table, values):
        self._run_hook("insert", table)
        return super().insert(table, values)

    def update_with(self, table, row_id, mutate, *, lock=True):
        self._run_hook("update", table)
        return super().update_with(table, row_id, mutate, lock=lock)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0,
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
def flaky_store(app, db_session):
    """Swap the application's ledger store for a FlakyLedgerStore for one test."""
    original = app.extensions["ledger_store"]
    store = FlakyLedgerStore()
    app.extensions["ledger_store"] = store
    yield store
    app.extensions["ledger_store"] = original


@pytest.fixture(scope='function')
def interleaving_store(app, db_session):
    """Swap in an InterleavingLedgerStore for one test."""
    original = app.extensions["ledger_store"]
    store = InterleavingLedgerStore()
    app.extensions["ledger_store"] = store
    yield store
    app.extensions["ledger_store"] = original


# =============================================================================
# FACTORIES
# =============================================================================


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(name=None, role=ROLE_CASHIER, **kwargs):
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            email=kwargs.pop("email", f"user{counter['n']}@taproom.test"),
            role=role,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("Alice Admin", role=ROLE_ADMIN)


@pytest.fixture
def manager(make_user):
    return make_user("Mo Manager", role=ROLE_MANAGER)


@pytest.fixture
def cashier(make_user):
    return make_user("Cara Cashier", role=ROLE_CASHIER)


@pytest.fixture
def server(make_user):
    return make_user("Sam Server", role=ROLE_SERVER)


@pytest.fixture
def make_product(db_session):
    def _make(name="Bottled Lager", price_cents=25000, stock=10, product_type=PRODUCT_STOCKED, **kwargs):
        product = Product(name=name, price_cents=price_cents, stock=stock, product_type=product_type, **kwargs)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def keg_product(make_product):
    """20 L keg product."""
    return make_product(
        name="Lager Keg 20L", price_cents=0, stock=0, product_type=PRODUCT_KEG,
        keg_capacity=20, keg_capacity_unit="L",
    )


@pytest.fixture
def pint(make_product, keg_product):
    """500 ml serving drawn from keg_product."""
    return make_product(
        name="Lager Pint", price_cents=30000, stock=0, product_type=PRODUCT_SERVICE,
        linked_keg_product_id=keg_product.id, serving_size=500, serving_size_unit="ml",
    )


@pytest.fixture
def tapped_keg(keg_product, admin):
    from taproom.services import keg_service

    keg = keg_service.add_keg_instances(keg_product.id, 1, admin.id)[0]
    return keg_service.tap_keg(keg.id, admin.id)


@pytest.fixture
def headers():
    def _headers(user):
        return {"X-User-Id": str(user.id)}

    return _headers

"""Ledger store: re-reads, guarded updates, retry on version conflicts."""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from taproom.errors import InventoryRejection, LedgerConflict, RecordNotFound
from taproom.extensions import db
from taproom.models import Product
from taproom.services.ledger_store import LedgerStore, run_with_retry
from taproom.time_utils import utcnow


def test_get_rereads_authoritative_state(make_product):
    product = make_product(stock=5)
    db.session.execute(Product.__table__.update().where(Product.id == product.id).values(stock=9))
    db.session.commit()

    assert LedgerStore().get("products", product.id).stock == 9


def test_require_raises_not_found(db_session):
    with pytest.raises(RecordNotFound):
        LedgerStore().require("products", 12345)


def test_update_with_refusal_writes_nothing(make_product):
    product = make_product(stock=1)

    def refuse(row):
        raise InventoryRejection("nope")

    with pytest.raises(InventoryRejection):
        LedgerStore().update_with("products", product.id, refuse)
    assert db.session.get(Product, product.id, populate_existing=True).stock == 1


def test_update_bumps_version(make_product):
    product = make_product(stock=1)
    before = product.version_id
    updated = LedgerStore().update("products", product.id, {"stock": 4})
    assert updated.stock == 4
    assert updated.version_id == before + 1


def test_run_with_retry_retries_version_conflicts(app, db_session):
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise StaleDataError("conflict")
        return "ok"

    assert run_with_retry(flaky, session=db.session, attempts=3, backoff_base=0) == "ok"
    assert len(attempts) == 3


def test_run_with_retry_gives_up(app, db_session):
    def always():
        raise StaleDataError("conflict")

    with pytest.raises(StaleDataError):
        run_with_retry(always, session=db.session, attempts=2, backoff_base=0)


def test_delete_missing_row_returns_false(db_session):
    assert LedgerStore().delete("sales", 987) is False


def test_second_open_shift_is_refused_as_conflict(cashier):
    store = LedgerStore()
    values = {"user_id": cashier.id, "user_name": cashier.name, "clock_in_at": utcnow(), "status": "ONGOING"}
    store.insert("time_logs", values)

    with pytest.raises(LedgerConflict) as exc:
        store.insert("time_logs", dict(values, status="PENDING_APPROVAL"))

    assert exc.value.http_status == 409
    assert db.session.execute(db.text("SELECT COUNT(*) FROM time_logs")).scalar() == 1

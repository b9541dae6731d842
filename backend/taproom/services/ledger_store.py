# Overview: Row-oriented access to the ledger tables; every write commits on its own.

"""
Ledger Store

The core talks to persistence only through this class. It deliberately
exposes no cross-table transaction: each insert/update/delete is committed
immediately, so a multi-step operation must compensate for itself when a
later step fails (see compensation.py).

Reads always re-read authoritative state (populate_existing), never the
session's identity map, so guarded transitions read-verify-write instead of
read-cache-write.

Contended numeric fields (Product.stock, KegInstance.current_volume) go
through update_with(): the row is re-read under lock_for_update, the new
values are computed from the fresh row, and the write is version-checked.
Version conflicts and lock errors are retried with exponential backoff.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import CoreError, LedgerConflict, LedgerReadError, LedgerWriteError, RecordNotFound
from ..models import (
    ActivityLog,
    KegInstance,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Sale,
    SaleItem,
    TimeLog,
    User,
)

TABLES = {
    "users": User,
    "products": Product,
    "keg_instances": KegInstance,
    "sales": Sale,
    "sale_items": SaleItem,
    "time_logs": TimeLog,
    "purchase_orders": PurchaseOrder,
    "purchase_order_items": PurchaseOrderItem,
    "activity_logs": ActivityLog,
}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must redo its reads on each attempt.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


class LedgerStore:
    """get / list / insert / insert_many / update / update_with / delete per table."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def model_for(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown ledger table: {table}") from None

    # ------------------------------------------------------------------ reads

    def get(self, table: str, row_id: int | None):
        if row_id is None:
            return None
        model = self.model_for(table)
        try:
            return self.session.get(model, row_id, populate_existing=True)
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error("Ledger read on %s id=%s failed: %s", table, row_id, exc)
            raise LedgerReadError(details={"table": table, "operation": "get"}) from exc

    def require(self, table: str, row_id: int | None, label: str | None = None):
        """get() that raises RecordNotFound instead of returning None."""
        row = self.get(table, row_id)
        if row is None:
            label = label or table.rstrip("s").replace("_", " ")
            raise RecordNotFound(f"{label.capitalize()} not found", details={"table": table, "id": row_id})
        return row

    def list(
        self,
        table: str,
        *,
        criteria: Iterable[Any] = (),
        order_by: Iterable[Any] = (),
        limit: int | None = None,
        **filters,
    ) -> list:
        model = self.model_for(table)
        try:
            query = self.session.query(model).populate_existing().filter_by(**filters)
            for criterion in criteria:
                query = query.filter(criterion)
            for clause in order_by:
                query = query.order_by(clause)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error("Ledger list on %s failed: %s", table, exc)
            raise LedgerReadError(details={"table": table, "operation": "list"}) from exc

    def first(self, table: str, **kwargs):
        rows = self.list(table, limit=1, **kwargs)
        return rows[0] if rows else None

    # ----------------------------------------------------------------- writes

    def insert(self, table: str, values: dict):
        model = self.model_for(table)

        def _op():
            row = model(**values)
            self.session.add(row)
            self.session.commit()
            return row

        return self._write(table, "insert", _op)

    def insert_many(self, table: str, rows: list[dict]) -> list:
        """Insert several rows of one table as a single write (all or none)."""
        model = self.model_for(table)

        def _op():
            created = [model(**values) for values in rows]
            self.session.add_all(created)
            self.session.commit()
            return created

        return self._write(table, "insert_many", _op)

    def update(self, table: str, row_id: int, values: dict):
        """Overwrite the given columns of one row."""
        return self.update_with(table, row_id, lambda row: values, lock=False)

    def update_with(self, table: str, row_id: int, mutate: Callable[[Any], dict], *, lock: bool = True):
        """
        Re-read one row, compute new column values from it, and write them.

        mutate receives the freshly read row and returns the values to set.
        It may raise a CoreError to refuse the write; nothing is written then.
        """
        model = self.model_for(table)

        def _op():
            query = self.session.query(model).populate_existing().filter_by(id=row_id)
            if lock:
                query = lock_for_update(query)
            row = query.first()
            if row is None:
                raise RecordNotFound(f"{table} row {row_id} not found", details={"table": table, "id": row_id})
            for key, value in mutate(row).items():
                setattr(row, key, value)
            self.session.commit()
            return row

        return self._write(table, "update", _op)

    def delete(self, table: str, row_id: int) -> bool:
        model = self.model_for(table)

        def _op():
            row = self.session.get(model, row_id, populate_existing=True)
            if row is None:
                return False
            self.session.delete(row)
            self.session.commit()
            return True

        return self._write(table, "delete", _op)

    def _write(self, table: str, operation: str, op: Callable[[], Any]):
        config = current_app.config
        try:
            return run_with_retry(
                op,
                session=self.session,
                attempts=config.get("LEDGER_RETRY_ATTEMPTS", 3),
                backoff_base=config.get("LEDGER_RETRY_BACKOFF", 0.1),
            )
        except CoreError:
            self.session.rollback()
            raise
        except IntegrityError as exc:
            self.session.rollback()
            current_app.logger.warning("Ledger %s on %s refused by constraint: %s", operation, table, exc.orig)
            raise LedgerConflict(details={"table": table, "operation": operation}) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error("Ledger %s on %s failed: %s", operation, table, exc)
            raise LedgerWriteError(details={"table": table, "operation": operation}) from exc


def get_ledger_store() -> LedgerStore:
    """The store bound to the running application."""
    return current_app.extensions["ledger_store"]

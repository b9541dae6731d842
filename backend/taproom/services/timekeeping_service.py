# Overview: Service-layer operations for shift timekeeping and cash clearance.

"""
Timekeeping Service (Shift Clearance)

WHY: A shift is the unit of cash accountability. Employees clock in, clock
out by declaring the cash in their drawer, and a manager counts the cash and
approves or rejects the shift.

USER STATUS:   CLOCKED_OUT -> CLOCKED_IN -> AWAITING_CLEARANCE -> CLOCKED_OUT
               (ADMIN fast path: CLOCKED_IN -> CLOCKED_OUT)
TIME LOG:      ONGOING -> PENDING_APPROVAL -> COMPLETED | REJECTED
               REJECTED -> PENDING_APPROVAL (manager reopens for a fresh count)

INVARIANT: at most one ONGOING or PENDING_APPROVAL log per user.

Every transition writes the time log first and the user second. If the user
write fails, the log is put back to the values it had before (or deleted,
for clock-in) so a completed log never sits against a user still marked
clocked in. Guarded writes re-read the row they check.

A user marked CLOCKED_IN with no ONGOING log is a divergence. It is never
repaired here: the operation fails with StateDivergence and the caller is
sent to the state healer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import (
    InvalidRequest,
    InvalidTransition,
    LedgerConflict,
    LedgerWriteError,
    PartialWriteError,
    PermissionDenied,
    StateDivergence,
)
from ..models import Sale, TimeLog, User
from ..models.activity import CATEGORY_SHIFT
from ..models.auth import AWAITING_CLEARANCE, CLOCKED_IN, CLOCKED_OUT, ROLE_ADMIN, ROLE_MANAGER
from ..models.sales import PAYMENT_CARD, PAYMENT_CASH, PAYMENT_MPESA
from ..models.timekeeping import (
    LOG_COMPLETED,
    LOG_ONGOING,
    LOG_PENDING_APPROVAL,
    LOG_REJECTED,
    OPEN_LOG_STATUSES,
)
from taproom.time_utils import hours_between, utcnow
from .activity_service import append_activity
from .compensation import CompensatingTransaction
from .ledger_store import LedgerStore, get_ledger_store
from .sales_service import format_cents

APPROVER_ROLES = (ROLE_ADMIN, ROLE_MANAGER)


@dataclass(frozen=True)
class ExpectedSales:
    cash: int = 0
    card: int = 0
    mpesa: int = 0

    @property
    def total(self) -> int:
        return self.cash + self.card + self.mpesa

    def to_dict(self) -> dict:
        return {"cash": self.cash, "card": self.card, "mpesa": self.mpesa, "total": self.total}


@dataclass
class ShiftResult:
    time_log: TimeLog
    user: User | None

    def to_dict(self) -> dict:
        return {
            "time_log": self.time_log.to_dict(),
            "user": self.user.to_dict() if self.user is not None else None,
        }


def compute_expected_sales(user_id: int, since: datetime, *, store: LedgerStore | None = None) -> ExpectedSales:
    """Sales totals per payment method served by the user since `since`."""
    store = store or get_ledger_store()
    sales = store.list("sales", criteria=(Sale.occurred_at >= since,), served_by_id=user_id)
    totals = {PAYMENT_CASH: 0, PAYMENT_CARD: 0, PAYMENT_MPESA: 0}
    for sale in sales:
        totals[sale.payment_method] = totals.get(sale.payment_method, 0) + sale.total_cents
    return ExpectedSales(cash=totals[PAYMENT_CASH], card=totals[PAYMENT_CARD], mpesa=totals[PAYMENT_MPESA])


def find_open_log(user_id: int, *, statuses=OPEN_LOG_STATUSES, store: LedgerStore | None = None) -> TimeLog | None:
    store = store or get_ledger_store()
    return store.first(
        "time_logs",
        user_id=user_id,
        criteria=(TimeLog.status.in_(statuses),),
        order_by=(TimeLog.clock_in_at.desc(), TimeLog.id.desc()),
    )


def _validate_amount(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidRequest(f"{name} must be a non-negative amount in cents", details={name: value})


def _require_role(user: User, roles: tuple[str, ...], action: str) -> None:
    if user.role not in roles:
        raise PermissionDenied(
            f"{user.name} is not allowed to {action}",
            details={"user_id": user.id, "role": user.role, "required": list(roles)},
        )


def _ongoing_log_or_divergence(user: User, store: LedgerStore) -> TimeLog:
    log = find_open_log(user.id, statuses=(LOG_ONGOING,), store=store)
    if log is None:
        if user.time_clock_status == CLOCKED_IN:
            current_app.logger.warning(
                "User %s is %s but has no ongoing time log", user.id, user.time_clock_status,
            )
            raise StateDivergence(details={"user_id": user.id, "time_clock_status": user.time_clock_status})
        raise InvalidTransition(
            f"{user.name} has no ongoing shift (currently {user.time_clock_status})",
            details={"user_id": user.id, "time_clock_status": user.time_clock_status},
        )
    if user.time_clock_status != CLOCKED_IN:
        current_app.logger.warning(
            "User %s has ongoing time log %s but is %s", user.id, log.id, user.time_clock_status,
        )
        raise StateDivergence(details={
            "user_id": user.id,
            "time_clock_status": user.time_clock_status,
            "time_log_id": log.id,
        })
    return log


def _transition(name: str, log: TimeLog, expected_status: str, log_values: dict,
                user_id: int | None, user_values: dict | None, store: LedgerStore) -> ShiftResult:
    """
    Write the log transition, then the user. Restore the log's prior values
    if the user write fails.
    """
    prior = {key: getattr(log, key) for key in log_values}
    log_id = log.id

    def _mutate(row):
        if row.status != expected_status:
            raise InvalidTransition(
                f"Time log is {row.status}, expected {expected_status}",
                details={"time_log_id": row.id, "status": row.status},
            )
        return log_values

    tx = CompensatingTransaction(name)
    try:
        with tx:
            log = store.update_with("time_logs", log_id, _mutate)
            tx.on_failure(f"restore time log {log_id}", lambda: store.update("time_logs", log_id, prior))
            user = store.update("users", user_id, user_values) if user_id is not None else None
            tx.complete()
    except LedgerWriteError as exc:
        if tx.applied_compensations or tx.failed_compensations:
            current_app.logger.error("%s: user write failed, time log restore outcome %s", name, tx.outcome())
            raise PartialWriteError(details=tx.outcome()) from exc
        raise
    return ShiftResult(time_log=log, user=user)


def clock_in(user_id: int, *, store: LedgerStore | None = None) -> ShiftResult:
    store = store or get_ledger_store()

    # Authoritative re-read; another terminal may have changed the status.
    user = store.require("users", user_id, "user")
    if user.time_clock_status != CLOCKED_OUT:
        raise InvalidTransition(
            f"Cannot clock in. {user.name} is currently {user.time_clock_status}. "
            "Please ensure any pending shifts are cleared.",
            details={"user_id": user.id, "time_clock_status": user.time_clock_status},
        )

    open_log = find_open_log(user.id, store=store)
    if open_log is not None:
        current_app.logger.warning(
            "User %s is %s but has open time log %s (%s)",
            user.id, user.time_clock_status, open_log.id, open_log.status,
        )
        raise StateDivergence(details={"user_id": user.id, "time_log_id": open_log.id, "status": open_log.status})

    now = utcnow()

    def _flip(row):
        if row.time_clock_status != CLOCKED_OUT:
            raise InvalidTransition(
                f"Cannot clock in. {row.name} is currently {row.time_clock_status}.",
                details={"user_id": row.id, "time_clock_status": row.time_clock_status},
            )
        return {"time_clock_status": CLOCKED_IN, "clock_in_at": now}

    tx = CompensatingTransaction("clock in")
    try:
        with tx:
            try:
                log = store.insert("time_logs", {
                    "user_id": user.id,
                    "user_name": user.name,
                    "clock_in_at": now,
                    "status": LOG_ONGOING,
                })
            except LedgerConflict as exc:
                # Unique open-shift index: another terminal clocked this user in first.
                raise InvalidTransition(
                    f"Cannot clock in. {user.name} already has an open shift.",
                    details={"user_id": user.id},
                ) from exc
            tx.on_failure(f"delete time log {log.id}", lambda: store.delete("time_logs", log.id))
            user = store.update_with("users", user.id, _flip)
            tx.complete()
    except (LedgerWriteError, InvalidTransition) as exc:
        if tx.failed_compensations or (tx.applied_compensations and isinstance(exc, LedgerWriteError)):
            raise PartialWriteError(details=tx.outcome()) from exc
        raise

    append_activity(
        event_type="shift.clock_in",
        category=CATEGORY_SHIFT,
        description=f"User {user.name} clocked in.",
        entity_type="time_log",
        entity_id=log.id,
        actor=user,
        store=store,
    )
    return ShiftResult(time_log=log, user=user)


def request_clearance(user_id: int, declared_amount_cents: int, *, store: LedgerStore | None = None) -> ShiftResult:
    """Clock out and hand the shift to a manager for cash reconciliation."""
    store = store or get_ledger_store()
    _validate_amount("declared_amount_cents", declared_amount_cents)

    user = store.require("users", user_id, "user")
    log = _ongoing_log_or_divergence(user, store)

    now = utcnow()
    expected = compute_expected_sales(user.id, log.clock_in_at, store=store)
    difference = declared_amount_cents - expected.cash

    result = _transition(
        "request clearance",
        log,
        LOG_ONGOING,
        {
            "clock_out_at": now,
            "duration_hours": hours_between(log.clock_in_at, now),
            "status": LOG_PENDING_APPROVAL,
            "declared_amount_cents": declared_amount_cents,
            "expected_cash_cents": expected.cash,
            "expected_card_cents": expected.card,
            "expected_mpesa_cents": expected.mpesa,
            "difference_cents": difference,
        },
        user.id,
        {"time_clock_status": AWAITING_CLEARANCE, "clock_in_at": None},
        store,
    )

    append_activity(
        event_type="shift.clearance_requested",
        category=CATEGORY_SHIFT,
        description=f"User {user.name} clocked out and requested shift clearance.",
        entity_type="time_log",
        entity_id=log.id,
        actor=user,
        details=f"Declared {format_cents(declared_amount_cents)}, difference {format_cents(difference)}",
        store=store,
    )
    return result


def approve_shift(time_log_id: int, approver_id: int, counted_amount_cents: int, *,
                  store: LedgerStore | None = None) -> ShiftResult:
    """
    Complete a pending shift. The manager's physical count supersedes the
    employee's declaration. The log is completed even if its user was deleted.
    """
    store = store or get_ledger_store()
    _validate_amount("counted_amount_cents", counted_amount_cents)

    approver = store.require("users", approver_id, "approver")
    _require_role(approver, APPROVER_ROLES, "approve shifts")

    log = store.require("time_logs", time_log_id, "time log")
    if log.status != LOG_PENDING_APPROVAL:
        raise InvalidTransition(
            f"Only shifts pending approval can be approved (shift is {log.status})",
            details={"time_log_id": log.id, "status": log.status},
        )

    final_difference = counted_amount_cents - (log.expected_cash_cents or 0)
    user = store.get("users", log.user_id)
    if user is None:
        current_app.logger.info("Approving shift %s for deleted user %s", log.id, log.user_id)

    result = _transition(
        "approve shift",
        log,
        LOG_PENDING_APPROVAL,
        {
            "status": LOG_COMPLETED,
            "counted_amount_cents": counted_amount_cents,
            "difference_cents": final_difference,
            "approved_by_id": approver.id,
            "approved_by_name": approver.name,
        },
        user.id if user is not None else None,
        {"time_clock_status": CLOCKED_OUT} if user is not None else None,
        store,
    )

    append_activity(
        event_type="shift.approved",
        category=CATEGORY_SHIFT,
        description=f"Approved shift for {user.name if user else log.user_name or 'Deleted User'}.",
        entity_type="time_log",
        entity_id=log.id,
        actor=approver,
        details=f"Final difference: {format_cents(final_difference)}",
        store=store,
    )
    return result


def reject_shift(time_log_id: int, reason: str, *, manager_id: int | None = None,
                 store: LedgerStore | None = None) -> ShiftResult:
    """Reject a pending shift. The user stays AWAITING_CLEARANCE until a manager resolves it."""
    store = store or get_ledger_store()
    if not reason or not str(reason).strip():
        raise InvalidRequest("reason is required")

    manager = None
    if manager_id is not None:
        manager = store.require("users", manager_id, "manager")
        _require_role(manager, APPROVER_ROLES, "reject shifts")

    log = store.require("time_logs", time_log_id, "time log")
    if log.status != LOG_PENDING_APPROVAL:
        raise InvalidTransition(
            f"Only shifts pending approval can be rejected (shift is {log.status})",
            details={"time_log_id": log.id, "status": log.status},
        )

    user = store.get("users", log.user_id)
    result = _transition(
        "reject shift",
        log,
        LOG_PENDING_APPROVAL,
        {"status": LOG_REJECTED, "rejection_reason": str(reason).strip()},
        user.id if user is not None else None,
        {"time_clock_status": AWAITING_CLEARANCE} if user is not None else None,
        store,
    )

    append_activity(
        event_type="shift.rejected",
        category=CATEGORY_SHIFT,
        description=f"Rejected shift for {user.name if user else log.user_name or 'Deleted User'}.",
        entity_type="time_log",
        entity_id=log.id,
        actor=manager,
        details=f"Reason: {reason}",
        store=store,
    )
    return result


def reopen_rejected_shift(time_log_id: int, manager_id: int, *, store: LedgerStore | None = None) -> ShiftResult:
    """Put a rejected shift back in the approval queue so a manager can recount it."""
    store = store or get_ledger_store()
    manager = store.require("users", manager_id, "manager")
    _require_role(manager, APPROVER_ROLES, "reopen shifts")

    log = store.require("time_logs", time_log_id, "time log")
    if log.status != LOG_REJECTED:
        raise InvalidTransition(
            f"Only rejected shifts can be reopened (shift is {log.status})",
            details={"time_log_id": log.id, "status": log.status},
        )

    other = find_open_log(log.user_id, store=store)
    if other is not None:
        raise InvalidTransition(
            "User already has an open shift",
            details={"time_log_id": log.id, "open_time_log_id": other.id},
        )

    result = _transition(
        "reopen shift",
        log,
        LOG_REJECTED,
        {"status": LOG_PENDING_APPROVAL, "rejection_reason": None},
        None,
        None,
        store,
    )

    append_activity(
        event_type="shift.reopened",
        category=CATEGORY_SHIFT,
        description=f"Reopened rejected shift for {log.user_name or 'Deleted User'}.",
        entity_type="time_log",
        entity_id=log.id,
        actor=manager,
        details=f"Previous reason: {log.rejection_reason}" if log.rejection_reason else None,
        store=store,
    )
    return result


def admin_self_clock_out(user_id: int, *, store: LedgerStore | None = None) -> ShiftResult:
    """
    Admin shortcut: complete the shift immediately with the declared and
    counted cash equal to expected cash. No manager reconciliation.
    """
    store = store or get_ledger_store()
    user = store.require("users", user_id, "user")
    _require_role(user, (ROLE_ADMIN,), "clock out without clearance")

    log = _ongoing_log_or_divergence(user, store)

    now = utcnow()
    expected = compute_expected_sales(user.id, log.clock_in_at, store=store)

    result = _transition(
        "admin clock out",
        log,
        LOG_ONGOING,
        {
            "clock_out_at": now,
            "duration_hours": hours_between(log.clock_in_at, now),
            "status": LOG_COMPLETED,
            "declared_amount_cents": expected.cash,
            "counted_amount_cents": expected.cash,
            "expected_cash_cents": expected.cash,
            "expected_card_cents": expected.card,
            "expected_mpesa_cents": expected.mpesa,
            "difference_cents": 0,
            "approved_by_id": user.id,
            "approved_by_name": user.name,
        },
        user.id,
        {"time_clock_status": CLOCKED_OUT, "clock_in_at": None},
        store,
    )

    append_activity(
        event_type="shift.admin_clock_out",
        category=CATEGORY_SHIFT,
        description=f"Admin {user.name} clocked out.",
        entity_type="time_log",
        entity_id=log.id,
        actor=user,
        store=store,
    )
    return result


def get_clock_status(user_id: int, *, store: LedgerStore | None = None) -> dict:
    store = store or get_ledger_store()
    user = store.require("users", user_id, "user")
    open_log = find_open_log(user.id, store=store)
    last_rejected = None
    if user.time_clock_status == AWAITING_CLEARANCE and open_log is None:
        last_rejected = find_open_log(user.id, statuses=(LOG_REJECTED,), store=store)

    consistent = (
        (user.time_clock_status == CLOCKED_IN and open_log is not None and open_log.status == LOG_ONGOING)
        or (user.time_clock_status == CLOCKED_OUT and open_log is None)
        or (user.time_clock_status == AWAITING_CLEARANCE
            and (open_log is not None and open_log.status == LOG_PENDING_APPROVAL or last_rejected is not None))
    )
    return {
        "user": user.to_dict(),
        "status": user.time_clock_status,
        "open_time_log": open_log.to_dict() if open_log else None,
        "rejected_time_log": last_rejected.to_dict() if last_rejected else None,
        "consistent": consistent,
    }


def list_time_logs(*, user_id: int | None = None, status: str | None = None, limit: int = 500,
                   store: LedgerStore | None = None) -> list[TimeLog]:
    store = store or get_ledger_store()
    filters = {}
    if user_id is not None:
        filters["user_id"] = user_id
    if status is not None:
        filters["status"] = status
    return store.list("time_logs", order_by=(TimeLog.clock_in_at.desc(),), limit=limit, **filters)

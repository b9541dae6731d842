"""Shift state machine: clock-in, clearance, approval, rejection, admin clock-out."""

import pytest

from taproom.errors import (
    InvalidRequest,
    InvalidTransition,
    PartialWriteError,
    PermissionDenied,
    StateDivergence,
)
from taproom.extensions import db
from taproom.models import TimeLog, User
from taproom.models.auth import AWAITING_CLEARANCE, CLOCKED_IN, CLOCKED_OUT
from taproom.models.timekeeping import (
    LOG_COMPLETED,
    LOG_ONGOING,
    LOG_PENDING_APPROVAL,
    LOG_REJECTED,
    OPEN_LOG_STATUSES,
)
from taproom.services import timekeeping_service
from taproom.services.inventory_guard import OrderLine
from taproom.services.sales_service import SaleRequest, process_sale
from taproom.time_utils import utcnow


def fresh_user(user_id):
    return db.session.get(User, user_id, populate_existing=True)


def fresh_log(log_id):
    return db.session.get(TimeLog, log_id, populate_existing=True)


def open_logs(user_id):
    return db.session.query(TimeLog).filter(
        TimeLog.user_id == user_id, TimeLog.status.in_(OPEN_LOG_STATUSES)
    ).count()


def ring_up(product, server, payment_method):
    process_sale(SaleRequest(lines=[OrderLine(product.id, 1)], payment_method=payment_method, server_id=server.id))


@pytest.fixture
def scenario_c(make_product, cashier):
    """Cashier clocks in, sells 100.00 cash and 50.00 card, declares 90.00."""
    timekeeping_service.clock_in(cashier.id)
    ring_up(make_product(name="Cash item", price_cents=10000, stock=5), cashier, "CASH")
    ring_up(make_product(name="Card item", price_cents=5000, stock=5), cashier, "CARD")
    return timekeeping_service.request_clearance(cashier.id, 9000)


class TestClockIn:
    def test_creates_ongoing_log_and_mirrors_status(self, cashier):
        result = timekeeping_service.clock_in(cashier.id)

        assert result.time_log.status == LOG_ONGOING
        assert result.time_log.user_name == cashier.name
        assert result.user.time_clock_status == CLOCKED_IN
        assert result.user.clock_in_at == result.time_log.clock_in_at

    def test_cannot_clock_in_twice(self, cashier):
        timekeeping_service.clock_in(cashier.id)
        with pytest.raises(InvalidTransition):
            timekeeping_service.clock_in(cashier.id)
        assert open_logs(cashier.id) == 1

    def test_open_log_behind_clocked_out_user_is_divergence(self, cashier):
        db.session.add(TimeLog(user_id=cashier.id, user_name=cashier.name, clock_in_at=utcnow(), status=LOG_ONGOING))
        db.session.commit()

        with pytest.raises(StateDivergence):
            timekeeping_service.clock_in(cashier.id)
        assert open_logs(cashier.id) == 1

    def test_failed_user_write_deletes_new_log(self, flaky_store, cashier):
        flaky_store.fail("update", "users")

        with pytest.raises(PartialWriteError):
            timekeeping_service.clock_in(cashier.id)

        assert db.session.query(TimeLog).count() == 0
        assert fresh_user(cashier.id).time_clock_status == CLOCKED_OUT

    def test_concurrent_clock_in_leaves_one_open_shift(self, interleaving_store, cashier):
        interleaving_store.before("insert", "time_logs", lambda: timekeeping_service.clock_in(cashier.id))

        with pytest.raises(InvalidTransition):
            timekeeping_service.clock_in(cashier.id)

        assert open_logs(cashier.id) == 1
        assert fresh_user(cashier.id).time_clock_status == CLOCKED_IN

    def test_status_change_before_flip_deletes_new_log(self, interleaving_store, cashier):
        def _changed_elsewhere():
            db.session.query(User).filter_by(id=cashier.id).update({"time_clock_status": AWAITING_CLEARANCE})
            db.session.commit()

        interleaving_store.before("update", "users", _changed_elsewhere)

        with pytest.raises(InvalidTransition):
            timekeeping_service.clock_in(cashier.id)

        assert db.session.query(TimeLog).count() == 0
        assert fresh_user(cashier.id).time_clock_status == AWAITING_CLEARANCE


class TestClearance:
    def test_scenario_c(self, scenario_c, cashier):
        log = scenario_c.time_log
        assert log.status == LOG_PENDING_APPROVAL
        assert log.expected_sales == {"cash": 10000, "card": 5000, "mpesa": 0}
        assert log.declared_amount_cents == 9000
        assert log.difference_cents == -1000
        assert log.clock_out_at is not None
        assert fresh_user(cashier.id).time_clock_status == AWAITING_CLEARANCE
        assert fresh_user(cashier.id).clock_in_at is None

    def test_sales_before_clock_in_are_not_expected(self, make_product, cashier):
        ring_up(make_product(price_cents=10000), cashier, "CASH")
        timekeeping_service.clock_in(cashier.id)
        result = timekeeping_service.request_clearance(cashier.id, 0)
        assert result.time_log.expected_sales["cash"] == 0

    def test_requires_clocked_in_user(self, cashier):
        with pytest.raises(InvalidTransition):
            timekeeping_service.request_clearance(cashier.id, 0)

    def test_clocked_in_without_ongoing_log_is_divergence(self, make_user):
        stuck = make_user(time_clock_status=CLOCKED_IN, clock_in_at=utcnow())
        with pytest.raises(StateDivergence) as exc:
            timekeeping_service.request_clearance(stuck.id, 0)
        assert exc.value.message == "Session out of sync, please re-authenticate"
        assert db.session.query(TimeLog).count() == 0

    def test_negative_declaration_is_invalid(self, cashier):
        timekeeping_service.clock_in(cashier.id)
        with pytest.raises(InvalidRequest):
            timekeeping_service.request_clearance(cashier.id, -1)

    def test_failed_user_write_restores_ongoing_log(self, flaky_store, cashier):
        log = timekeeping_service.clock_in(cashier.id).time_log
        flaky_store.fail("update", "users")

        with pytest.raises(PartialWriteError):
            timekeeping_service.request_clearance(cashier.id, 500)

        restored = fresh_log(log.id)
        assert restored.status == LOG_ONGOING
        assert restored.clock_out_at is None
        assert restored.declared_amount_cents is None
        assert fresh_user(cashier.id).time_clock_status == CLOCKED_IN


class TestApproval:
    def test_scenario_d(self, scenario_c, manager, cashier):
        result = timekeeping_service.approve_shift(scenario_c.time_log.id, manager.id, 10000)

        assert result.time_log.status == LOG_COMPLETED
        assert result.time_log.difference_cents == 0
        assert result.time_log.counted_amount_cents == 10000
        assert result.time_log.approved_by_id == manager.id
        assert fresh_user(cashier.id).time_clock_status == CLOCKED_OUT
        assert open_logs(cashier.id) == 0

    def test_cashier_cannot_approve(self, scenario_c, make_user):
        other = make_user("Other Cashier")
        with pytest.raises(PermissionDenied):
            timekeeping_service.approve_shift(scenario_c.time_log.id, other.id, 10000)
        assert fresh_log(scenario_c.time_log.id).status == LOG_PENDING_APPROVAL

    def test_only_pending_logs_can_be_approved(self, cashier, manager):
        log = timekeeping_service.clock_in(cashier.id).time_log
        with pytest.raises(InvalidTransition):
            timekeeping_service.approve_shift(log.id, manager.id, 0)

    def test_deleted_user_does_not_block_completion(self, scenario_c, manager, cashier):
        db.session.delete(fresh_user(cashier.id))
        db.session.commit()

        result = timekeeping_service.approve_shift(scenario_c.time_log.id, manager.id, 9500)

        assert result.time_log.status == LOG_COMPLETED
        assert result.time_log.difference_cents == -500
        assert result.user is None

    def test_failed_user_write_restores_pending_log(self, flaky_store, scenario_c, manager, cashier):
        flaky_store.fail("update", "users")

        with pytest.raises(PartialWriteError):
            timekeeping_service.approve_shift(scenario_c.time_log.id, manager.id, 10000)

        restored = fresh_log(scenario_c.time_log.id)
        assert restored.status == LOG_PENDING_APPROVAL
        assert restored.counted_amount_cents is None
        assert restored.difference_cents == -1000
        assert fresh_user(cashier.id).time_clock_status == AWAITING_CLEARANCE


class TestRejection:
    def test_reject_keeps_user_awaiting_clearance(self, scenario_c, manager, cashier):
        result = timekeeping_service.reject_shift(scenario_c.time_log.id, "Drawer short", manager_id=manager.id)

        assert result.time_log.status == LOG_REJECTED
        assert result.time_log.rejection_reason == "Drawer short"
        assert fresh_user(cashier.id).time_clock_status == AWAITING_CLEARANCE

        with pytest.raises(InvalidTransition):
            timekeeping_service.clock_in(cashier.id)

    def test_reason_is_required(self, scenario_c, manager):
        with pytest.raises(InvalidRequest):
            timekeeping_service.reject_shift(scenario_c.time_log.id, "  ", manager_id=manager.id)

    def test_reopen_then_approve_clears_the_user(self, scenario_c, manager, cashier):
        log_id = scenario_c.time_log.id
        timekeeping_service.reject_shift(log_id, "Recount needed", manager_id=manager.id)

        reopened = timekeeping_service.reopen_rejected_shift(log_id, manager.id)
        assert reopened.time_log.status == LOG_PENDING_APPROVAL
        assert reopened.time_log.rejection_reason is None

        timekeeping_service.approve_shift(log_id, manager.id, 10000)
        assert fresh_user(cashier.id).time_clock_status == CLOCKED_OUT
        timekeeping_service.clock_in(cashier.id)
        assert open_logs(cashier.id) == 1

    def test_only_rejected_logs_can_be_reopened(self, scenario_c, manager):
        with pytest.raises(InvalidTransition):
            timekeeping_service.reopen_rejected_shift(scenario_c.time_log.id, manager.id)


class TestAdminClockOut:
    def test_completes_shift_without_reconciliation(self, make_product, admin):
        timekeeping_service.clock_in(admin.id)
        ring_up(make_product(price_cents=7000), admin, "CASH")

        result = timekeeping_service.admin_self_clock_out(admin.id)

        log = result.time_log
        assert log.status == LOG_COMPLETED
        assert log.declared_amount_cents == log.counted_amount_cents == 7000
        assert log.difference_cents == 0
        assert log.approved_by_id == admin.id
        assert result.user.time_clock_status == CLOCKED_OUT
        assert result.user.clock_in_at is None

    def test_requires_admin(self, manager):
        timekeeping_service.clock_in(manager.id)
        with pytest.raises(PermissionDenied):
            timekeeping_service.admin_self_clock_out(manager.id)

    def test_failed_user_write_restores_ongoing_log(self, flaky_store, admin):
        log = timekeeping_service.clock_in(admin.id).time_log
        flaky_store.fail("update", "users")

        with pytest.raises(PartialWriteError):
            timekeeping_service.admin_self_clock_out(admin.id)

        restored = fresh_log(log.id)
        assert restored.status == LOG_ONGOING
        assert restored.clock_out_at is None
        assert restored.approved_by_id is None
        assert fresh_user(admin.id).time_clock_status == CLOCKED_IN


def test_clock_status_reports_consistency(cashier, make_user):
    timekeeping_service.clock_in(cashier.id)
    status = timekeeping_service.get_clock_status(cashier.id)
    assert status["consistent"] is True
    assert status["open_time_log"]["status"] == LOG_ONGOING

    stuck = make_user(time_clock_status=CLOCKED_IN)
    assert timekeeping_service.get_clock_status(stuck.id)["consistent"] is False


def test_list_time_logs_filters_by_user_and_status(scenario_c, cashier, manager):
    timekeeping_service.clock_in(manager.id)
    logs = timekeeping_service.list_time_logs(user_id=cashier.id, status=LOG_PENDING_APPROVAL)
    assert [log.id for log in logs] == [scenario_c.time_log.id]

"""Flask CLI: shift repair and keg intake commands."""

from taproom.extensions import db
from taproom.models import KegInstance, User
from taproom.models.auth import CLOCKED_IN, CLOCKED_OUT
from taproom.services import timekeeping_service
from taproom.time_utils import utcnow


def fresh_user(user_id):
    return db.session.get(User, user_id, populate_existing=True)


def test_heal_all_resets_only_stuck_users(app, make_user, cashier):
    stuck = make_user(time_clock_status=CLOCKED_IN, clock_in_at=utcnow())
    timekeeping_service.clock_in(cashier.id)

    result = app.test_cli_runner().invoke(args=["shifts", "heal-all"])

    assert result.exit_code == 0, result.output
    assert f"healed user {stuck.id}" in result.output
    assert "1 user(s) reset to CLOCKED_OUT" in result.output
    assert fresh_user(stuck.id).time_clock_status == CLOCKED_OUT
    assert fresh_user(cashier.id).time_clock_status == CLOCKED_IN


def test_heal_all_with_nothing_to_do(app, cashier):
    result = app.test_cli_runner().invoke(args=["shifts", "heal-all"])

    assert result.exit_code == 0
    assert "No stuck users found." in result.output


def test_heal_single_user(app, make_user, manager):
    stuck = make_user(time_clock_status=CLOCKED_IN)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["shifts", "heal", "--user-id", str(stuck.id), "--actor-id", str(manager.id)])
    assert result.exit_code == 0
    assert f"User {stuck.id} reset to CLOCKED_OUT." in result.output

    result = runner.invoke(args=["shifts", "heal", "--user-id", str(stuck.id)])
    assert result.exit_code == 0
    assert "nothing to do" in result.output


def test_heal_unknown_user_fails_cleanly(app, db_session):
    result = app.test_cli_runner().invoke(args=["shifts", "heal", "--user-id", "999"])

    assert result.exit_code != 0
    assert "User not found" in result.output


def test_kegs_add_and_list(app, keg_product, admin):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "kegs", "add", "--product-id", str(keg_product.id), "--count", "2", "--actor-id", str(admin.id),
    ])
    assert result.exit_code == 0, result.output
    assert db.session.query(KegInstance).filter_by(product_id=keg_product.id).count() == 2

    result = runner.invoke(args=["kegs", "list", "--status", "full"])
    assert result.exit_code == 0
    assert result.output.count(keg_product.name) == 2

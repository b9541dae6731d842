"""Keg lifecycle: FULL -> TAPPED -> EMPTY, write-off, attribution."""

import pytest

from taproom.errors import InvalidRequest, InvalidTransition, InventoryRejection, PartialWriteError, WriteOffConfirmationRequired
from taproom.extensions import db
from taproom.models import KegInstance, Product
from taproom.models.catalog import KEG_EMPTY, KEG_FULL, KEG_TAPPED
from taproom.services import keg_service
from taproom.services.inventory_guard import OrderLine
from taproom.services.sales_service import SaleRequest, process_sale


def fresh(keg_id):
    return db.session.get(KegInstance, keg_id, populate_existing=True)


def sell_pints(pint, server, quantity, payment_method="CASH"):
    return process_sale(SaleRequest(
        lines=[OrderLine(pint.id, quantity)], payment_method=payment_method, server_id=server.id,
    ))


class TestAddInstances:
    def test_adds_full_kegs_and_bumps_unit_count(self, keg_product, admin):
        kegs = keg_service.add_keg_instances(keg_product.id, 3, admin.id)

        assert len(kegs) == 3
        assert all(k.status == KEG_FULL and k.capacity == 20000 and k.current_volume == 20000 for k in kegs)
        assert db.session.get(Product, keg_product.id, populate_existing=True).stock == 3

    def test_rejects_non_keg_products(self, make_product, admin):
        bottle = make_product(stock=1)
        with pytest.raises(InvalidRequest):
            keg_service.add_keg_instances(bottle.id, 1, admin.id)

    def test_rejects_non_positive_count(self, keg_product, admin):
        with pytest.raises(InvalidRequest):
            keg_service.add_keg_instances(keg_product.id, 0, admin.id)

    def test_failed_stock_write_removes_new_instances(self, flaky_store, keg_product, admin):
        flaky_store.fail("update", "products")

        with pytest.raises(PartialWriteError):
            keg_service.add_keg_instances(keg_product.id, 2, admin.id)

        assert db.session.query(KegInstance).count() == 0
        assert db.session.get(Product, keg_product.id, populate_existing=True).stock == 0


class TestTap:
    def test_tap_records_actor(self, keg_product, admin):
        keg = keg_service.add_keg_instances(keg_product.id, 1, admin.id)[0]
        tapped = keg_service.tap_keg(keg.id, admin.id)

        assert tapped.status == KEG_TAPPED
        assert tapped.tapped_by_id == admin.id
        assert tapped.tapped_by_name == admin.name
        assert tapped.tapped_at is not None

    def test_only_one_tapped_instance_per_product(self, keg_product, admin):
        first, second = keg_service.add_keg_instances(keg_product.id, 2, admin.id)
        keg_service.tap_keg(first.id, admin.id)

        with pytest.raises(InvalidTransition):
            keg_service.tap_keg(second.id, admin.id)

        tapped = db.session.query(KegInstance).filter_by(product_id=keg_product.id, status=KEG_TAPPED).count()
        assert tapped == 1

    def test_concurrent_taps_leave_one_tapped_instance(self, interleaving_store, keg_product, admin):
        first, second = keg_service.add_keg_instances(keg_product.id, 2, admin.id)
        interleaving_store.before("update", "keg_instances", lambda: keg_service.tap_keg(second.id, admin.id))

        with pytest.raises(InvalidTransition):
            keg_service.tap_keg(first.id, admin.id)

        assert fresh(first.id).status == KEG_FULL
        assert fresh(second.id).status == KEG_TAPPED

    def test_cannot_retap(self, tapped_keg, admin):
        with pytest.raises(InvalidTransition):
            keg_service.tap_keg(tapped_keg.id, admin.id)


class TestClose:
    def test_large_residual_needs_confirmation(self, tapped_keg, admin):
        with pytest.raises(WriteOffConfirmationRequired) as exc:
            keg_service.close_keg(tapped_keg.id, admin.id)

        assert exc.value.details["residual_volume"] == 20000
        assert fresh(tapped_keg.id).status == KEG_TAPPED

    def test_confirmed_close_writes_off_residual(self, tapped_keg, admin):
        result = keg_service.close_keg(tapped_keg.id, admin.id, confirm_write_off=True)

        assert result.keg.status == KEG_EMPTY
        assert result.keg.current_volume == 0
        assert result.written_off_volume == 20000
        assert result.warnings
        assert result.keg.closed_by_id == admin.id

    def test_empty_keg_closes_without_confirmation(self, tapped_keg, pint, server, admin):
        sell_pints(pint, server, 40)
        result = keg_service.close_keg(tapped_keg.id, admin.id)

        assert result.keg.status == KEG_EMPTY
        assert result.written_off_volume == 0
        assert result.warnings == []

    def test_one_serving_left_needs_confirmation(self, tapped_keg, pint, server, admin):
        # 500 ml left is above the 1% (200 ml) threshold
        sell_pints(pint, server, 39)
        with pytest.raises(WriteOffConfirmationRequired):
            keg_service.close_keg(tapped_keg.id, admin.id)

    def test_full_keg_cannot_be_closed(self, keg_product, admin):
        keg = keg_service.add_keg_instances(keg_product.id, 1, admin.id)[0]
        with pytest.raises(InvalidTransition):
            keg_service.close_keg(keg.id, admin.id, confirm_write_off=True)

    def test_empty_is_terminal(self, tapped_keg, admin):
        keg_service.close_keg(tapped_keg.id, admin.id, confirm_write_off=True)
        with pytest.raises(InvalidTransition):
            keg_service.tap_keg(tapped_keg.id, admin.id)
        with pytest.raises(InvalidTransition):
            keg_service.close_keg(tapped_keg.id, admin.id, confirm_write_off=True)

    def test_new_keg_can_be_tapped_after_close(self, tapped_keg, keg_product, admin):
        keg_service.close_keg(tapped_keg.id, admin.id, confirm_write_off=True)
        replacement = keg_service.add_keg_instances(keg_product.id, 1, admin.id)[0]
        assert keg_service.tap_keg(replacement.id, admin.id).status == KEG_TAPPED


class TestAttribution:
    def test_summary_groups_by_server_highest_revenue_first(self, tapped_keg, pint, make_user):
        ann = make_user("Ann")
        ben = make_user("Ben")
        sell_pints(pint, ann, 1)
        sell_pints(pint, ben, 3)
        sell_pints(pint, ann, 1)

        summary = keg_service.keg_sales_summary(tapped_keg.id)

        assert [s["user_name"] for s in summary["servers"]] == ["Ben", "Ann"]
        assert summary["servers"][0]["volume_sold"] == 1500
        assert summary["servers"][1]["revenue_cents"] == 60000
        assert summary["total_volume_sold"] == 2500
        assert summary["total_revenue_cents"] == 150000

    def test_attribution_list_is_append_only(self, tapped_keg, pint, server):
        sell_pints(pint, server, 1)
        first_entry = dict(fresh(tapped_keg.id).sales[0])
        sell_pints(pint, server, 2)

        entries = fresh(tapped_keg.id).sales
        assert len(entries) == 2
        assert entries[0] == first_entry

    def test_volume_stays_within_capacity(self, tapped_keg, pint, server):
        for quantity in (10, 10, 15, 10, 5):
            try:
                sell_pints(pint, server, quantity)
            except InventoryRejection:
                pass
            keg = fresh(tapped_keg.id)
            assert 0 <= keg.current_volume <= keg.capacity

"""Inventory guard: fulfillability checks before any sale write."""

import pytest

from taproom.errors import InvalidRequest, InventoryRejection, ProductNotFound
from taproom.models.catalog import PRODUCT_SERVICE
from taproom.services.inventory_guard import OrderLine, check_order, normalize_unit


@pytest.mark.parametrize(
    "value,unit,expected",
    [
        (20, "L", 20000),
        (0.5, "L", 500),
        (330, "ml", 330),
        (1.25, "kg", 1250),
        (30, "g", 30),
        (0.0335, "L", 34),
    ],
)
def test_normalize_unit(value, unit, expected):
    assert normalize_unit(value, unit) == expected


def test_normalize_unit_rejects_unknown_unit():
    with pytest.raises(InvalidRequest):
        normalize_unit(1, "gallon")


class TestStockedProducts:
    def test_quantity_up_to_stock_is_fulfillable(self, make_product):
        product = make_product(stock=5)
        resolved = check_order([OrderLine(product.id, 5)])
        assert [(r.product.id, r.quantity) for r in resolved] == [(product.id, 5)]

    def test_quantity_above_stock_is_rejected(self, make_product):
        product = make_product(stock=2)
        with pytest.raises(InventoryRejection) as exc:
            check_order([OrderLine(product.id, 3)])
        assert exc.value.details["product_id"] == product.id
        assert exc.value.details["available"] == 2

    def test_quantities_accumulate_across_lines(self, make_product):
        product = make_product(stock=5)
        with pytest.raises(InventoryRejection) as exc:
            check_order([OrderLine(product.id, 3), OrderLine(product.id, 3)])
        assert exc.value.details["line_index"] == 1
        assert exc.value.details["requested_quantity"] == 6

    def test_first_failing_line_is_reported(self, make_product):
        ok = make_product(name="Ok", stock=10)
        short = make_product(name="Short", stock=0)
        with pytest.raises(InventoryRejection) as exc:
            check_order([OrderLine(ok.id, 1), OrderLine(short.id, 1)])
        assert exc.value.details["product_id"] == short.id


def test_unknown_product_rejects_whole_order(make_product):
    product = make_product(stock=5)
    with pytest.raises(ProductNotFound):
        check_order([OrderLine(product.id, 1), OrderLine(999999, 1)])


def test_inactive_product_is_not_found(make_product):
    product = make_product(stock=5, is_active=False)
    with pytest.raises(ProductNotFound):
        check_order([OrderLine(product.id, 1)])


@pytest.mark.parametrize("quantity", [0, -1])
def test_non_positive_quantity_is_invalid(make_product, quantity):
    product = make_product(stock=5)
    with pytest.raises(InvalidRequest):
        check_order([OrderLine(product.id, quantity)])


def test_empty_order_is_invalid(db_session):
    with pytest.raises(InvalidRequest):
        check_order([])


def test_plain_service_is_always_fulfillable(make_product):
    service = make_product(name="Corkage", price_cents=50000, stock=0, product_type=PRODUCT_SERVICE)
    resolved = check_order([OrderLine(service.id, 100)])
    assert resolved[0].keg is None
    assert resolved[0].line_total_cents == 5000000


def test_keg_product_is_not_sellable(keg_product):
    with pytest.raises(InventoryRejection) as exc:
        check_order([OrderLine(keg_product.id, 1)])
    assert exc.value.details["reason"] == "keg_not_sellable"


class TestKegLinkedService:
    def test_rejected_without_a_tapped_keg(self, pint, keg_product, admin):
        from taproom.services import keg_service

        keg_service.add_keg_instances(keg_product.id, 1, admin.id)  # FULL, not tapped
        with pytest.raises(InventoryRejection) as exc:
            check_order([OrderLine(pint.id, 1)])
        assert exc.value.details["reason"] == "no_tapped_keg"

    def test_resolves_to_tapped_keg_with_normalized_volume(self, pint, tapped_keg):
        resolved = check_order([OrderLine(pint.id, 3)])
        assert resolved[0].keg.id == tapped_keg.id
        assert resolved[0].volume == 1500

    def test_volume_shortfall_reports_servings_available(self, pint, tapped_keg):
        with pytest.raises(InventoryRejection) as exc:
            check_order([OrderLine(pint.id, 41)])
        assert exc.value.details["servings_available"] == 40
        assert exc.value.details["keg_instance_id"] == tapped_keg.id

    def test_volume_accumulates_across_lines(self, pint, tapped_keg):
        with pytest.raises(InventoryRejection):
            check_order([OrderLine(pint.id, 30), OrderLine(pint.id, 11)])

    def test_missing_serving_size_is_a_rejection(self, make_product, keg_product, tapped_keg):
        shot = make_product(
            name="Unconfigured", price_cents=100, stock=0, product_type=PRODUCT_SERVICE,
            linked_keg_product_id=keg_product.id,
        )
        with pytest.raises(InventoryRejection) as exc:
            check_order([OrderLine(shot.id, 1)])
        assert exc.value.details["reason"] == "missing_serving_size"

# Overview: Pre-write validation of whether an order can be fulfilled.

"""
Inventory Guard

Pure validation; never writes. Runs against freshly read ledger rows
immediately before a sale is written.

Rules per line (first failing line rejects the whole order):
- Unknown or inactive product -> ProductNotFound
- STOCKED: quantity <= stock (cumulative across lines for the same product)
- SERVICE without keg link: always fulfillable
- SERVICE linked to a keg: a TAPPED instance of the linked product must exist,
  serving size and unit must be configured, and
  serving_volume * quantity <= current_volume (cumulative per keg)
- KEG: not sellable directly; kegs are sold by the serving
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from ..errors import InvalidRequest, InventoryRejection, ProductNotFound
from ..models import KegInstance, Product
from ..models.catalog import KEG_TAPPED, MEASURE_UNITS, PRODUCT_KEG, PRODUCT_STOCKED
from .ledger_store import LedgerStore, get_ledger_store


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int


@dataclass
class ResolvedLine:
    """An order line bound to the product (and keg) it will draw from."""
    product: Product
    quantity: int
    keg: KegInstance | None = None
    volume: int = 0

    @property
    def unit_price_cents(self) -> int:
        return self.product.price_cents

    @property
    def line_total_cents(self) -> int:
        return self.product.price_cents * self.quantity


def normalize_unit(value: float, unit: str) -> int:
    """Convert a measure to base units (ml or g). L and kg scale by 1000."""
    if unit not in MEASURE_UNITS:
        raise InvalidRequest(f"Unknown measure unit: {unit}")
    factor = 1000 if unit in ("L", "kg") else 1
    base = Decimal(str(value)) * factor
    return int(base.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def serving_volume(product: Product) -> int:
    if not product.serving_size or not product.serving_size_unit:
        raise InventoryRejection(
            f'Product "{product.name}" is not configured for keg service (missing serving size)',
            details={"product_id": product.id, "reason": "missing_serving_size"},
        )
    volume = normalize_unit(product.serving_size, product.serving_size_unit)
    if volume <= 0:
        raise InventoryRejection(
            f'Product "{product.name}" has an invalid serving size',
            details={"product_id": product.id, "reason": "invalid_serving_size"},
        )
    return volume


def find_tapped_keg(keg_product_id: int, *, store: LedgerStore | None = None) -> KegInstance | None:
    store = store or get_ledger_store()
    return store.first("keg_instances", product_id=keg_product_id, status=KEG_TAPPED,
                       order_by=(KegInstance.id,))


def _validate_quantity(line: OrderLine) -> None:
    if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
        raise InvalidRequest(
            "Quantity must be a positive whole number",
            details={"product_id": line.product_id, "quantity": line.quantity},
        )


def check_order(lines: Iterable[OrderLine], *, store: LedgerStore | None = None) -> list[ResolvedLine]:
    """
    Validate every line and return them resolved, or raise on the first failing line.

    Quantities for the same product (or the same keg) accumulate across lines,
    so an order can never ask for more than is on hand in total.
    """
    store = store or get_ledger_store()
    lines = list(lines)
    if not lines:
        raise InvalidRequest("Order has no lines")

    resolved: list[ResolvedLine] = []
    units_requested: dict[int, int] = {}
    volume_requested: dict[int, int] = {}

    for index, line in enumerate(lines):
        _validate_quantity(line)

        product = store.get("products", line.product_id)
        if product is None or not product.is_active:
            raise ProductNotFound(
                "Product not found in inventory. Sale aborted.",
                details={"line_index": index, "product_id": line.product_id},
            )

        if product.product_type == PRODUCT_STOCKED:
            wanted = units_requested.get(product.id, 0) + line.quantity
            if wanted > product.stock:
                raise InventoryRejection(
                    f'Insufficient stock for "{product.name}". Only {product.stock} available.',
                    details={
                        "line_index": index,
                        "product_id": product.id,
                        "requested_quantity": wanted,
                        "available": product.stock,
                    },
                )
            units_requested[product.id] = wanted
            resolved.append(ResolvedLine(product=product, quantity=line.quantity))

        elif product.product_type == PRODUCT_KEG:
            raise InventoryRejection(
                f'"{product.name}" is a keg and is sold by the serving',
                details={"line_index": index, "product_id": product.id, "reason": "keg_not_sellable"},
            )

        elif product.is_keg_service:
            keg = find_tapped_keg(product.linked_keg_product_id, store=store)
            if keg is None:
                raise InventoryRejection(
                    f'No keg is currently tapped for "{product.name}"',
                    details={
                        "line_index": index,
                        "product_id": product.id,
                        "keg_product_id": product.linked_keg_product_id,
                        "reason": "no_tapped_keg",
                    },
                )
            per_serving = serving_volume(product)
            volume = per_serving * line.quantity
            wanted = volume_requested.get(keg.id, 0) + volume
            if wanted > keg.current_volume:
                already = volume_requested.get(keg.id, 0)
                raise InventoryRejection(
                    f'Insufficient volume in the keg for "{product.name}". '
                    f"Only {(keg.current_volume - already) // per_serving} servings left.",
                    details={
                        "line_index": index,
                        "product_id": product.id,
                        "keg_instance_id": keg.id,
                        "requested_quantity": line.quantity,
                        "volume_required": volume,
                        "volume_available": keg.current_volume - already,
                        "servings_available": (keg.current_volume - already) // per_serving,
                    },
                )
            volume_requested[keg.id] = wanted
            resolved.append(ResolvedLine(product=product, quantity=line.quantity, keg=keg, volume=volume))

        else:
            resolved.append(ResolvedLine(product=product, quantity=line.quantity))

    return resolved

"""
Sale Transaction Processor

WHY: A sale touches three tables (sales, sale_items, and stock or keg
volume) and the ledger store offers no transaction across them. The write
order is fixed so a failure always leaves a recoverable state:

1. Inventory guard over every line (no writes yet; first failing line aborts)
2. Sale header
3. Sale items, as one write. If this fails the header is deleted again.
4. Per-line inventory effects (stock decrement / keg draw). These happen
   after the sale is committed: a failure here is logged and reported in the
   result but does not void the sale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..errors import CoreError, InvalidRequest, InventoryRejection, LedgerWriteError, PartialWriteError
from ..models import Sale, SaleItem
from ..models.activity import CATEGORY_SALES
from ..models.catalog import PRODUCT_STOCKED
from ..models.sales import PAYMENT_METHODS
from taproom.time_utils import utcnow
from .activity_service import append_activity
from .compensation import CompensatingTransaction
from .inventory_guard import OrderLine, ResolvedLine, check_order
from .keg_service import record_keg_draw
from .ledger_store import LedgerStore, get_ledger_store


@dataclass(frozen=True)
class Discount:
    name: str
    amount_cents: int


@dataclass
class SaleRequest:
    lines: list[OrderLine]
    payment_method: str
    server_id: int
    customer_type: str = "Walk-in"
    discount: Discount | None = None


@dataclass(frozen=True)
class SaleTotals:
    gross_cents: int
    discount_cents: int
    subtotal_cents: int
    tax_cents: int
    total_cents: int


@dataclass
class SaleResult:
    """The committed sale plus the authoritative inventory state it left behind."""
    sale: Sale
    items: list[SaleItem]
    stock_levels: dict[int, int] = field(default_factory=dict)
    keg_volumes: dict[int, int] = field(default_factory=dict)
    inventory_failures: list[dict] = field(default_factory=list)
    # Stocked products at or below their low-stock threshold after this sale
    low_stock: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "stock_levels": {str(k): v for k, v in self.stock_levels.items()},
            "keg_volumes": {str(k): v for k, v in self.keg_volumes.items()},
            "inventory_failures": self.inventory_failures,
            "low_stock": self.low_stock,
        }


def format_cents(cents: int) -> str:
    return f"Ksh {Decimal(cents) / 100:.2f}"


def compute_totals(gross_cents: int, discount_cents: int, tax_rate_bps: int) -> SaleTotals:
    """
    VAT-inclusive totals.

    total = gross - discount; subtotal = total / (1 + rate), nearest cent,
    half-up; tax = total - subtotal, so subtotal + tax == total exactly.
    """
    total = gross_cents - discount_cents
    subtotal = (Decimal(total) * 10000 / (10000 + tax_rate_bps)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    subtotal = int(subtotal)
    return SaleTotals(
        gross_cents=gross_cents,
        discount_cents=discount_cents,
        subtotal_cents=subtotal,
        tax_cents=total - subtotal,
        total_cents=total,
    )


def _validate_request(request: SaleRequest) -> None:
    if request.payment_method not in PAYMENT_METHODS:
        raise InvalidRequest(
            f"Unsupported payment method: {request.payment_method}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    if request.discount is not None:
        if not request.discount.name:
            raise InvalidRequest("Discount name is required")
        if request.discount.amount_cents < 0:
            raise InvalidRequest("Discount amount cannot be negative")


def _decrement_stock(line: ResolvedLine, store: LedgerStore):
    def _mutate(product):
        if product.stock < line.quantity:
            raise InventoryRejection(
                f'Stock for "{product.name}" changed before it could be decremented',
                details={"product_id": product.id, "requested_quantity": line.quantity, "available": product.stock},
            )
        return {"stock": product.stock - line.quantity}

    return store.update_with("products", line.product.id, _mutate)


def _apply_inventory_effects(sale: Sale, lines: list[ResolvedLine], server, store: LedgerStore, result: SaleResult) -> None:
    for line in lines:
        try:
            if line.product.product_type == PRODUCT_STOCKED:
                product = _decrement_stock(line, store)
                result.stock_levels[product.id] = product.stock
                if product.is_low_stock:
                    result.low_stock.append({
                        "product_id": product.id,
                        "name": product.name,
                        "stock": product.stock,
                        "low_stock_threshold": product.low_stock_threshold,
                    })
            elif line.keg is not None:
                keg = record_keg_draw(
                    line.keg.id,
                    volume=line.volume,
                    revenue_cents=line.line_total_cents,
                    sale_id=sale.id,
                    server=server,
                    store=store,
                )
                result.keg_volumes[keg.id] = keg.current_volume
        except CoreError as exc:
            current_app.logger.error(
                "Sale %s committed but inventory update for product %s failed: %s",
                sale.id, line.product.id, exc.message,
            )
            result.inventory_failures.append({
                "product_id": line.product.id,
                "keg_instance_id": line.keg.id if line.keg is not None else None,
                "quantity": line.quantity,
                "error": exc.message,
                "code": exc.code,
            })


def process_sale(request: SaleRequest, *, store: LedgerStore | None = None) -> SaleResult:
    store = store or get_ledger_store()
    _validate_request(request)

    server = store.require("users", request.server_id, "server")
    lines = check_order(request.lines, store=store)

    gross = sum(line.line_total_cents for line in lines)
    discount_cents = request.discount.amount_cents if request.discount else 0
    if discount_cents > gross:
        raise InvalidRequest(
            "Discount exceeds the order total",
            details={"gross_total_cents": gross, "discount_cents": discount_cents},
        )
    totals = compute_totals(gross, discount_cents, current_app.config["TAX_RATE_BPS"])

    tx = CompensatingTransaction("sale")
    try:
        with tx:
            sale = store.insert("sales", {
                "occurred_at": utcnow(),
                "payment_method": request.payment_method,
                "served_by_id": server.id,
                "served_by_name": server.name,
                "customer_type": request.customer_type,
                "gross_total_cents": totals.gross_cents,
                "subtotal_cents": totals.subtotal_cents,
                "tax_cents": totals.tax_cents,
                "total_cents": totals.total_cents,
                "discount_name": request.discount.name if request.discount else None,
                "discount_amount_cents": discount_cents if request.discount else None,
            })
            tx.on_failure(f"delete sale header {sale.id}", lambda: store.delete("sales", sale.id))

            items = store.insert_many("sale_items", [
                {
                    "sale_id": sale.id,
                    "product_id": line.product.id,
                    "product_name": line.product.name,
                    "quantity": line.quantity,
                    "unit_price_cents": line.unit_price_cents,
                    "line_total_cents": line.line_total_cents,
                }
                for line in lines
            ])
            tx.complete()
    except LedgerWriteError as exc:
        if tx.applied_compensations or tx.failed_compensations:
            current_app.logger.error("Sale items write failed; header rollback outcome: %s", tx.outcome())
            raise PartialWriteError(details=tx.outcome()) from exc
        raise

    result = SaleResult(sale=sale, items=items)
    _apply_inventory_effects(sale, lines, server, store, result)

    append_activity(
        event_type="sale.created",
        category=CATEGORY_SALES,
        description=f"Created sale #{sale.id}",
        entity_type="sale",
        entity_id=sale.id,
        actor=server,
        details=f"Total: {format_cents(sale.total_cents)}",
        store=store,
    )
    return result


def get_sale(sale_id: int, *, store: LedgerStore | None = None) -> tuple[Sale, list[SaleItem]]:
    store = store or get_ledger_store()
    sale = store.require("sales", sale_id)
    items = store.list("sale_items", sale_id=sale.id, order_by=(SaleItem.id,))
    return sale, items


def list_sales(*, served_by_id: int | None = None, since: datetime | None = None,
               limit: int = 500, store: LedgerStore | None = None) -> list[Sale]:
    store = store or get_ledger_store()
    filters = {"served_by_id": served_by_id} if served_by_id is not None else {}
    criteria = (Sale.occurred_at >= since,) if since is not None else ()
    return store.list(
        "sales",
        criteria=criteria,
        order_by=(Sale.occurred_at.desc(), Sale.id.desc()),
        limit=limit,
        **filters,
    )

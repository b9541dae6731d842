# Overview: Service-layer operations for supplier purchase orders and receiving.

"""
Purchasing

LIFECYCLE: PENDING -> PARTIALLY_RECEIVED -> RECEIVED (CANCELLED is terminal)

- An order is written as a header plus its items. If the item write fails
  the header is deleted again.
- Receiving is applied item by item: bump quantity_received, then add the
  units to stock. For KEG products the units arrive as new FULL keg
  instances. If the stock write fails the item's quantity_received is put
  back and the failure is collected; the remaining items are still applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app

from ..errors import CoreError, InvalidRequest, InvalidTransition, LedgerWriteError, PartialWriteError
from ..models import PurchaseOrder, PurchaseOrderItem
from ..models.activity import CATEGORY_PURCHASING
from ..models.catalog import PRODUCT_KEG, PRODUCT_STOCKED
from ..models.purchasing import PO_CANCELLED, PO_PARTIALLY_RECEIVED, PO_PENDING, PO_RECEIVED
from taproom.time_utils import utcnow
from .activity_service import append_activity
from .compensation import CompensatingTransaction
from .keg_service import add_keg_instances
from .ledger_store import LedgerStore, get_ledger_store

RECEIVABLE_TYPES = (PRODUCT_STOCKED, PRODUCT_KEG)


@dataclass(frozen=True)
class PurchaseOrderLine:
    product_id: int
    quantity_ordered: int
    cost_cents: int


@dataclass
class PurchaseOrderRequest:
    supplier_name: str
    lines: list[PurchaseOrderLine]
    created_by_id: int
    invoice_no: str | None = None
    order_date: date | None = None


@dataclass(frozen=True)
class ReceivedItem:
    product_id: int
    quantity: int


@dataclass
class PurchaseOrderResult:
    purchase_order: PurchaseOrder
    items: list[PurchaseOrderItem]
    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.purchase_order.to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        data["failures"] = self.failures
        return data


def _positive_int(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, int) and value > 0


def create_purchase_order(request: PurchaseOrderRequest, *, store: LedgerStore | None = None) -> PurchaseOrderResult:
    store = store or get_ledger_store()
    if not request.supplier_name or not request.supplier_name.strip():
        raise InvalidRequest("supplier_name is required")
    if not request.lines:
        raise InvalidRequest("Purchase order has no items")

    creator = store.require("users", request.created_by_id, "user")

    seen = set()
    products = {}
    for index, line in enumerate(request.lines):
        if not _positive_int(line.quantity_ordered):
            raise InvalidRequest("quantity_ordered must be a positive whole number",
                                 details={"line_index": index, "product_id": line.product_id})
        if isinstance(line.cost_cents, bool) or not isinstance(line.cost_cents, int) or line.cost_cents < 0:
            raise InvalidRequest("cost_cents must be a non-negative amount in cents",
                                 details={"line_index": index, "product_id": line.product_id})
        if line.product_id in seen:
            raise InvalidRequest("Each product may appear only once per purchase order",
                                 details={"line_index": index, "product_id": line.product_id})
        seen.add(line.product_id)

        product = store.require("products", line.product_id, "product")
        if product.product_type not in RECEIVABLE_TYPES:
            raise InvalidRequest(
                f'"{product.name}" has no stock and cannot be ordered',
                details={"line_index": index, "product_id": product.id, "product_type": product.product_type},
            )
        products[product.id] = product

    total_cost = sum(line.cost_cents * line.quantity_ordered for line in request.lines)

    tx = CompensatingTransaction("purchase order")
    try:
        with tx:
            po = store.insert("purchase_orders", {
                "supplier_name": request.supplier_name.strip(),
                "invoice_no": request.invoice_no,
                "status": PO_PENDING,
                "total_cost_cents": total_cost,
                "order_date": request.order_date or utcnow().date(),
                "created_by_id": creator.id,
            })
            tx.on_failure(f"delete purchase order {po.id}", lambda: store.delete("purchase_orders", po.id))

            items = store.insert_many("purchase_order_items", [
                {
                    "purchase_order_id": po.id,
                    "product_id": line.product_id,
                    "product_name": products[line.product_id].name,
                    "quantity_ordered": line.quantity_ordered,
                    "quantity_received": 0,
                    "cost_cents": line.cost_cents,
                }
                for line in request.lines
            ])
            tx.complete()
    except LedgerWriteError as exc:
        if tx.applied_compensations or tx.failed_compensations:
            current_app.logger.error("Purchase order items write failed; header rollback outcome: %s", tx.outcome())
            raise PartialWriteError(details=tx.outcome()) from exc
        raise

    append_activity(
        event_type="purchase_order.created",
        category=CATEGORY_PURCHASING,
        description=f"Created Purchase Order #{po.id} for {po.supplier_name}.",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=creator,
        store=store,
    )
    return PurchaseOrderResult(purchase_order=po, items=items)


def _receive_item(po_item: PurchaseOrderItem, quantity: int, actor, store: LedgerStore) -> None:
    """Bump quantity_received, then stock; put quantity_received back if the stock write fails."""
    product = store.require("products", po_item.product_id, "product")
    previous = po_item.quantity_received

    tx = CompensatingTransaction(f"receive {po_item.product_name}")
    with tx:
        store.update_with(
            "purchase_order_items",
            po_item.id,
            lambda row: {"quantity_received": row.quantity_received + quantity},
        )
        tx.on_failure(
            f"restore quantity_received on item {po_item.id}",
            lambda: store.update("purchase_order_items", po_item.id, {"quantity_received": previous}),
        )
        if product.product_type == PRODUCT_KEG:
            add_keg_instances(product.id, quantity, actor.id, store=store)
        else:
            store.update_with("products", product.id, lambda row: {"stock": row.stock + quantity})
        tx.complete()


def receive_purchase_order(po_id: int, received: list[ReceivedItem], actor_id: int, *,
                           store: LedgerStore | None = None) -> PurchaseOrderResult:
    store = store or get_ledger_store()
    actor = store.require("users", actor_id, "user")
    po = store.require("purchase_orders", po_id, "purchase order")

    if po.status in (PO_CANCELLED, PO_RECEIVED):
        raise InvalidTransition(
            f"Purchase order is {po.status} and cannot be received",
            details={"purchase_order_id": po.id, "status": po.status},
        )
    if not received:
        raise InvalidRequest("No items to receive")

    items = {item.product_id: item for item in store.list("purchase_order_items", purchase_order_id=po.id)}
    for entry in received:
        item = items.get(entry.product_id)
        if item is None:
            raise InvalidRequest("Product is not on this purchase order",
                                 details={"purchase_order_id": po.id, "product_id": entry.product_id})
        if not _positive_int(entry.quantity):
            raise InvalidRequest("Received quantity must be a positive whole number",
                                 details={"product_id": entry.product_id, "quantity": entry.quantity})
        outstanding = item.quantity_ordered - item.quantity_received
        if entry.quantity > outstanding:
            raise InvalidRequest(
                f'Only {outstanding} of "{item.product_name}" are outstanding',
                details={"product_id": entry.product_id, "quantity": entry.quantity, "outstanding": outstanding},
            )

    failures = []
    for entry in received:
        try:
            _receive_item(items[entry.product_id], entry.quantity, actor, store)
        except CoreError as exc:
            current_app.logger.error(
                "Receiving product %s on purchase order %s failed: %s", entry.product_id, po.id, exc.message,
            )
            failures.append({"product_id": entry.product_id, "quantity": entry.quantity,
                             "error": exc.message, "code": exc.code})

    fresh_items = store.list("purchase_order_items", purchase_order_id=po.id, order_by=(PurchaseOrderItem.id,))
    any_received = any(item.quantity_received > 0 for item in fresh_items)
    fully_received = all(item.quantity_received >= item.quantity_ordered for item in fresh_items)

    if any_received:
        values = {"status": PO_RECEIVED if fully_received else PO_PARTIALLY_RECEIVED, "received_by_id": actor.id}
        if fully_received:
            values["received_at"] = utcnow()
        po = store.update("purchase_orders", po.id, values)

    if failures:
        raise PartialWriteError(details={"purchase_order_id": po.id, "status": po.status, "failures": failures})

    append_activity(
        event_type="purchase_order.received",
        category=CATEGORY_PURCHASING,
        description=f"Received stock for PO #{po.id}.",
        entity_type="purchase_order",
        entity_id=po.id,
        actor=actor,
        details=f"{len(received)} item type(s) updated.",
        store=store,
    )
    return PurchaseOrderResult(purchase_order=po, items=fresh_items)


def get_purchase_order(po_id: int, *, store: LedgerStore | None = None) -> PurchaseOrderResult:
    store = store or get_ledger_store()
    po = store.require("purchase_orders", po_id, "purchase order")
    items = store.list("purchase_order_items", purchase_order_id=po.id, order_by=(PurchaseOrderItem.id,))
    return PurchaseOrderResult(purchase_order=po, items=items)

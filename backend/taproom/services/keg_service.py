# Overview: Service-layer operations for the keg lifecycle; encapsulates business logic.

"""
Keg Lifecycle

WHY: Draught products are sold by the serving from a physical keg. Each keg
is tracked as its own instance so volume, write-offs and per-server sales
can be accounted for.

STATE MACHINE: FULL --tap--> TAPPED --close--> EMPTY (terminal)

- At most one TAPPED instance per keg product. Checked against a fresh read
  immediately before the tap is written.
- Sales are the only thing that reduce current_volume, apart from close,
  which writes off whatever is left. A large residual needs the operator to
  confirm the write-off.
- Every draw appends one attribution entry to KegInstance.sales; existing
  entries are never modified.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import (
    InvalidRequest,
    InvalidTransition,
    InventoryRejection,
    LedgerConflict,
    LedgerWriteError,
    PartialWriteError,
    WriteOffConfirmationRequired,
)
from ..models import KegInstance
from ..models.activity import CATEGORY_INVENTORY, CATEGORY_KEG
from ..models.catalog import KEG_EMPTY, KEG_FULL, KEG_TAPPED, PRODUCT_KEG
from taproom.time_utils import to_utc_z, utcnow
from .activity_service import append_activity
from .compensation import CompensatingTransaction
from .inventory_guard import normalize_unit
from .ledger_store import LedgerStore, get_ledger_store


@dataclass
class KegCloseResult:
    keg: KegInstance
    written_off_volume: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "keg": self.keg.to_dict(),
            "written_off_volume": self.written_off_volume,
            "warnings": self.warnings,
        }


def write_off_threshold(capacity: int) -> float:
    """Residual volume above which closing a keg needs confirmation."""
    return capacity * current_app.config["KEG_WRITE_OFF_WARNING_BPS"] / 10000


def add_keg_instances(product_id: int, count: int, actor_id: int, *,
                      store: LedgerStore | None = None) -> list[KegInstance]:
    """Receive `count` full kegs of a KEG product and bump its unit count."""
    store = store or get_ledger_store()
    actor = store.require("users", actor_id, "user")
    product = store.require("products", product_id, "product")

    if product.product_type != PRODUCT_KEG or not product.keg_capacity or not product.keg_capacity_unit:
        raise InvalidRequest(
            "Product is not a keg product with a configured capacity",
            details={"product_id": product_id},
        )
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise InvalidRequest("count must be a positive whole number", details={"count": count})

    capacity = normalize_unit(product.keg_capacity, product.keg_capacity_unit)

    tx = CompensatingTransaction("add keg instances")
    try:
        with tx:
            kegs = store.insert_many("keg_instances", [
                {
                    "product_id": product.id,
                    "product_name": product.name,
                    "capacity": capacity,
                    "current_volume": capacity,
                    "status": KEG_FULL,
                    "sales": [],
                }
                for _ in range(count)
            ])
            new_ids = [keg.id for keg in kegs]

            def _delete_new_kegs():
                for keg_id in new_ids:
                    store.delete("keg_instances", keg_id)

            tx.on_failure(f"delete {len(new_ids)} new keg instance(s)", _delete_new_kegs)
            store.update_with("products", product.id, lambda p: {"stock": p.stock + count})
            tx.complete()
    except LedgerWriteError as exc:
        if tx.applied_compensations or tx.failed_compensations:
            raise PartialWriteError(details=tx.outcome()) from exc
        raise

    append_activity(
        event_type="keg.received",
        category=CATEGORY_INVENTORY,
        description=f"Added {count} new keg(s) of {product.name}.",
        entity_type="product",
        entity_id=product.id,
        actor=actor,
        store=store,
    )
    return kegs


def tap_keg(instance_id: int, actor_id: int, *, store: LedgerStore | None = None) -> KegInstance:
    store = store or get_ledger_store()
    actor = store.require("users", actor_id, "user")
    keg = store.require("keg_instances", instance_id, "keg")

    if keg.status != KEG_FULL:
        raise InvalidTransition(
            f"Only FULL kegs can be tapped (keg is {keg.status})",
            details={"keg_instance_id": keg.id, "status": keg.status},
        )

    tapped = store.first("keg_instances", product_id=keg.product_id, status=KEG_TAPPED)
    if tapped is not None:
        raise InvalidTransition(
            f"Another {keg.product_name} is already tapped. Close it before tapping a new one.",
            details={"keg_instance_id": keg.id, "tapped_instance_id": tapped.id},
        )

    def _mutate(row):
        if row.status != KEG_FULL:
            raise InvalidTransition(
                f"Only FULL kegs can be tapped (keg is {row.status})",
                details={"keg_instance_id": row.id, "status": row.status},
            )
        return {
            "status": KEG_TAPPED,
            "tapped_at": utcnow(),
            "tapped_by_id": actor.id,
            "tapped_by_name": actor.name,
        }

    try:
        keg = store.update_with("keg_instances", keg.id, _mutate)
    except LedgerConflict as exc:
        # Unique tapped-keg index: another instance was tapped since the check above.
        raise InvalidTransition(
            f"Another {keg.product_name} is already tapped. Close it before tapping a new one.",
            details={"keg_instance_id": keg.id},
        ) from exc

    append_activity(
        event_type="keg.tapped",
        category=CATEGORY_KEG,
        description=f"Tapped keg of {keg.product_name}.",
        entity_type="keg_instance",
        entity_id=keg.id,
        actor=actor,
        store=store,
    )
    return keg


def close_keg(instance_id: int, actor_id: int, *, confirm_write_off: bool = False,
              store: LedgerStore | None = None) -> KegCloseResult:
    """
    Close a tapped keg. Residual volume is written off, not returned to stock.

    If the residual is above the warning threshold and the operator has not
    confirmed, nothing is written and WriteOffConfirmationRequired is raised.
    """
    store = store or get_ledger_store()
    actor = store.require("users", actor_id, "user")
    keg = store.require("keg_instances", instance_id, "keg")

    if keg.status != KEG_TAPPED:
        raise InvalidTransition(
            f"Only TAPPED kegs can be closed (keg is {keg.status})",
            details={"keg_instance_id": keg.id, "status": keg.status},
        )

    threshold = write_off_threshold(keg.capacity)
    if keg.current_volume > threshold and not confirm_write_off:
        raise WriteOffConfirmationRequired(
            f"{keg.current_volume} remaining in this {keg.product_name} keg will be written off. Confirm to close.",
            details={
                "keg_instance_id": keg.id,
                "residual_volume": keg.current_volume,
                "capacity": keg.capacity,
                "threshold": threshold,
            },
        )

    def _mutate(row):
        if row.status != KEG_TAPPED:
            raise InvalidTransition(
                f"Only TAPPED kegs can be closed (keg is {row.status})",
                details={"keg_instance_id": row.id, "status": row.status},
            )
        return {
            "status": KEG_EMPTY,
            "closed_at": utcnow(),
            "closed_by_id": actor.id,
            "closed_by_name": actor.name,
            "written_off_volume": row.current_volume,
            "current_volume": 0,
        }

    keg = store.update_with("keg_instances", keg.id, _mutate)
    written_off = keg.written_off_volume or 0

    warnings = []
    if written_off > threshold:
        warnings.append(f"Wrote off {written_off} of {keg.capacity} remaining in the keg.")
        current_app.logger.warning(
            "Keg %s of %s closed with %s of %s written off",
            keg.id, keg.product_name, written_off, keg.capacity,
        )

    append_activity(
        event_type="keg.closed",
        category=CATEGORY_KEG,
        description=f"Closed keg of {keg.product_name}.",
        entity_type="keg_instance",
        entity_id=keg.id,
        actor=actor,
        details=f"Written off: {written_off}" if written_off else None,
        store=store,
    )
    return KegCloseResult(keg=keg, written_off_volume=written_off, warnings=warnings)


def record_keg_draw(instance_id: int, *, volume: int, revenue_cents: int, sale_id: int, server,
                    store: LedgerStore | None = None) -> KegInstance:
    """Draw sold volume from a tapped keg and append the sale attribution."""
    store = store or get_ledger_store()

    def _mutate(row):
        if row.status != KEG_TAPPED:
            raise InvalidTransition(
                "Keg was closed before the sale could draw from it",
                details={"keg_instance_id": row.id, "status": row.status},
            )
        if row.current_volume < volume:
            raise InventoryRejection(
                "Keg volume changed before the sale could draw from it",
                details={"keg_instance_id": row.id, "volume_required": volume, "volume_available": row.current_volume},
            )
        attribution = {
            "user_id": server.id,
            "user_name": server.name,
            "sale_id": sale_id,
            "volume_sold": volume,
            "revenue_cents": revenue_cents,
            "sold_at": to_utc_z(utcnow()),
        }
        return {
            "current_volume": row.current_volume - volume,
            "sales": [*(row.sales or []), attribution],
        }

    return store.update_with("keg_instances", instance_id, _mutate)


def keg_sales_summary(instance_id: int, *, store: LedgerStore | None = None) -> dict:
    """Volume and revenue per server for one keg, highest revenue first."""
    store = store or get_ledger_store()
    keg = store.require("keg_instances", instance_id, "keg")

    by_server: dict[int, dict] = {}
    for entry in keg.sales or []:
        row = by_server.setdefault(entry["user_id"], {
            "user_id": entry["user_id"],
            "user_name": entry["user_name"],
            "volume_sold": 0,
            "revenue_cents": 0,
        })
        row["volume_sold"] += entry["volume_sold"]
        row["revenue_cents"] += entry["revenue_cents"]

    servers = sorted(by_server.values(), key=lambda r: r["revenue_cents"], reverse=True)
    return {
        "keg": keg.to_dict(),
        "servers": servers,
        "total_volume_sold": sum(r["volume_sold"] for r in servers),
        "total_revenue_cents": sum(r["revenue_cents"] for r in servers),
    }


def list_keg_instances(*, product_id: int | None = None, status: str | None = None,
                       store: LedgerStore | None = None) -> list[KegInstance]:
    store = store or get_ledger_store()
    filters = {}
    if product_id is not None:
        filters["product_id"] = product_id
    if status is not None:
        filters["status"] = status
    return store.list("keg_instances", order_by=(KegInstance.id,), **filters)

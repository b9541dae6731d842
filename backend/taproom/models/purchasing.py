from __future__ import annotations

from ..extensions import db
from taproom.time_utils import to_utc_z

PO_PENDING = "PENDING"
PO_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
PO_RECEIVED = "RECEIVED"
PO_CANCELLED = "CANCELLED"


class PurchaseOrder(db.Model):
    """
    Supplier order header.

    WHY: Receiving stock is the only path that increases Product.stock
    besides manual inventory edits. Header and items are written as two
    steps; the header is deleted if the item write fails.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    invoice_no = db.Column(db.String(64), nullable=True)

    # PENDING, PARTIALLY_RECEIVED, RECEIVED, CANCELLED
    status = db.Column(db.String(24), nullable=False, default=PO_PENDING, index=True)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    order_date = db.Column(db.Date, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by_id = db.Column(db.Integer, nullable=True)

    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_name": self.supplier_name,
            "invoice_no": self.invoice_no,
            "status": self.status,
            "total_cost_cents": self.total_cost_cents,
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "received_by_id": self.received_by_id,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_items_po_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "cost_cents": self.cost_cents,
        }

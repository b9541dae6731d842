from __future__ import annotations

from ..extensions import db
from taproom.time_utils import to_utc_z

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_MPESA = "MPESA"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_MPESA)


class Sale(db.Model):
    """
    Sale header, written once and never updated.

    WHY: A sale is a business event. Prices, names and discount are copied in
    at sale time so later catalog edits do not rewrite history.

    TOTALS (cents):
    - gross_total_cents = sum(line_total_cents)
    - total_cents = gross_total_cents - discount_amount_cents
    - total_cents = subtotal_cents + tax_cents (tax is VAT-inclusive)

    ATOMICITY: The header never exists without its items. If the item write
    fails, the header is deleted by a compensating action.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_served_by_occurred", "served_by_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # CASH, CARD, MPESA
    payment_method = db.Column(db.String(16), nullable=False, index=True)

    served_by_id = db.Column(db.Integer, nullable=False)
    served_by_name = db.Column(db.String(120), nullable=False)
    customer_type = db.Column(db.String(64), nullable=False, default="Walk-in")

    gross_total_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    # Discount snapshot (name + absolute amount)
    discount_name = db.Column(db.String(120), nullable=True)
    discount_amount_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "payment_method": self.payment_method,
            "served_by_id": self.served_by_id,
            "served_by_name": self.served_by_name,
            "customer_type": self.customer_type,
            "gross_total_cents": self.gross_total_cents,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "discount": (
                {"name": self.discount_name, "amount_cents": self.discount_amount_cents}
                if self.discount_name else None
            ),
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """Line item on a sale; a snapshot of the product at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }

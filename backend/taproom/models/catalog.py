from __future__ import annotations

from ..extensions import db
from taproom.time_utils import to_utc_z

PRODUCT_STOCKED = "STOCKED"
PRODUCT_SERVICE = "SERVICE"
PRODUCT_KEG = "KEG"
PRODUCT_TYPES = (PRODUCT_STOCKED, PRODUCT_SERVICE, PRODUCT_KEG)

KEG_FULL = "FULL"
KEG_TAPPED = "TAPPED"
KEG_EMPTY = "EMPTY"

MEASURE_UNITS = ("ml", "L", "g", "kg")


class Product(db.Model):
    """
    Catalog entry sold at the counter.

    PRODUCT TYPES:
    - STOCKED: discrete units; stock is decremented by sales and may never go negative.
    - SERVICE: no stock concept. When linked_keg_product_id is set, each unit
      sold draws serving_size (in serving_size_unit) from the tapped keg of
      the linked KEG product instead of touching any stock counter.
    - KEG: a container product. stock counts physical kegs received; volume is
      tracked per KegInstance, not here.

    Authoritative prices are in cents.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_type", "product_type"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="Uncategorized")
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    product_type = db.Column(db.String(16), nullable=False, default=PRODUCT_STOCKED)

    # STOCKED / KEG
    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)

    # KEG
    keg_capacity = db.Column(db.Float, nullable=True)
    keg_capacity_unit = db.Column(db.String(4), nullable=True)

    # SERVICE drawn from a keg
    linked_keg_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    serving_size = db.Column(db.Float, nullable=True)
    serving_size_unit = db.Column(db.String(4), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_keg_service(self) -> bool:
        return self.product_type == PRODUCT_SERVICE and self.linked_keg_product_id is not None

    @property
    def is_low_stock(self) -> bool:
        return self.product_type == PRODUCT_STOCKED and self.stock <= self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} type={self.product_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "product_type": self.product_type,
            "stock": self.stock if self.product_type != PRODUCT_SERVICE else None,
            "low_stock_threshold": self.low_stock_threshold,
            "keg_capacity": self.keg_capacity,
            "keg_capacity_unit": self.keg_capacity_unit,
            "linked_keg_product_id": self.linked_keg_product_id,
            "serving_size": self.serving_size,
            "serving_size_unit": self.serving_size_unit,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class KegInstance(db.Model):
    """
    One physical keg of a KEG product.

    LIFECYCLE:
    - FULL: received, untouched, current_volume == capacity
    - TAPPED: on the tap, sales draw volume from it
    - EMPTY: closed; terminal. Restocking creates a new instance.

    INVARIANTS:
    - 0 <= current_volume <= capacity (ml or g)
    - At most one TAPPED instance per product_id
    - sales is append-only: each entry attributes volume and revenue to a server
    """
    __tablename__ = "keg_instances"
    __table_args__ = (
        db.Index("ix_keg_instances_product_status", "product_id", "status"),
        # One tapped keg per product
        db.Index(
            "uq_keg_instances_one_tapped",
            "product_id",
            unique=True,
            sqlite_where=db.text("status = 'TAPPED'"),
            postgresql_where=db.text("status = 'TAPPED'"),
        ),
        db.CheckConstraint("current_volume >= 0", name="ck_keg_volume_non_negative"),
        db.CheckConstraint("current_volume <= capacity", name="ck_keg_volume_within_capacity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    # Normalized to ml or g
    capacity = db.Column(db.Integer, nullable=False)
    current_volume = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=KEG_FULL, index=True)

    tapped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    tapped_by_id = db.Column(db.Integer, nullable=True)
    tapped_by_name = db.Column(db.String(120), nullable=True)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_id = db.Column(db.Integer, nullable=True)
    closed_by_name = db.Column(db.String(120), nullable=True)

    # Residual volume discarded when the keg was closed
    written_off_volume = db.Column(db.Integer, nullable=True)

    # Per-sale attributions: user_id, user_name, sale_id, volume_sold, revenue_cents, sold_at
    sales = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", foreign_keys=[product_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<KegInstance id={self.id} product_id={self.product_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "capacity": self.capacity,
            "current_volume": self.current_volume,
            "status": self.status,
            "tapped_at": to_utc_z(self.tapped_at) if self.tapped_at else None,
            "tapped_by_id": self.tapped_by_id,
            "tapped_by_name": self.tapped_by_name,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_id": self.closed_by_id,
            "closed_by_name": self.closed_by_name,
            "written_off_volume": self.written_off_volume,
            "sales": list(self.sales or []),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }

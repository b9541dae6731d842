from __future__ import annotations

from ..extensions import db
from taproom.time_utils import to_utc_z

CATEGORY_SALES = "sales"
CATEGORY_INVENTORY = "inventory"
CATEGORY_KEG = "keg"
CATEGORY_SHIFT = "shift"
CATEGORY_PURCHASING = "purchasing"
CATEGORY_SYSTEM = "system"


class ActivityLog(db.Model):
    """
    Append-only audit trail of business events.

    - No domain logic here.
    - No updates or deletes of existing rows.
    - occurred_at is business time; created_at is system time (DB default).
    - category "system" is reserved for corrections made by the system
      itself (state healing), distinct from normal shift events.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_category_occurred", "category", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    category = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    details = db.Column(db.Text, nullable=True)

    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    actor_id = db.Column(db.Integer, nullable=True, index=True)
    actor_name = db.Column(db.String(120), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "category": self.category,
            "description": self.description,
            "details": self.details,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from taproom.time_utils import to_utc_z

ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_CASHIER = "CASHIER"
ROLE_SERVER = "SERVER"
ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_SERVER)

CLOCKED_OUT = "CLOCKED_OUT"
CLOCKED_IN = "CLOCKED_IN"
AWAITING_CLEARANCE = "AWAITING_CLEARANCE"


class User(db.Model):
    """
    Staff member who sells, keeps a time clock, and approves shifts.

    WHY: Every sale and every shift must be attributable to a person.

    CLOCK STATUS:
    - time_clock_status is a cached mirror of the user's latest TimeLog.
    - CLOCKED_IN <=> exactly one ONGOING TimeLog exists for the user.
    - AWAITING_CLEARANCE <=> latest TimeLog is PENDING_APPROVAL or REJECTED.
    - clock_in_at mirrors the ONGOING log's clock_in_at and is cleared on clock-out.

    Divergence between the mirror and the log history is repaired only by the
    state healer, never inside a normal operation.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_clock_status", "time_clock_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    # ADMIN, MANAGER, CASHIER, SERVER
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)

    time_clock_status = db.Column(db.String(24), nullable=False, default=CLOCKED_OUT)
    clock_in_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} status={self.time_clock_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "time_clock_status": self.time_clock_status,
            "clock_in_at": to_utc_z(self.clock_in_at) if self.clock_in_at else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }

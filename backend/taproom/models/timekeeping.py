from __future__ import annotations

from ..extensions import db
from taproom.time_utils import to_utc_z

LOG_ONGOING = "ONGOING"
LOG_PENDING_APPROVAL = "PENDING_APPROVAL"
LOG_REJECTED = "REJECTED"
LOG_COMPLETED = "COMPLETED"
OPEN_LOG_STATUSES = (LOG_ONGOING, LOG_PENDING_APPROVAL)


class TimeLog(db.Model):
    """
    One employee shift, from clock-in to final approval or rejection.

    LIFECYCLE:
    - ONGOING: clocked in, shift in progress
    - PENDING_APPROVAL: employee clocked out and declared cash; awaiting a manager count
    - COMPLETED: manager approved (or admin self clock-out)
    - REJECTED: manager rejected the declaration; user stays AWAITING_CLEARANCE

    INVARIANT: at most one ONGOING or PENDING_APPROVAL log per user.

    user_id is not a foreign key: logs survive deletion of the user, and
    user_name keeps the display name for reporting.

    Cash amounts are in cents. expected_* are sales totals per payment
    method since clock-in; difference is declared (or counted) minus expected cash.
    """
    __tablename__ = "time_logs"
    __table_args__ = (
        db.Index("ix_time_logs_user_status", "user_id", "status"),
        # One open shift per user
        db.Index(
            "uq_time_logs_one_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status IN ('ONGOING', 'PENDING_APPROVAL')"),
            postgresql_where=db.text("status IN ('ONGOING', 'PENDING_APPROVAL')"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    user_name = db.Column(db.String(120), nullable=True)

    clock_in_at = db.Column(db.DateTime(timezone=True), nullable=False)
    clock_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_hours = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(24), nullable=False, default=LOG_ONGOING, index=True)

    declared_amount_cents = db.Column(db.Integer, nullable=True)
    counted_amount_cents = db.Column(db.Integer, nullable=True)
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    expected_card_cents = db.Column(db.Integer, nullable=True)
    expected_mpesa_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)

    rejection_reason = db.Column(db.Text, nullable=True)
    approved_by_id = db.Column(db.Integer, nullable=True)
    approved_by_name = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def expected_sales(self) -> dict | None:
        if self.expected_cash_cents is None:
            return None
        return {
            "cash": self.expected_cash_cents,
            "card": self.expected_card_cents or 0,
            "mpesa": self.expected_mpesa_cents or 0,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "clock_in_at": to_utc_z(self.clock_in_at),
            "clock_out_at": to_utc_z(self.clock_out_at) if self.clock_out_at else None,
            "duration_hours": self.duration_hours,
            "status": self.status,
            "declared_amount_cents": self.declared_amount_cents,
            "counted_amount_cents": self.counted_amount_cents,
            "expected_sales": self.expected_sales,
            "difference_cents": self.difference_cents,
            "rejection_reason": self.rejection_reason,
            "approved_by_id": self.approved_by_id,
            "approved_by_name": self.approved_by_name,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }

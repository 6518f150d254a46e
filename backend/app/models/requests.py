from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z
from .audit import AuditMixin


class BookingChangeRequest(AuditMixin, db.Model):
    """
    A customer's request to cancel or reschedule a booking.

    WHY: Customers ask; staff decide. Nothing about the booking changes until
    an approval runs the matching lifecycle transition, and the approval and
    the transition commit together.

    LIFECYCLE:
        PENDING -> APPROVED | REJECTED
    A withdrawn request is soft-deleted while still PENDING.
    """
    __tablename__ = "booking_change_requests"
    __table_args__ = (
        db.UniqueConstraint("request_reference", name="uq_booking_change_requests_reference"),
        db.Index("ix_booking_change_requests_booking_status", "booking_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable reference (e.g., "REQ-7QX2M0LA")
    request_reference = db.Column(db.String(16), nullable=False)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    request_type = db.Column(db.String(16), nullable=False)  # CANCELLATION, RESCHEDULE
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    reason = db.Column(db.String(500), nullable=False)

    # Reschedule target; start time falls back to the booking's current one
    new_booking_date = db.Column(db.Date, nullable=True)
    new_start_time = db.Column(db.String(5), nullable=True)

    reviewed_by = db.Column(db.String(64), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.String(1000), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_reference": self.request_reference,
            "booking_id": self.booking_id,
            "customer_id": self.customer_id,
            "request_type": self.request_type,
            "status": self.status,
            "reason": self.reason,
            "new_booking_date": self.new_booking_date.isoformat() if self.new_booking_date else None,
            "new_start_time": self.new_start_time,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "admin_notes": self.admin_notes,
            "rejection_reason": self.rejection_reason,
            "audit": self.audit.to_dict(),
        }


class RefundRequest(AuditMixin, db.Model):
    """
    A customer's request to have a completed payment refunded.

    Approval issues the refund through the normal refund path; the refund
    transaction id is kept on the request.
    """
    __tablename__ = "refund_requests"
    __table_args__ = (
        db.UniqueConstraint("request_reference", name="uq_refund_requests_reference"),
        db.Index("ix_refund_requests_transaction_status", "transaction_id", "status"),
        db.CheckConstraint("amount_cents > 0", name="ck_refund_requests_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable reference (e.g., "TRQ-5B1KD9WE")
    request_reference = db.Column(db.String(16), nullable=False)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(500), nullable=False)

    refund_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    reviewed_by = db.Column(db.String(64), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.String(1000), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_reference": self.request_reference,
            "transaction_id": self.transaction_id,
            "booking_id": self.booking_id,
            "customer_id": self.customer_id,
            "request_type": "REFUND",
            "status": self.status,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "refund_transaction_id": self.refund_transaction_id,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "admin_notes": self.admin_notes,
            "rejection_reason": self.rejection_reason,
            "audit": self.audit.to_dict(),
        }

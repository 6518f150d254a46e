from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z
from .audit import AuditMixin


class Transaction(AuditMixin, db.Model):
    """
    A financial event against one booking: money received or money returned.

    WHY: Payments are facts, not a running balance. The booking's paid and
    remaining amounts are always derived from these rows by ledger_service.

    LIFECYCLE:
        PENDING -> COMPLETED | FAILED | CANCELLED
        COMPLETED -> REFUNDED (only when a linked refund completes)
    Terminal rows are never edited; corrections are new transactions.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_reference", name="uq_transactions_reference"),
        db.Index("ix_transactions_booking_status", "booking_id", "status"),
        db.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable reference (e.g., "TXN-4K8P0QZD")
    transaction_reference = db.Column(db.String(16), nullable=False)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False)  # PAYMENT, PARTIAL, BALANCE, REFUND
    payment_method = db.Column(db.String(16), nullable=False)  # CASH, ELECTRONIC
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    # E-wallet / bank reference; required for ELECTRONIC
    reference_number = db.Column(db.String(64), nullable=True)
    receipt_url = db.Column(db.String(512), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    # Refund linkage: refund -> original always, original -> refund once completed
    original_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    refund_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    refund_reason = db.Column(db.String(200), nullable=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_by = db.Column(db.String(64), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failure_reason = db.Column(db.String(200), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_reference": self.transaction_reference,
            "booking_id": self.booking_id,
            "transaction_type": self.transaction_type,
            "payment_method": self.payment_method,
            "status": self.status,
            "amount_cents": self.amount_cents,
            "reference_number": self.reference_number,
            "receipt_url": self.receipt_url,
            "notes": self.notes,
            "original_transaction_id": self.original_transaction_id,
            "refund_transaction_id": self.refund_transaction_id,
            "refund_reason": self.refund_reason,
            "payment_date": to_utc_z(self.payment_date),
            "verified_by": self.verified_by,
            "verified_at": to_utc_z(self.verified_at),
            "failure_reason": self.failure_reason,
            "audit": self.audit.to_dict(),
        }

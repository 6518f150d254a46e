from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow
from .audit import AuditMixin


class Booking(AuditMixin, db.Model):
    """
    A reserved photography session.

    WHY: The booking is the aggregate every payment, slot and lifecycle rule
    hangs off. Status only changes through booking_state transitions; amounts
    keep final_amount_cents = max(0, total - discount).

    Line items are stored in booking_lines and always present: a package
    booking gets the package's items copied in at creation.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.UniqueConstraint("booking_reference", name="uq_bookings_reference"),
        # Busy-interval lookups: one photographer, one date
        db.Index("ix_bookings_photographer_date", "photographer_id", "booking_date"),
        db.Index("ix_bookings_customer_status", "customer_id", "status"),
        db.CheckConstraint("discount_amount_cents >= 0", name="ck_bookings_discount_nonneg"),
        db.CheckConstraint("discount_amount_cents <= total_amount_cents", name="ck_bookings_discount_le_total"),
        db.CheckConstraint("final_amount_cents >= 0", name="ck_bookings_final_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable reference (e.g., "BK-7Q2M9XA1")
    booking_reference = db.Column(db.String(16), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id"), nullable=True)
    photographer_id = db.Column(db.Integer, db.ForeignKey("photographers.id"), nullable=True)
    promo_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)

    # Schedule (wall-clock in BUSINESS_TIMEZONE)
    booking_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)  # HH:MM
    end_time = db.Column(db.String(5), nullable=False)  # HH:MM
    session_duration_minutes = db.Column(db.Integer, nullable=False)

    location = db.Column(db.String(200), nullable=False)
    theme = db.Column(db.String(50), nullable=True)
    special_requests = db.Column(db.String(500), nullable=True)
    is_customized = db.Column(db.Boolean, nullable=False, default=False)
    customization_notes = db.Column(db.String(500), nullable=True)
    photographer_notes = db.Column(db.String(1000), nullable=True)

    # Amounts (all in cents)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Lifecycle: PENDING, CONFIRMED, ONGOING, COMPLETED, CANCELLED, RESCHEDULED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_reason = db.Column(db.String(200), nullable=True)
    rescheduled_from = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    lines = db.relationship(
        "BookingLine",
        backref="booking",
        order_by="BookingLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self, *, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "booking_reference": self.booking_reference,
            "customer_id": self.customer_id,
            "package_id": self.package_id,
            "photographer_id": self.photographer_id,
            "promo_id": self.promo_id,
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "session_duration_minutes": self.session_duration_minutes,
            "location": self.location,
            "theme": self.theme,
            "special_requests": self.special_requests,
            "is_customized": self.is_customized,
            "customization_notes": self.customization_notes,
            "photographer_notes": self.photographer_notes,
            "total_amount_cents": self.total_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "final_amount_cents": self.final_amount_cents,
            "status": self.status,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_reason": self.cancelled_reason,
            "rescheduled_from": self.rescheduled_from.isoformat() if self.rescheduled_from else None,
            "version_id": self.version_id,
            "audit": self.audit.to_dict(),
        }
        if include_lines:
            data["services"] = [line.to_dict() for line in self.lines]
        return data


class BookingLine(db.Model):
    """One service line on a booking; line_total_cents = quantity * price_per_unit_cents."""
    __tablename__ = "booking_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_booking_lines_quantity"),
        db.CheckConstraint("price_per_unit_cents >= 0", name="ck_booking_lines_price"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "service_id": self.service_id,
            "quantity": self.quantity,
            "price_per_unit_cents": self.price_per_unit_cents,
            "line_total_cents": self.line_total_cents,
            "duration_minutes": self.duration_minutes,
        }


class BookingEvent(db.Model):
    """
    Append-only audit trail of booking lifecycle events.

    Written in the same DB transaction as the change it records; never
    updated or deleted.
    """
    __tablename__ = "booking_events"
    __table_args__ = (
        db.Index("ix_booking_events_booking_occurred", "booking_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    event_type = db.Column(db.String(32), nullable=False)  # CREATED, CONFIRMED, CANCELLED, PAYMENT_RECORDED, ...
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "event_type": self.event_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "transaction_id": self.transaction_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class PhotographerDayLock(db.Model):
    """
    Serialization point for writes touching one photographer's day.

    Every booking write that claims time first bumps this row, so concurrent
    writers for the same (photographer, date) queue up behind the row lock
    (or the SQLite write lock) before re-checking availability.
    """
    __tablename__ = "photographer_day_locks"
    __table_args__ = (
        db.UniqueConstraint("photographer_id", "lock_date", name="uq_photographer_day_locks_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    photographer_id = db.Column(db.Integer, db.ForeignKey("photographers.id"), nullable=False)
    lock_date = db.Column(db.Date, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=0)

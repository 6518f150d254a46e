from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z
from .audit import AuditMixin


class Promotion(AuditMixin, db.Model):
    """
    Promo code redeemable on a booking.

    discount_value is a whole percent (1-100) for PERCENTAGE and cents for
    FIXED_AMOUNT. usage_count is only ever changed by the atomic conditional
    increment in the promotion store.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.UniqueConstraint("promo_code", name="uq_promotions_code"),
        db.CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="ck_promotions_usage_within_limit",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    promo_code = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)

    promo_type = db.Column(db.String(16), nullable=False)  # EARLY_BIRD, LOYALTY, SEASONAL, SPECIAL
    discount_type = db.Column(db.String(16), nullable=False)  # PERCENTAGE, FIXED_AMOUNT
    discount_value = db.Column(db.Integer, nullable=False)

    min_advance_days = db.Column(db.Integer, nullable=True)
    min_booking_amount_cents = db.Column(db.Integer, nullable=True)
    max_discount_amount_cents = db.Column(db.Integer, nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "promo_code": self.promo_code,
            "name": self.name,
            "description": self.description,
            "promo_type": self.promo_type,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "min_advance_days": self.min_advance_days,
            "min_booking_amount_cents": self.min_booking_amount_cents,
            "max_discount_amount_cents": self.max_discount_amount_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "audit": self.audit.to_dict(),
        }

# Overview: Promo code evaluation, atomic redemption and promotion setup.

"""
Promotions Service

evaluate_promo() is a pure decision: given a promotion and a provisional
booking it says whether the promo applies and how much it takes off.
Nothing is written; an inapplicable promo never touches usage_count.

consume_promo_usage() is the only writer of usage_count. It is a single
conditional UPDATE (increment only while below the limit), so two bookings
racing for the last redemption cannot both win.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from app.errors import NotFoundError, PromoExhaustedError, ValidationError
from app.stores import get_stores
from app.time_utils import parse_iso_datetime, to_business_time, utcnow
from app.validation import FieldErrors, read_amount, read_int, read_str, require_choice
from .money import clamp_discount, percent_of


DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED_AMOUNT = "FIXED_AMOUNT"
VALID_DISCOUNT_TYPES = {DISCOUNT_PERCENTAGE, DISCOUNT_FIXED_AMOUNT}

PROMO_TYPE_EARLY_BIRD = "EARLY_BIRD"
PROMO_TYPE_LOYALTY = "LOYALTY"
PROMO_TYPE_SEASONAL = "SEASONAL"
PROMO_TYPE_SPECIAL = "SPECIAL"
VALID_PROMO_TYPES = {PROMO_TYPE_EARLY_BIRD, PROMO_TYPE_LOYALTY, PROMO_TYPE_SEASONAL, PROMO_TYPE_SPECIAL}

PROMO_CODE_CHARS = set("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_")


@dataclass(frozen=True)
class PromoEvaluation:
    applicable: bool
    discount_amount_cents: int
    reason: Optional[str] = None
    promo_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "applicable": self.applicable,
            "discount_amount_cents": self.discount_amount_cents,
            "reason": self.reason,
            "promo_id": self.promo_id,
        }


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _not_applicable(promo, reason: str) -> PromoEvaluation:
    return PromoEvaluation(False, 0, reason, getattr(promo, "id", None))


def compute_discount(promo, total_cents: int) -> int:
    if promo.discount_type == DISCOUNT_PERCENTAGE:
        discount = percent_of(total_cents, promo.discount_value)
    else:
        discount = promo.discount_value
    if promo.max_discount_amount_cents is not None:
        discount = min(discount, promo.max_discount_amount_cents)
    return clamp_discount(total_cents, discount)


def evaluate_promo(
    promo,
    provisional_total_cents: int,
    booking_date: date,
    *,
    now: Optional[datetime] = None,
    local_now: Optional[datetime] = None,
) -> PromoEvaluation:
    """
    Decide applicability and discount for a provisional booking.

    Checks run in a fixed order and the first failure is reported:
    active, validity window, minimum advance days, minimum amount, usage limit.
    """
    now = now or utcnow()
    local_now = local_now or now

    if not promo.is_active:
        return _not_applicable(promo, "Promo code is not active")

    if promo.valid_from is not None and now < promo.valid_from:
        return _not_applicable(promo, "Promo code is not yet valid")
    if promo.valid_until is not None and now > promo.valid_until:
        return _not_applicable(promo, "Promo code has expired")

    if promo.min_advance_days is not None:
        days_ahead = (booking_date - local_now.date()).days
        if days_ahead < promo.min_advance_days:
            return _not_applicable(
                promo, f"Promo requires booking at least {promo.min_advance_days} days in advance"
            )

    if promo.min_booking_amount_cents is not None and provisional_total_cents < promo.min_booking_amount_cents:
        return _not_applicable(promo, "Booking total is below the promo minimum")

    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        return _not_applicable(promo, "Promo code usage limit reached")

    return PromoEvaluation(True, compute_discount(promo, provisional_total_cents), None, promo.id)


def consume_promo_usage(promo_id: int, *, stores=None) -> None:
    """
    Atomically redeem one use of a promotion.

    Runs inside the caller's DB transaction; the caller commits.

    Raises:
        PromoExhaustedError: the promotion hit its limit (or was deactivated)
            between evaluation and redemption
    """
    stores = stores or get_stores()
    if not stores.promotions.try_increment_usage(promo_id):
        raise PromoExhaustedError("Promo code is no longer available; please retry without it")


def get_promotion_by_code(code: str, *, stores=None):
    stores = stores or get_stores()
    promo = stores.promotions.get_by_code(normalize_code(code))
    if promo is None:
        raise NotFoundError(f"Promo code '{normalize_code(code)}' not found")
    return promo


def evaluate_code(
    code: str,
    provisional_total_cents: int,
    booking_date: date,
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> PromoEvaluation:
    """Look a code up and evaluate it without redeeming it."""
    now = now or utcnow()
    promo = get_promotion_by_code(code, stores=stores)
    return evaluate_promo(promo, provisional_total_cents, booking_date, now=now, local_now=to_business_time(now))


# =============================================================================
# PROMOTION SETUP
# =============================================================================

def parse_promotion_payload(data: dict) -> dict:
    errors = FieldErrors()
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    code = read_str(data, "promo_code", errors, required=True, min_length=3, max_length=20)
    if code is not None:
        code = code.upper()
        if not set(code) <= PROMO_CODE_CHARS:
            errors.add("promo_code", "may only contain letters, digits and underscores")

    name = read_str(data, "name", errors, required=True, max_length=100)
    description = read_str(data, "description", errors, max_length=500)
    promo_type = require_choice(
        read_str(data, "promo_type", errors, required=True), "promo_type", VALID_PROMO_TYPES, errors
    )
    discount_type = require_choice(
        read_str(data, "discount_type", errors, required=True), "discount_type", VALID_DISCOUNT_TYPES, errors
    )
    discount_value = read_int(data, "discount_value", errors, required=True, minimum=1)
    if discount_type == DISCOUNT_PERCENTAGE and discount_value is not None and discount_value > 100:
        errors.add("discount_value", "percentage discount cannot exceed 100")

    min_advance_days = read_int(data, "min_advance_days", errors, minimum=0)
    min_booking_amount_cents = read_amount(data, "min_booking_amount_cents", errors)
    max_discount_amount_cents = read_amount(data, "max_discount_amount_cents", errors)
    usage_limit = read_int(data, "usage_limit", errors, minimum=1)

    valid_from = valid_until = None
    for key in ("valid_from", "valid_until"):
        raw = data.get(key)
        if raw is None:
            continue
        try:
            parsed = parse_iso_datetime(raw) if isinstance(raw, str) else None
        except ValueError:
            parsed = None
        if parsed is None:
            errors.add(key, "must be an ISO-8601 datetime")
        elif key == "valid_from":
            valid_from = parsed
        else:
            valid_until = parsed
    if valid_from and valid_until and valid_until <= valid_from:
        errors.add("valid_until", "must be after valid_from")

    errors.raise_if_any("Invalid promotion")
    return {
        "promo_code": code,
        "name": name,
        "description": description,
        "promo_type": promo_type,
        "discount_type": discount_type,
        "discount_value": discount_value,
        "min_advance_days": min_advance_days,
        "min_booking_amount_cents": min_booking_amount_cents,
        "max_discount_amount_cents": max_discount_amount_cents,
        "usage_limit": usage_limit,
        "valid_from": valid_from,
        "valid_until": valid_until,
    }


def create_promotion(data: dict, actor_id: Optional[str], *, stores=None):
    stores = stores or get_stores()
    fields = parse_promotion_payload(data)
    if stores.promotions.get_by_code(fields["promo_code"]) is not None:
        raise ValidationError(
            f"Promo code '{fields['promo_code']}' already exists",
            details={"promo_code": "already exists"},
        )
    promo = stores.promotions.add(fields, actor_id)
    stores.commit()
    return promo


def list_promotions(*, active_only: bool = False, stores=None) -> list:
    stores = stores or get_stores()
    return stores.promotions.list(active_only=active_only)

import pytest

from app.services.money import clamp_discount, final_amount, format_cents, line_total, percent_of, sum_cents
from app.services.references import (
    BOOKING_PREFIX,
    BOOKING_REFERENCE_RE,
    TRANSACTION_PREFIX,
    TRANSACTION_REFERENCE_RE,
    ReferenceExhaustedError,
    generate_unique_reference,
)


class TestPercentOf:
    def test_twenty_percent_of_one_thousand(self):
        assert percent_of(100000, 20) == 20000

    def test_rounds_half_up_to_the_cent(self):
        assert percent_of(101, 12) == 12
        assert percent_of(105, 10) == 11
        assert percent_of(104, 10) == 10

    def test_zero_and_full(self):
        assert percent_of(99999, 0) == 0
        assert percent_of(99999, 100) == 99999

    def test_rejects_negative_inputs(self):
        with pytest.raises(ValueError):
            percent_of(-1, 10)


class TestAmounts:
    def test_final_amount_never_negative(self):
        assert final_amount(100000, 20000) == 80000
        assert final_amount(5000, 7000) == 0

    def test_clamp_discount(self):
        assert clamp_discount(5000, 7000) == 5000
        assert clamp_discount(5000, -10) == 0
        assert clamp_discount(5000, 1200) == 1200

    def test_line_total_and_sum(self):
        assert line_total(3, 2500) == 7500
        assert sum_cents([7500, 2500, 0]) == 10000
        assert sum_cents([]) == 0

    def test_format_cents(self):
        assert format_cents(123456) == "1,234.56"
        assert format_cents(5) == "0.05"
        assert format_cents(-30000) == "-300.00"


class TestReferences:
    def test_booking_reference_format(self):
        ref = generate_unique_reference(BOOKING_PREFIX, lambda _: False)
        assert BOOKING_REFERENCE_RE.match(ref)

    def test_transaction_reference_format(self):
        ref = generate_unique_reference(TRANSACTION_PREFIX, lambda _: False)
        assert TRANSACTION_REFERENCE_RE.match(ref)

    def test_retries_until_unused(self):
        seen = []

        def exists(candidate):
            seen.append(candidate)
            return len(seen) < 3

        ref = generate_unique_reference(BOOKING_PREFIX, exists)
        assert len(seen) == 3
        assert ref == seen[-1]

    def test_gives_up_after_max_attempts(self):
        with pytest.raises(ReferenceExhaustedError):
            generate_unique_reference(BOOKING_PREFIX, lambda _: True, attempts=4)

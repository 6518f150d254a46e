# Overview: Human-readable reference codes for bookings, transactions and customer requests.

from __future__ import annotations

import random
import re
import string
from typing import Callable

BOOKING_PREFIX = "BK"
TRANSACTION_PREFIX = "TXN"
CHANGE_REQUEST_PREFIX = "REQ"
REFUND_REQUEST_PREFIX = "TRQ"
SUFFIX_LENGTH = 8
_ALPHABET = string.ascii_uppercase + string.digits

BOOKING_REFERENCE_RE = re.compile(r"^BK-[A-Z0-9]{8}$")
TRANSACTION_REFERENCE_RE = re.compile(r"^TXN-[A-Z0-9]{8}$")
CHANGE_REQUEST_REFERENCE_RE = re.compile(r"^REQ-[A-Z0-9]{8}$")
REFUND_REQUEST_REFERENCE_RE = re.compile(r"^TRQ-[A-Z0-9]{8}$")

_rng = random.SystemRandom()


class ReferenceExhaustedError(RuntimeError):
    """No unused reference found within the allowed attempts."""


def random_reference(prefix: str) -> str:
    suffix = "".join(_rng.choice(_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}-{suffix}"


def generate_unique_reference(prefix: str, exists: Callable[[str], bool], *, attempts: int = 10) -> str:
    """
    Draw random references until one is not taken.

    The unique index on the column is still the final authority; this only
    makes a collision at insert time vanishingly rare.
    """
    for _ in range(attempts):
        candidate = random_reference(prefix)
        if not exists(candidate):
            return candidate
    raise ReferenceExhaustedError(f"Could not allocate a unique {prefix} reference after {attempts} attempts")

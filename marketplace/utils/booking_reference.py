"""Booking reference generation."""

import random
import string

REFERENCE_PREFIX = "BK"
REFERENCE_LENGTH = 8


def generate_booking_reference() -> str:
    """Generate a human-readable booking reference.

    Uniqueness is enforced by the ``bookings.reference`` unique constraint;
    callers retry on collision.

    Returns:
        str: Reference like 'BK-A3B7K9Q2'
    """
    chars = string.ascii_uppercase + string.digits
    random_part = "".join(random.choices(chars, k=REFERENCE_LENGTH))
    return f"{REFERENCE_PREFIX}-{random_part}"

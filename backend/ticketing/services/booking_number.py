"""
Booking number allocation.

Primary format:  BOOK-YYYYMMDD-XXXXX  (UTC date, 5 chars from A-Z0-9)
Fallback format: BOOK-NNNNNNNN-XXXX   (last 8 digits of epoch millis, 4 base36 chars)

The primary scheme is checked against the store and retried on collision.
The fallback is NOT checked. It exists so a flood of collisions (or a slow
store) degrades booking numbers instead of failing admissions. With 36**4
suffixes per millisecond tail, two fallback numbers collide only when two
admissions land on the same millisecond and draw the same suffix (about
1 in 1.7 million). The unique index on bookings.booking_number turns that
case into a failed insert, never a duplicate.
"""

import secrets
import string
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.clock import utcnow
from ticketing.core.config import get_settings
from ticketing.core.errors import AllocationExhausted
from ticketing.core.logging import get_logger
from ticketing.models.booking import Booking

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
BASE36_ALPHABET = string.digits + string.ascii_uppercase


def generate_booking_number() -> str:
    date_part = utcnow().strftime("%Y%m%d")
    code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(5))
    return f"BOOK-{date_part}-{code}"


def fallback_booking_number() -> str:
    millis_tail = str(int(time.time() * 1000))[-8:]
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(4))
    return f"BOOK-{millis_tail}-{suffix}"


async def booking_number_exists(db: AsyncSession, booking_number: str) -> bool:
    result = await db.execute(
        select(Booking.id).where(Booking.booking_number == booking_number).limit(1)
    )
    return result.first() is not None


async def allocate(db: AsyncSession, max_attempts: int = None) -> str:
    """
    Return a booking number not yet present in the store.
    Raises AllocationExhausted after `max_attempts` collisions.
    """
    if max_attempts is None:
        max_attempts = get_settings().BOOKING_NUMBER_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        candidate = generate_booking_number()
        if not await booking_number_exists(db, candidate):
            return candidate
        logger.info("booking_number_collision", candidate=candidate, attempt=attempt)

    raise AllocationExhausted(max_attempts)

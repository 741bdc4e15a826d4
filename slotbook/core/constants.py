"""Business constants for the SlotBook booking core."""

from __future__ import annotations

from decimal import Decimal

# Workshop catalog constraints
MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 100
MIN_DESCRIPTION_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 1000
MIN_PRICE = Decimal("0")
MAX_PRICE = Decimal("1000000")

# Capacity constraints (workshops and time slots)
MIN_CAPACITY = 1
MAX_CAPACITY = 100

# Time slot duration constraints
MIN_SLOT_DURATION = 30  # minutes
MAX_SLOT_DURATION = 480  # minutes (8 hours)

# Reviews
MIN_RATING = 1
MAX_RATING = 5
MIN_COMMENT_LENGTH = 10
MAX_COMMENT_LENGTH = 500

# Bookings
MAX_NOTES_LENGTH = 500
MAX_REASON_LENGTH = 500

# Payments
MAX_PAYMENT_AMOUNT = Decimal("10000000")
DEFAULT_CURRENCY = "KRW"

# Refund tiers: (minimum whole hours before start, refund percentage).
# Ordered from the highest tier down; the lower bound of each tier is inclusive.
REFUND_TIERS: tuple[tuple[int, int], ...] = (
    (168, 100),  # 7 days
    (72, 80),  # 3 days
    (24, 50),  # 1 day
)

MONEY_QUANTUM = Decimal("0.01")

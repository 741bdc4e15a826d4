"""
Field-level validators.

Each validator is pure: it returns ``None`` when the value is valid and a
human-readable violation message otherwise. Services gather the messages
with :func:`collect_errors` and refuse the mutation if any are present.
"""

from __future__ import annotations

from datetime import date, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from slotbook.core import constants as c


def _as_decimal(value: object) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        return None
    # NaN and infinities do not order against money amounts
    return result if result.is_finite() else None


def validate_title(title: Optional[str]) -> Optional[str]:
    if not title:
        return "Title is required"
    if len(title) < c.MIN_TITLE_LENGTH:
        return f"Title must be at least {c.MIN_TITLE_LENGTH} characters"
    if len(title) > c.MAX_TITLE_LENGTH:
        return f"Title must be at most {c.MAX_TITLE_LENGTH} characters"
    return None


def validate_description(description: Optional[str]) -> Optional[str]:
    if not description:
        return "Description is required"
    if len(description) < c.MIN_DESCRIPTION_LENGTH:
        return f"Description must be at least {c.MIN_DESCRIPTION_LENGTH} characters"
    if len(description) > c.MAX_DESCRIPTION_LENGTH:
        return f"Description must be at most {c.MAX_DESCRIPTION_LENGTH} characters"
    return None


def validate_price(price: object) -> Optional[str]:
    if price is None:
        return "Price is required"
    amount = _as_decimal(price)
    if amount is None:
        return "Price must be a number"
    if amount < c.MIN_PRICE:
        return "Price cannot be negative"
    if amount > c.MAX_PRICE:
        return f"Price must be at most {c.MAX_PRICE:,}"
    return None


def validate_capacity(capacity: Optional[int]) -> Optional[str]:
    if capacity is None:
        return "Capacity is required"
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        return "Capacity must be a whole number"
    if capacity < c.MIN_CAPACITY:
        return f"Capacity must be at least {c.MIN_CAPACITY}"
    if capacity > c.MAX_CAPACITY:
        return f"Capacity must be at most {c.MAX_CAPACITY}"
    return None


def validate_rating(rating: Optional[int]) -> Optional[str]:
    if rating is None:
        return "Rating is required"
    if rating < c.MIN_RATING or rating > c.MAX_RATING:
        return f"Rating must be between {c.MIN_RATING} and {c.MAX_RATING}"
    return None


def validate_comment(comment: Optional[str]) -> Optional[str]:
    if not comment:
        return "Comment is required"
    if len(comment) < c.MIN_COMMENT_LENGTH:
        return f"Comment must be at least {c.MIN_COMMENT_LENGTH} characters"
    if len(comment) > c.MAX_COMMENT_LENGTH:
        return f"Comment must be at most {c.MAX_COMMENT_LENGTH} characters"
    return None


def validate_notes(notes: Optional[str]) -> Optional[str]:
    if notes is not None and len(notes) > c.MAX_NOTES_LENGTH:
        return f"Notes must be at most {c.MAX_NOTES_LENGTH} characters"
    return None


def validate_total_amount(amount: object) -> Optional[str]:
    if amount is None:
        return "Total amount is required"
    value = _as_decimal(amount)
    if value is None:
        return "Total amount must be a number"
    if value < 0:
        return "Total amount cannot be negative"
    return None


def validate_payment_amount(amount: object) -> Optional[str]:
    if amount is None:
        return "Payment amount is required"
    value = _as_decimal(amount)
    if value is None:
        return "Payment amount must be a number"
    if value <= 0:
        return "Payment amount must be greater than zero"
    if value > c.MAX_PAYMENT_AMOUNT:
        return f"Payment amount must be at most {c.MAX_PAYMENT_AMOUNT:,}"
    return None


def validate_refund_amount(amount: object, paid_amount: Decimal) -> Optional[str]:
    value = _as_decimal(amount)
    if value is None:
        return "Refund amount must be a number"
    if value <= 0:
        return "Refund amount must be greater than zero"
    if value > paid_amount:
        return "Refund amount cannot exceed the paid amount"
    return None


def validate_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None or not reason.strip():
        return "A reason is required"
    if len(reason) > c.MAX_REASON_LENGTH:
        return f"Reason must be at most {c.MAX_REASON_LENGTH} characters"
    return None


def validate_time_range(start: Optional[time], end: Optional[time]) -> Optional[str]:
    if start is None or end is None:
        return "Both start and end time are required"
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute
    if start_minutes >= end_minutes:
        return "End time must be after start time"
    duration = end_minutes - start_minutes
    if duration < c.MIN_SLOT_DURATION:
        return f"Slots must be at least {c.MIN_SLOT_DURATION} minutes long"
    if duration > c.MAX_SLOT_DURATION:
        return f"Slots must be at most {c.MAX_SLOT_DURATION // 60} hours long"
    return None


def validate_slot_duration(minutes: Optional[int]) -> Optional[str]:
    if minutes is None:
        return "Slot duration is required"
    if minutes < c.MIN_SLOT_DURATION or minutes > c.MAX_SLOT_DURATION:
        return (
            f"Slot duration must be between {c.MIN_SLOT_DURATION} and "
            f"{c.MAX_SLOT_DURATION} minutes"
        )
    return None


def validate_slot_date(value: Optional[date], today: date, max_advance_days: int) -> Optional[str]:
    if value is None:
        return "Date is required"
    if value < today:
        return "Date cannot be in the past"
    if value > today + timedelta(days=max_advance_days):
        return f"Date cannot be more than {max_advance_days} days ahead"
    return None


def validate_date_range(
    start: date, end: date, today: date, max_range_days: int
) -> Optional[str]:
    if start > end:
        return "Start date must not be after end date"
    if start < today:
        return "Start date cannot be in the past"
    if (end - start).days > max_range_days:
        return f"Date range cannot exceed {max_range_days} days"
    return None


def validate_item_id(item_id: Optional[str]) -> Optional[str]:
    if item_id is not None and not item_id.strip():
        return "Item id cannot be blank"
    return None


def collect_errors(*messages: Optional[str]) -> list[str]:
    return [m for m in messages if m]


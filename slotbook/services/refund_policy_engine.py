"""Time-tiered refund policy for cancelled bookings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Sequence

from slotbook.core.constants import REFUND_TIERS
from slotbook.domain.entities import MoneyLike, to_money


@dataclass(frozen=True)
class RefundPolicyResult:
    hours_until_start: int
    percentage: int
    refund_amount: Decimal
    policy_basis: str

    @property
    def eligible(self) -> bool:
        return self.refund_amount > 0

    def to_payload(self) -> dict[str, object]:
        return {
            "hours_until_start": self.hours_until_start,
            "percentage": self.percentage,
            "refund_amount": str(self.refund_amount),
            "policy_basis": self.policy_basis,
            "eligible": self.eligible,
        }


def hours_until(slot_start: datetime, now: datetime) -> int:
    """Whole hours from ``now`` to ``slot_start``, truncated toward zero."""
    return int((slot_start - now) / timedelta(hours=1))


def _describe(min_hours: int, percentage: int, upper_hours: int | None) -> str:
    if upper_hours is None:
        return f">={min_hours} hours before start: {percentage}% refund"
    return f"{min_hours}-{upper_hours} hours before start: {percentage}% refund"


class RefundPolicyEngine:
    """
    Maps (total amount, slot start, now) to a refund amount.

    Tiers are checked from the highest threshold down and the lower bound
    of each tier is inclusive: exactly 168 hours before start is a full refund.
    The engine has no side effects and never reads the clock itself.
    """

    def __init__(self, tiers: Sequence[tuple[int, int]] = REFUND_TIERS) -> None:
        self.tiers = tuple(sorted(tiers, key=lambda tier: tier[0], reverse=True))

    def evaluate(
        self, total_amount: MoneyLike, slot_start: datetime, now: datetime
    ) -> RefundPolicyResult:
        hours = hours_until(slot_start, now)
        upper: int | None = None
        for min_hours, percentage in self.tiers:
            if hours >= min_hours:
                amount = to_money(to_money(total_amount) * percentage / 100)
                return RefundPolicyResult(
                    hours_until_start=hours,
                    percentage=percentage,
                    refund_amount=amount,
                    policy_basis=_describe(min_hours, percentage, upper),
                )
            upper = min_hours
        lowest = self.tiers[-1][0] if self.tiers else 0
        return RefundPolicyResult(
            hours_until_start=hours,
            percentage=0,
            refund_amount=to_money(0),
            policy_basis=f"<{lowest} hours before start: no refund",
        )

    def refund_amount(
        self, total_amount: MoneyLike, slot_start: datetime, now: datetime
    ) -> Decimal:
        return self.evaluate(total_amount, slot_start, now).refund_amount

    def policy_text(self, slot_start: datetime, now: datetime) -> str:
        return self.evaluate(0, slot_start, now).policy_basis

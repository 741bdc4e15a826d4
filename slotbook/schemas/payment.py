"""Payment reporting schemas."""

import datetime as dt
from decimal import Decimal
from typing import Dict, List

from pydantic import Field

from ._strict_base import StrictModel


class MethodBreakdown(StrictModel):
    count: int = 0
    amount: Decimal = Decimal("0.00")


class DailyRevenue(StrictModel):
    date: dt.date
    amount: Decimal
    count: int


class PaymentStatistics(StrictModel):
    """Aggregates over payments created in ``[period_start, period_end)``."""

    period_start: dt.datetime
    period_end: dt.datetime
    total_revenue: Decimal
    total_refunds: Decimal
    net_revenue: Decimal
    transaction_count: int
    successful_count: int
    failed_count: int
    refunded_count: int
    status_counts: Dict[str, int] = Field(default_factory=dict)
    method_breakdown: Dict[str, MethodBreakdown] = Field(default_factory=dict)
    daily_revenue: List[DailyRevenue] = Field(default_factory=list)
    success_rate: float
    refund_rate: float
    average_amount: Decimal

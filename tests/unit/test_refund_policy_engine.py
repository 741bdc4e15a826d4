"""Refund tiers and their exact boundaries."""

from datetime import timedelta
from decimal import Decimal

import pytest

from slotbook.services.refund_policy_engine import RefundPolicyEngine, hours_until
from tests.conftest import NOW

AMOUNT = Decimal("100000")


@pytest.fixture
def engine():
    return RefundPolicyEngine()


@pytest.mark.parametrize(
    "hours,expected",
    [
        (200, Decimal("100000.00")),
        (168, Decimal("100000.00")),
        (100, Decimal("80000.00")),
        (72, Decimal("80000.00")),
        (48, Decimal("50000.00")),
        (24, Decimal("50000.00")),
        (10, Decimal("0.00")),
        (0, Decimal("0.00")),
        (-5, Decimal("0.00")),
    ],
)
def test_tier_amounts(engine, hours, expected):
    start = NOW + timedelta(hours=hours)
    assert engine.refund_amount(AMOUNT, start, NOW) == expected


@pytest.mark.parametrize(
    "delta,expected_pct",
    [
        (timedelta(hours=168) - timedelta(minutes=1), 80),
        (timedelta(hours=72) - timedelta(seconds=1), 50),
        (timedelta(hours=24) - timedelta(minutes=30), 0),
        (timedelta(hours=24, minutes=59), 50),
    ],
)
def test_partial_hours_truncate_down(engine, delta, expected_pct):
    result = engine.evaluate(AMOUNT, NOW + delta, NOW)
    assert result.percentage == expected_pct


def test_hours_until_truncates_toward_zero():
    assert hours_until(NOW + timedelta(hours=5, minutes=59), NOW) == 5
    assert hours_until(NOW - timedelta(minutes=30), NOW) == 0


def test_amounts_are_rounded_to_cents(engine):
    result = engine.evaluate(Decimal("33.33"), NOW + timedelta(hours=100), NOW)
    assert result.refund_amount == Decimal("26.66")
    assert result.eligible


def test_policy_text_names_the_tier(engine):
    assert "100%" in engine.policy_text(NOW + timedelta(days=8), NOW)
    assert "72-168" in engine.policy_text(NOW + timedelta(days=4), NOW)
    assert "no refund" in engine.policy_text(NOW + timedelta(hours=3), NOW)


def test_payload_is_serializable(engine):
    payload = engine.evaluate(AMOUNT, NOW + timedelta(hours=48), NOW).to_payload()
    assert payload == {
        "hours_until_start": 48,
        "percentage": 50,
        "refund_amount": "50000.00",
        "policy_basis": "24-72 hours before start: 50% refund",
        "eligible": True,
    }


def test_custom_tiers_are_sorted(engine):
    custom = RefundPolicyEngine(tiers=[(24, 50), (168, 100)])
    assert custom.refund_amount(AMOUNT, NOW + timedelta(hours=100), NOW) == Decimal("50000.00")

"""
Payment gateway contract.

Declines are ordinary responses (``GatewayStatus.DECLINED`` with a
``failure_reason``). Only a lost or late response is an exception:
``GatewayTimeout`` means the outcome is unknown and the caller must repeat
the call with the same idempotency key.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from slotbook.core.enums import GatewayStatus, PaymentMethod


class GatewayTimeout(Exception):
    """The gateway did not answer within the configured bound."""

    def __init__(self, operation: str, message: str = "Payment gateway timed out"):
        super().__init__(f"{message} ({operation})")
        self.operation = operation


@dataclass(frozen=True)
class GatewayResponse:
    status: GatewayStatus
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    receipt_url: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == GatewayStatus.SUCCEEDED


@runtime_checkable
class PaymentGateway(Protocol):
    """What the payment orchestrator needs from a payment provider."""

    def charge(
        self,
        *,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        idempotency_key: str,
        reference: str,
        payment_token: Optional[str] = None,
    ) -> GatewayResponse:
        ...

    def retry(self, *, transaction_id: str, idempotency_key: str) -> GatewayResponse:
        ...

    def cancel(self, *, transaction_id: str, idempotency_key: str) -> GatewayResponse:
        ...

    def refund(
        self,
        *,
        transaction_id: str,
        amount: Decimal,
        currency: str,
        reason: str,
        idempotency_key: str,
    ) -> GatewayResponse:
        ...

"""
Scriptable in-memory PaymentGateway.

Each operation answers from its own script queue, falling back to success
when the queue is empty. A scripted ``GatewayTimeout`` instance is raised
instead of returned. Like a real provider, a repeated idempotency key gets
the response recorded for it unless that call timed out.
"""

from collections import deque
from decimal import Decimal
import itertools
import threading
from typing import Deque, Dict, List, Optional, Tuple, Union

from slotbook.core.enums import GatewayStatus, PaymentMethod

from .payment_gateway import GatewayResponse, GatewayTimeout

Scripted = Union[GatewayResponse, GatewayStatus, GatewayTimeout]

DEFAULT_OUTCOMES = {
    "charge": GatewayStatus.SUCCEEDED,
    "retry": GatewayStatus.SUCCEEDED,
    "cancel": GatewayStatus.CANCELLED,
    "refund": GatewayStatus.REFUNDED,
}


class FakePaymentGateway:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scripts: Dict[str, Deque[Scripted]] = {op: deque() for op in DEFAULT_OUTCOMES}
        self._by_key: Dict[Tuple[str, str], GatewayResponse] = {}
        self._ids = itertools.count(1)
        self.calls: List[Tuple[str, str]] = []

    def script(self, operation: str, *outcomes: Scripted) -> "FakePaymentGateway":
        """Queue outcomes for the next calls of ``operation``."""
        with self._lock:
            self._scripts[operation].extend(outcomes)
        return self

    def call_count(self, operation: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for op, _ in self.calls if operation is None or op == operation)

    def _answer(self, operation: str, key: str, transaction_id: Optional[str]) -> GatewayResponse:
        with self._lock:
            self.calls.append((operation, key))
            recorded = self._by_key.get((operation, key))
            if recorded is not None:
                return recorded
            queue = self._scripts[operation]
            outcome: Scripted = queue.popleft() if queue else DEFAULT_OUTCOMES[operation]
            if isinstance(outcome, GatewayTimeout):
                raise outcome
            if isinstance(outcome, GatewayStatus):
                outcome = GatewayResponse(
                    status=outcome,
                    transaction_id=transaction_id or f"fake_tx_{next(self._ids)}",
                    failure_reason="Card declined" if outcome == GatewayStatus.DECLINED else None,
                )
            self._by_key[(operation, key)] = outcome
            return outcome

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
        return self._answer("charge", idempotency_key, None)

    def retry(self, *, transaction_id: str, idempotency_key: str) -> GatewayResponse:
        return self._answer("retry", idempotency_key, transaction_id)

    def cancel(self, *, transaction_id: str, idempotency_key: str) -> GatewayResponse:
        return self._answer("cancel", idempotency_key, transaction_id)

    def refund(
        self,
        *,
        transaction_id: str,
        amount: Decimal,
        currency: str,
        reason: str,
        idempotency_key: str,
    ) -> GatewayResponse:
        return self._answer("refund", idempotency_key, None)

# slotbook/services/payment_orchestrator.py
"""
Payment Orchestrator for slotbook

Wraps the payment gateway with idempotency, bounded retries and the
payment status lifecycle:

    processing -> completed | pending | failed | cancelled
    pending    -> completed | failed | cancelled   (gateway settlement)
    failed     -> completed | pending | failed     (retry)
    completed  -> refunded | partially_refunded

A charge record is written in ``processing`` before the gateway is called.
If the response is lost, the record stays ``processing`` and the next call
with the same idempotency key repeats the gateway call with that same key,
which the gateway answers with the original outcome instead of charging
again.
"""

from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from ..core.booking_lock import InProcessMutex, KeyedMutex, keyed_lock
from ..core.config import settings
from ..core.enums import GatewayStatus, PaymentMethod, PaymentStatus
from ..core.exceptions import (
    CancelNotAllowedError,
    ConcurrencyConflictError,
    DomainException,
    NotFoundError,
    PaymentDeclinedError,
    PaymentError,
    PaymentTimeoutError,
    RefundNotAllowedError,
    RetryNotAllowedError,
    ValidationError,
)
from ..core.result import Err, Ok, Result
from ..core.ulid_helper import generate_ulid
from ..domain import validators as v
from ..domain.entities import MoneyLike, PaymentInfo, RefundInfo, to_money
from ..integrations.payment_gateway import GatewayResponse, GatewayTimeout, PaymentGateway
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.interfaces import PaymentStore
from ..schemas.payment import DailyRevenue, MethodBreakdown, PaymentStatistics
from .base import BaseService, Clock

REVENUE_STATUSES = frozenset(
    {PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}
)
REFUNDED_STATUSES = frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED})

_GATEWAY_TO_PAYMENT = {
    GatewayStatus.SUCCEEDED: PaymentStatus.COMPLETED,
    GatewayStatus.PENDING: PaymentStatus.PENDING,
    GatewayStatus.DECLINED: PaymentStatus.FAILED,
    GatewayStatus.CANCELLED: PaymentStatus.CANCELLED,
}


def _rate(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return round(part / whole * 100, 2)


class PaymentOrchestrator(BaseService):
    def __init__(
        self,
        payments: PaymentStore,
        gateway: PaymentGateway,
        *,
        mutex: Optional[KeyedMutex] = None,
        clock: Optional[Clock] = None,
        max_attempts: Optional[int] = None,
        default_currency: Optional[str] = None,
    ):
        super().__init__(clock)
        self.payments = payments
        self.gateway = gateway
        self.mutex = mutex or InProcessMutex()
        self.max_attempts = max_attempts or settings.payment_gateway_max_attempts
        self.default_currency = default_currency or settings.default_currency

    # Gateway plumbing

    def _call_gateway(
        self, operation: str, call: Callable[[], GatewayResponse]
    ) -> Optional[GatewayResponse]:
        """Run ``call`` up to ``max_attempts`` times on timeout; None when all attempts time out."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return call()
            except GatewayTimeout:
                self.logger.warning(
                    "Gateway %s timed out (attempt %d/%d)", operation, attempt, self.max_attempts
                )
        prometheus_metrics.record_payment_operation(operation, "timeout")
        return None

    @staticmethod
    def _lock_key(payment: PaymentInfo) -> str:
        return payment.idempotency_key or payment.payment_id

    def _apply_response(self, payment: PaymentInfo, response: GatewayResponse) -> PaymentInfo:
        now = self.now()
        status = _GATEWAY_TO_PAYMENT.get(response.status, PaymentStatus.PENDING)
        return replace(
            payment,
            status=status,
            transaction_id=response.transaction_id or payment.transaction_id,
            receipt_url=response.receipt_url or payment.receipt_url,
            failure_reason=response.failure_reason if status == PaymentStatus.FAILED else None,
            paid_at=now if status == PaymentStatus.COMPLETED else payment.paid_at,
            updated_at=now,
        )

    @staticmethod
    def _outcome(payment: PaymentInfo) -> Result[PaymentInfo, DomainException]:
        if payment.status == PaymentStatus.FAILED:
            return Err(
                PaymentDeclinedError(
                    payment.failure_reason or "Payment declined", payment_id=payment.payment_id
                )
            )
        return Ok(payment)

    # Charge

    @BaseService.measure_operation("charge")
    def charge(
        self,
        booking_ref: str,
        amount: MoneyLike,
        method: PaymentMethod,
        currency: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        payment_token: Optional[str] = None,
    ) -> Result[PaymentInfo, DomainException]:
        """
        Charge ``amount`` for ``booking_ref`` at most once per idempotency key.

        A repeated key returns the recorded outcome (a decline is returned as
        ``PaymentDeclinedError`` again) without another charge.
        """
        errors = v.collect_errors(v.validate_payment_amount(amount))
        code = (currency or self.default_currency).strip().upper()
        if len(code) != 3 or not code.isalpha():
            errors.append("Currency must be a 3-letter ISO code")
        if errors:
            return Err(ValidationError("Invalid payment", errors=errors))

        money = to_money(amount)
        key = idempotency_key or generate_ulid()
        with keyed_lock(self.mutex, "payment", key) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(key))

            existing = self.payments.get_by_idempotency_key(key)
            if existing is None:
                record = PaymentInfo(
                    payment_id=generate_ulid(),
                    booking_id=booking_ref,
                    method=method,
                    status=PaymentStatus.PROCESSING,
                    amount=money,
                    currency=code,
                    idempotency_key=key,
                    created_at=self.now(),
                )
                stored = self.payments.create(record)
                if stored.payment_id == record.payment_id:
                    return self._settle_charge(stored, payment_token)
                # Another process recorded this key between our read and insert
                existing = stored

            if existing.booking_id != booking_ref or existing.amount != money:
                return Err(
                    ValidationError(
                        "Idempotency key already used for a different payment",
                        errors=[f"Idempotency key {key} belongs to payment {existing.payment_id}"],
                    )
                )
            if existing.status == PaymentStatus.PROCESSING:
                self.logger.info("Resuming unsettled charge %s", existing.payment_id)
                return self._settle_charge(existing, payment_token)
            prometheus_metrics.record_payment_operation("charge", "replayed")
            return self._outcome(existing)

    def _settle_charge(
        self, record: PaymentInfo, payment_token: Optional[str]
    ) -> Result[PaymentInfo, DomainException]:
        key = record.idempotency_key or record.payment_id
        response = self._call_gateway(
            "charge",
            lambda: self.gateway.charge(
                amount=record.amount,
                currency=record.currency,
                method=record.method,
                idempotency_key=key,
                reference=record.booking_id,
                payment_token=payment_token,
            ),
        )
        if response is None:
            return Err(PaymentTimeoutError(self.max_attempts, payment_id=record.payment_id))

        updated = self.payments.update(self._apply_response(record, response))
        prometheus_metrics.record_payment_operation("charge", updated.status.value)
        self.logger.info(
            "Charge %s for %s settled as %s",
            updated.payment_id,
            updated.booking_id,
            updated.status.value,
        )
        return self._outcome(updated)

    # Retry / cancel

    @BaseService.measure_operation("retry_payment")
    def retry(self, payment_id: str) -> Result[PaymentInfo, DomainException]:
        """Re-attempt a failed payment. Any other status is refused."""
        payment = self.payments.get(payment_id)
        if payment is None:
            return Err(NotFoundError("Payment", payment_id))

        with keyed_lock(self.mutex, "payment", self._lock_key(payment)) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(payment_id))
            payment = self.payments.get(payment_id)
            if payment is None:
                return Err(NotFoundError("Payment", payment_id))
            if payment.status != PaymentStatus.FAILED:
                return Err(RetryNotAllowedError(payment_id, payment.status.value))

            # Fresh key per retry; timeouts inside this retry reuse it
            retry_key = f"{self._lock_key(payment)}:retry:{generate_ulid()}"
            if payment.transaction_id:
                transaction_id = payment.transaction_id
                call = lambda: self.gateway.retry(  # noqa: E731
                    transaction_id=transaction_id, idempotency_key=retry_key
                )
            else:
                call = lambda: self.gateway.charge(  # noqa: E731
                    amount=payment.amount,
                    currency=payment.currency,
                    method=payment.method,
                    idempotency_key=retry_key,
                    reference=payment.booking_id,
                )
            response = self._call_gateway("retry", call)
            if response is None:
                return Err(PaymentTimeoutError(self.max_attempts, payment_id=payment_id))

            updated = self.payments.update(self._apply_response(payment, response))
            prometheus_metrics.record_payment_operation("retry", updated.status.value)
            return self._outcome(updated)

    @BaseService.measure_operation("cancel_payment")
    def cancel(self, payment_id: str) -> Result[PaymentInfo, DomainException]:
        """Cancel a payment that is still pending at the gateway."""
        payment = self.payments.get(payment_id)
        if payment is None:
            return Err(NotFoundError("Payment", payment_id))

        with keyed_lock(self.mutex, "payment", self._lock_key(payment)) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(payment_id))
            payment = self.payments.get(payment_id)
            if payment is None:
                return Err(NotFoundError("Payment", payment_id))
            if payment.status != PaymentStatus.PENDING:
                return Err(CancelNotAllowedError(payment_id, payment.status.value))

            if payment.transaction_id:
                transaction_id = payment.transaction_id
                response = self._call_gateway(
                    "cancel",
                    lambda: self.gateway.cancel(
                        transaction_id=transaction_id,
                        idempotency_key=f"{self._lock_key(payment)}:cancel",
                    ),
                )
                if response is None:
                    return Err(PaymentTimeoutError(self.max_attempts, payment_id=payment_id))
                if response.status != GatewayStatus.CANCELLED:
                    prometheus_metrics.record_payment_operation("cancel", "refused")
                    return Err(
                        PaymentError(
                            f"Gateway refused cancellation: {response.failure_reason or response.status.value}",
                            code="CANCEL_FAILED",
                            payment_id=payment_id,
                        )
                    )

            now = self.now()
            updated = self.payments.update(
                replace(payment, status=PaymentStatus.CANCELLED, updated_at=now)
            )
            prometheus_metrics.record_payment_operation("cancel", "cancelled")
            self.logger.info("Cancelled payment %s", payment_id)
            return Ok(updated)

    # Refund

    @BaseService.measure_operation("refund_payment")
    def refund(
        self, payment_id: str, amount: Optional[MoneyLike], reason: str
    ) -> Result[PaymentInfo, DomainException]:
        """
        Refund a completed payment once.

        ``amount`` defaults to, and is capped at, the paid amount. Refunding
        the full amount leaves the payment ``refunded``; less leaves it
        ``partially_refunded``. Either way no second refund is accepted.
        """
        problem = v.validate_reason(reason)
        if problem:
            return Err(ValidationError(problem, errors=[problem]))

        payment = self.payments.get(payment_id)
        if payment is None:
            return Err(NotFoundError("Payment", payment_id))

        with keyed_lock(self.mutex, "payment", self._lock_key(payment)) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(payment_id))
            payment = self.payments.get(payment_id)
            if payment is None:
                return Err(NotFoundError("Payment", payment_id))
            if not payment.can_refund:
                why = (
                    "payment was already refunded"
                    if payment.refund_info is not None
                    else f"payment is {payment.status.value}"
                )
                prometheus_metrics.record_payment_operation("refund", "refused")
                return Err(RefundNotAllowedError(payment_id, why))
            if not payment.transaction_id:
                return Err(RefundNotAllowedError(payment_id, "payment has no gateway transaction"))

            requested = payment.amount if amount is None else to_money(amount)
            refund_amount = min(requested, payment.amount)
            problem = v.validate_refund_amount(refund_amount, payment.amount)
            if problem:
                return Err(ValidationError(problem, errors=[problem]))

            transaction_id = payment.transaction_id
            response = self._call_gateway(
                "refund",
                lambda: self.gateway.refund(
                    transaction_id=transaction_id,
                    amount=refund_amount,
                    currency=payment.currency,
                    reason=reason,
                    idempotency_key=f"{self._lock_key(payment)}:refund",
                ),
            )
            if response is None:
                return Err(PaymentTimeoutError(self.max_attempts, payment_id=payment_id))
            if response.status not in (
                GatewayStatus.REFUNDED,
                GatewayStatus.SUCCEEDED,
                GatewayStatus.PENDING,
            ):
                prometheus_metrics.record_payment_operation("refund", "declined")
                return Err(
                    PaymentError(
                        f"Refund failed: {response.failure_reason or response.status.value}",
                        code="REFUND_FAILED",
                        payment_id=payment_id,
                    )
                )

            now = self.now()
            status = (
                PaymentStatus.REFUNDED
                if refund_amount >= payment.amount
                else PaymentStatus.PARTIALLY_REFUNDED
            )
            updated = self.payments.update(
                replace(
                    payment,
                    status=status,
                    refund_info=RefundInfo(
                        refund_id=generate_ulid(),
                        refund_amount=refund_amount,
                        reason=reason,
                        refunded_at=now,
                        refund_transaction_id=response.transaction_id,
                    ),
                    updated_at=now,
                )
            )
            prometheus_metrics.record_payment_operation("refund", status.value)
            self.logger.info(
                "Refunded %s of %s on payment %s", refund_amount, payment.amount, payment_id
            )
            return Ok(updated)

    # Settlement and queries

    def find_by_idempotency_key(self, idempotency_key: str) -> Optional[PaymentInfo]:
        return self.payments.get_by_idempotency_key(idempotency_key)

    def get_payment(self, payment_id: str) -> Result[PaymentInfo, NotFoundError]:
        payment = self.payments.get(payment_id)
        if payment is None:
            return Err(NotFoundError("Payment", payment_id))
        return Ok(payment)

    @BaseService.measure_operation("apply_gateway_update")
    def apply_gateway_update(
        self,
        payment_id: str,
        status: GatewayStatus,
        transaction_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Result[PaymentInfo, DomainException]:
        """
        Record an asynchronous settlement (webhook) for an in-flight payment.

        Delivering the same final status twice is a no-op.
        """
        payment = self.payments.get(payment_id)
        if payment is None:
            return Err(NotFoundError("Payment", payment_id))

        with keyed_lock(self.mutex, "payment", self._lock_key(payment)) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(payment_id))
            payment = self.payments.get(payment_id)
            if payment is None:
                return Err(NotFoundError("Payment", payment_id))

            target = _GATEWAY_TO_PAYMENT.get(status)
            if target is None:
                return Err(ValidationError(f"Unsupported gateway status: {status.value}"))
            if not payment.is_in_flight:
                if payment.status == target:
                    return Ok(payment)
                return Err(
                    PaymentError(
                        f"Payment already settled as {payment.status.value}",
                        code="PAYMENT_ALREADY_SETTLED",
                        payment_id=payment_id,
                    )
                )

            response = GatewayResponse(
                status=status, transaction_id=transaction_id, failure_reason=failure_reason
            )
            updated = self.payments.update(self._apply_response(payment, response))
            prometheus_metrics.record_payment_operation("settlement", updated.status.value)
            return Ok(updated)

    @BaseService.measure_operation("payment_statistics")
    def statistics(self, start: datetime, end: datetime) -> Result[PaymentStatistics, ValidationError]:
        """Aggregate payments created in ``[start, end)``."""
        if start >= end:
            return Err(ValidationError("Statistics period start must be before its end"))

        payments = self.payments.list_created_between(start, end)
        status_counts: Dict[str, int] = defaultdict(int)
        methods: Dict[str, MethodBreakdown] = {}
        daily: Dict[date, List[Decimal]] = defaultdict(list)
        revenue = to_money(0)
        refunds = to_money(0)
        successful = failed = refunded = 0

        for payment in payments:
            status_counts[payment.status.value] += 1
            if payment.status == PaymentStatus.FAILED:
                failed += 1
            if payment.status not in REVENUE_STATUSES:
                continue
            successful += 1
            revenue += payment.amount
            refunds += payment.refunded_amount
            if payment.status in REFUNDED_STATUSES:
                refunded += 1
            entry = methods.setdefault(payment.method.value, MethodBreakdown())
            entry.count += 1
            entry.amount = to_money(entry.amount + payment.amount)
            daily[payment.created_at.date()].append(payment.amount)

        return Ok(
            PaymentStatistics(
                period_start=start,
                period_end=end,
                total_revenue=to_money(revenue),
                total_refunds=to_money(refunds),
                net_revenue=to_money(revenue - refunds),
                transaction_count=len(payments),
                successful_count=successful,
                failed_count=failed,
                refunded_count=refunded,
                status_counts=dict(status_counts),
                method_breakdown=methods,
                daily_revenue=[
                    DailyRevenue(date=day, amount=to_money(sum(amounts, Decimal(0))), count=len(amounts))
                    for day, amounts in sorted(daily.items())
                ],
                success_rate=_rate(successful, len(payments)),
                refund_rate=_rate(refunded, successful),
                average_amount=to_money(revenue / successful) if successful else to_money(0),
            )
        )

"""
Stripe-backed PaymentGateway.

Charges are PaymentIntents confirmed on creation; every call carries an
idempotency key so a repeated call after a timeout never charges twice.
Network failures and rate limits surface as ``GatewayTimeout``; card and
invalid-request errors come back as declined responses. Authentication,
permission and API errors are configuration or provider faults and propagate.
"""

from decimal import Decimal
import logging
from typing import Any, Optional

import stripe

from slotbook.core.config import settings
from slotbook.core.enums import GatewayStatus, PaymentMethod

from .payment_gateway import GatewayResponse, GatewayTimeout

logger = logging.getLogger(__name__)

# Stripe expects these currencies in whole units rather than cents
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)

PAYMENT_METHOD_TYPES = {
    PaymentMethod.CREDIT_CARD: "card",
    PaymentMethod.BANK_TRANSFER: "customer_balance",
    PaymentMethod.KAKAO_PAY: "kakao_pay",
    PaymentMethod.NAVER_PAY: "naver_pay",
    PaymentMethod.PAYPAL: "paypal",
}

INTENT_STATUS_MAP = {
    "succeeded": GatewayStatus.SUCCEEDED,
    "processing": GatewayStatus.PENDING,
    "requires_action": GatewayStatus.PENDING,
    "requires_capture": GatewayStatus.PENDING,
    "requires_confirmation": GatewayStatus.PENDING,
    "requires_payment_method": GatewayStatus.DECLINED,
    "canceled": GatewayStatus.CANCELLED,
}

REFUND_STATUS_MAP = {
    "succeeded": GatewayStatus.REFUNDED,
    "pending": GatewayStatus.PENDING,
    "requires_action": GatewayStatus.PENDING,
    "failed": GatewayStatus.DECLINED,
    "canceled": GatewayStatus.DECLINED,
}

# Errors that concern the payment itself rather than the account or provider
DECLINE_ERRORS = (stripe.CardError, stripe.InvalidRequestError)


def to_minor_units(amount: Decimal, currency: str) -> int:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount)
    return int((amount * 100).to_integral_value())


class StripePaymentGateway:
    """PaymentGateway implementation over the module-level stripe client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        key = api_key
        if key is None and settings.stripe_secret_key is not None:
            key = settings.stripe_secret_key.get_secret_value()
        if not key:
            raise ValueError("Stripe secret key is not configured")
        timeout = timeout_seconds or settings.payment_gateway_timeout_seconds
        stripe.api_key = key
        # Retries happen in the orchestrator with the same idempotency key
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = 0
        logger.info("Stripe payment gateway configured (timeout=%ss)", timeout)

    def _intent_response(self, intent: Any) -> GatewayResponse:
        status = INTENT_STATUS_MAP.get(getattr(intent, "status", ""), GatewayStatus.PENDING)
        failure_reason = None
        if status == GatewayStatus.DECLINED:
            last_error = getattr(intent, "last_payment_error", None)
            failure_reason = getattr(last_error, "message", None) or "Payment method declined"
        charge = getattr(intent, "latest_charge", None)
        receipt_url = getattr(charge, "receipt_url", None) if not isinstance(charge, str) else None
        return GatewayResponse(
            status=status,
            transaction_id=intent.id,
            failure_reason=failure_reason,
            receipt_url=receipt_url,
        )

    def _call(self, operation: str, fn: Any, **kwargs: Any) -> Any:
        try:
            return fn(**kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
            logger.warning("Stripe %s did not complete: %s", operation, exc)
            raise GatewayTimeout(operation) from exc
        except DECLINE_ERRORS:
            raise
        except stripe.StripeError as exc:
            logger.error("Stripe %s failed: %s", operation, exc)
            raise

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
        params: dict[str, Any] = {
            "amount": to_minor_units(amount, currency),
            "currency": currency.lower(),
            "payment_method_types": [PAYMENT_METHOD_TYPES[method]],
            "confirm": payment_token is not None,
            "metadata": {"booking_id": reference, "platform": "slotbook"},
            "idempotency_key": idempotency_key,
        }
        if payment_token is not None:
            params["payment_method"] = payment_token
        try:
            intent = self._call("charge", stripe.PaymentIntent.create, **params)
        except DECLINE_ERRORS as exc:
            logger.info("Stripe declined charge for %s: %s", reference, exc.user_message or exc)
            return GatewayResponse(
                status=GatewayStatus.DECLINED,
                failure_reason=exc.user_message or str(exc),
            )
        return self._intent_response(intent)

    def retry(self, *, transaction_id: str, idempotency_key: str) -> GatewayResponse:
        try:
            intent = self._call(
                "retry",
                stripe.PaymentIntent.confirm,
                intent=transaction_id,
                idempotency_key=idempotency_key,
            )
        except DECLINE_ERRORS as exc:
            logger.info("Stripe declined retry of %s: %s", transaction_id, exc.user_message or exc)
            return GatewayResponse(
                status=GatewayStatus.DECLINED,
                transaction_id=transaction_id,
                failure_reason=exc.user_message or str(exc),
            )
        return self._intent_response(intent)

    def cancel(self, *, transaction_id: str, idempotency_key: str) -> GatewayResponse:
        try:
            intent = self._call(
                "cancel",
                stripe.PaymentIntent.cancel,
                intent=transaction_id,
                idempotency_key=idempotency_key,
            )
        except stripe.InvalidRequestError as exc:
            logger.warning("Stripe refused cancelling %s: %s", transaction_id, exc)
            return GatewayResponse(
                status=GatewayStatus.DECLINED, transaction_id=transaction_id, failure_reason=str(exc)
            )
        return self._intent_response(intent)

    def refund(
        self,
        *,
        transaction_id: str,
        amount: Decimal,
        currency: str,
        reason: str,
        idempotency_key: str,
    ) -> GatewayResponse:
        try:
            refund = self._call(
                "refund",
                stripe.Refund.create,
                payment_intent=transaction_id,
                amount=to_minor_units(amount, currency),
                metadata={"reason": reason[:500]},
                idempotency_key=idempotency_key,
            )
        except stripe.InvalidRequestError as exc:
            logger.warning("Stripe refused refunding %s: %s", transaction_id, exc)
            return GatewayResponse(
                status=GatewayStatus.DECLINED, transaction_id=transaction_id, failure_reason=str(exc)
            )
        status = REFUND_STATUS_MAP.get(getattr(refund, "status", ""), GatewayStatus.PENDING)
        return GatewayResponse(
            status=status,
            transaction_id=refund.id,
            failure_reason=getattr(refund, "failure_reason", None)
            if status == GatewayStatus.DECLINED
            else None,
        )

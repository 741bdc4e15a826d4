"""Service layer: every operation returns ``Ok``/``Err`` for expected outcomes."""

from .availability_service import AvailabilityService
from .booking_service import BookingService
from .payment_orchestrator import PaymentOrchestrator
from .refund_policy_engine import RefundPolicyEngine, RefundPolicyResult
from .workshop_service import WorkshopService

__all__ = [
    "AvailabilityService",
    "BookingService",
    "PaymentOrchestrator",
    "RefundPolicyEngine",
    "RefundPolicyResult",
    "WorkshopService",
]

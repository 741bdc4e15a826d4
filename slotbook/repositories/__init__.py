"""Store contracts plus their SQLAlchemy and in-memory implementations."""

from .interfaces import BookingStore, PaymentStore, SlotStore, WorkshopStore

__all__ = ["BookingStore", "PaymentStore", "SlotStore", "WorkshopStore"]

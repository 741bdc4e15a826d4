"""SQLAlchemy models; importing this package registers every table on ``Base``."""

from .booking import Booking
from .payment import Payment
from .time_slot import TimeSlot
from .workshop import Workshop

__all__ = ["Booking", "Payment", "TimeSlot", "Workshop"]

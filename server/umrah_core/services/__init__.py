"""Service layer package."""

from .booking_service import BookingService
from .commission_service import CommissionService
from .departure_service import DepartureService
from .idempotency_service import IdempotencyService
from .notification_service import NotificationSender
from .payment_service import PaymentService
from .room_service import RoomService
from .savings_service import SavingsService

__all__ = [
    "BookingService",
    "CommissionService",
    "DepartureService",
    "IdempotencyService",
    "NotificationSender",
    "PaymentService",
    "RoomService",
    "SavingsService",
]

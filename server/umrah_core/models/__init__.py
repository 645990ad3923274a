"""Models module exporting all database models."""

from .booking import Booking, BookingPassenger, BookingStatus, Gender, PassengerType, PaymentStatus
from .commission import Agent, AgentCommission, AgentWallet, CommissionStatus
from .departure import ROOM_CAPACITY, Departure, DepartureStatus, RoomType
from .idempotency import IdempotencyRecord
from .inventory import InventoryMovement, MovementKind
from .payment import Payment, PaymentRecordStatus, PlanPayment, PlanStatus, PlanType, SavingsPlan
from .room import RoomAssignment, RoomOccupant

__all__ = [
    # Inventory
    "Departure",
    "DepartureStatus",
    "RoomType",
    "ROOM_CAPACITY",
    "InventoryMovement",
    "MovementKind",

    # Bookings
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "BookingPassenger",
    "Gender",
    "PassengerType",

    # Payment ledgers
    "Payment",
    "PaymentRecordStatus",
    "SavingsPlan",
    "PlanPayment",
    "PlanType",
    "PlanStatus",

    # Agents
    "Agent",
    "AgentWallet",
    "AgentCommission",
    "CommissionStatus",

    # Rooming
    "RoomAssignment",
    "RoomOccupant",

    # Idempotency entity
    "IdempotencyRecord",
]

"""FastAPI routers package."""

from .booking import router as booking_router
from .commission import router as commission_router
from .departure import router as departure_router
from .health import router as health_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .room import router as room_router
from .savings import router as savings_router

__all__ = [
    "booking_router",
    "commission_router",
    "departure_router",
    "health_router",
    "metrics_router",
    "payment_router",
    "room_router",
    "savings_router",
]

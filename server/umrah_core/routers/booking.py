"""Booking router for booking lifecycle operations."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, IdempotencyKey
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    Booking,
    BookingCommandRequest,
    CreateBookingRequest,
    GetBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
    ListOutstandingRequest,
)
from ..schemas.common import CONFLICT_RESPONSES
from ..services.booking_service import BookingService
from ..services.idempotency_service import IdempotencyService
from ..services.state_machine import BookingEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model, with its passengers loaded, to schema."""
    return Booking.model_validate(booking_model)


async def _run_lifecycle_command(
    db: AsyncSession,
    request: BookingCommandRequest,
    event: BookingEvent,
    actor: str
) -> JSONResponse:
    """Apply a staff lifecycle command and return the booking after it."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.transition(request.booking_id, event, actor, request.reason)
        response_data = _convert_booking_to_schema(booking)

        logger.info(
            "Booking command applied",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.booking_code,
                "event": event.value,
                "booking_status": booking.booking_status.value,
                "actor": actor
            }
        )

        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking command",
            extra={"booking_id": str(request.booking_id), "event": event.value, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/create", response_model=Booking, status_code=201, responses=CONFLICT_RESPONSES)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor,
    idempotency_key: Optional[str] = IdempotencyKey
) -> JSONResponse:
    """
    Reserve seats and create a pending booking.

    This operation is idempotent when an Idempotency-Key header is sent.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.create_booking(request, actor)
        return _convert_booking_to_schema(booking).model_dump(mode="json")

    try:
        return await IdempotencyService(db).run(
            method="booking/create",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
            status_code=201
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "departure_id": str(request.departure_id),
                "customer_id": request.customer_id,
                "total_pax": len(request.passengers),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking, responses=CONFLICT_RESPONSES)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get booking details with its passengers."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.get_booking_or_raise(request.booking_id)
        response_data = _convert_booking_to_schema(booking)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking retrieval",
            extra={"booking_id": str(request.booking_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List bookings by departure, customer or status with cursor pagination."""
    booking_service = BookingService(db)

    try:
        bookings, next_cursor = await booking_service.list_bookings(request)
        response_data = ListBookingsResponse(
            items=[_convert_booking_to_schema(booking) for booking in bookings],
            next_cursor=next_cursor
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in booking listing", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/outstanding", response_model=ListBookingsResponse)
async def list_outstanding(
    request: ListOutstandingRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Open bookings with an unpaid balance departing inside the window."""
    booking_service = BookingService(db)

    try:
        outstanding = await booking_service.list_outstanding(request.days_until_departure)
        response_data = ListBookingsResponse(
            items=[_convert_booking_to_schema(booking) for booking, _ in outstanding]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outstanding booking listing",
            extra={"days_until_departure": request.days_until_departure, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/confirm", response_model=Booking, responses=CONFLICT_RESPONSES)
async def confirm_booking(
    request: BookingCommandRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Confirm a pending booking."""
    return await _run_lifecycle_command(db, request, BookingEvent.CONFIRM, actor)


@router.post("/cancel", response_model=Booking, responses=CONFLICT_RESPONSES)
async def cancel_booking(
    request: BookingCommandRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """
    Cancel a booking.

    Seats go back to the departure, a pending agent commission is voided and
    roommate pairings are dissolved.
    """
    return await _run_lifecycle_command(db, request, BookingEvent.CANCEL, actor)


@router.post("/start-processing", response_model=Booking, responses=CONFLICT_RESPONSES)
async def start_processing(
    request: BookingCommandRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Move a confirmed booking into document processing."""
    return await _run_lifecycle_command(db, request, BookingEvent.START_PROCESSING, actor)


@router.post("/complete", response_model=Booking, responses=CONFLICT_RESPONSES)
async def complete_booking(
    request: BookingCommandRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Mark a processed booking as completed."""
    return await _run_lifecycle_command(db, request, BookingEvent.COMPLETE, actor)


@router.post("/refund", response_model=Booking, responses=CONFLICT_RESPONSES)
async def refund_booking(
    request: BookingCommandRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Refund a confirmed or completed booking."""
    return await _run_lifecycle_command(db, request, BookingEvent.REFUND, actor)

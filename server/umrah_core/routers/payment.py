"""Payment router for booking payment operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, IdempotencyKey
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import Booking
from ..schemas.common import CONFLICT_RESPONSES
from ..schemas.payment import (
    ListPaymentsRequest,
    ListPaymentsResponse,
    Payment,
    SendRemindersRequest,
    SendRemindersResponse,
    SubmitPaymentRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from ..services.idempotency_service import IdempotencyService
from ..services.notification_service import NotificationSender, get_notification_sender
from ..services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])

NOTIFIER_DEPENDENCY = Depends(get_notification_sender)


@router.post("/submit", response_model=Payment, status_code=201, responses=CONFLICT_RESPONSES)
async def submit_payment(
    request: SubmitPaymentRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor,
    idempotency_key: Optional[str] = IdempotencyKey,
    notifier: NotificationSender = NOTIFIER_DEPENDENCY
) -> JSONResponse:
    """
    Record a pending payment against a booking.

    The booking ledger only changes once the payment is verified.
    This operation is idempotent when an Idempotency-Key header is sent.
    """
    payment_service = PaymentService(db, notifier)

    async def operation():
        payment = await payment_service.submit(request, actor)
        return Payment.model_validate(payment).model_dump(mode="json")

    try:
        return await IdempotencyService(db).run(
            method="payment/submit",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
            status_code=201
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment submission",
            extra={"booking_id": str(request.booking_id), "amount": request.amount, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/verify", response_model=VerifyPaymentResponse, responses=CONFLICT_RESPONSES)
async def verify_payment(
    request: VerifyPaymentRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor,
    notifier: NotificationSender = NOTIFIER_DEPENDENCY
) -> JSONResponse:
    """
    Approve or reject a pending payment.

    A payment can be resolved exactly once. Approving the last outstanding
    amount confirms a pending booking.
    """
    payment_service = PaymentService(db, notifier)

    try:
        payment, booking = await payment_service.verify(request, actor)
        response_data = VerifyPaymentResponse(
            payment=Payment.model_validate(payment),
            booking=Booking.model_validate(booking)
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment verification",
            extra={"payment_id": str(request.payment_id), "outcome": request.outcome, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListPaymentsResponse, responses=CONFLICT_RESPONSES)
async def list_payments(
    request: ListPaymentsRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List the payments of a booking, oldest first."""
    payment_service = PaymentService(db)

    try:
        payments = await payment_service.list_payments(request.booking_id)
        response_data = ListPaymentsResponse(items=[Payment.model_validate(payment) for payment in payments])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment listing",
            extra={"booking_id": str(request.booking_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/reminders", response_model=SendRemindersResponse)
async def send_reminders(
    request: SendRemindersRequest,
    db: AsyncSession = DatabaseSession,
    notifier: NotificationSender = NOTIFIER_DEPENDENCY
) -> JSONResponse:
    """Send a payment reminder for every open booking with a balance departing soon."""
    payment_service = PaymentService(db, notifier)

    try:
        booking_codes = await payment_service.send_payment_reminders(request.days_until_departure)
        response_data = SendRemindersResponse(notified=len(booking_codes), booking_codes=booking_codes)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment reminders",
            extra={"days_until_departure": request.days_until_departure, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e

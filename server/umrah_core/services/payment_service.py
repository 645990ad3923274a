"""Payment ledger service for booking payments."""

import logging
import secrets
import string
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.concurrency import retry_on_conflict
from ..core.database import with_timeout
from ..core.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PaymentAlreadyResolvedError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.payment import Payment, PaymentRecordStatus
from ..schemas.payment import SubmitPaymentRequest, VerifyPaymentRequest
from .booking_service import BookingService
from .ledger import apply_payment, derive_payment_status
from .notification_service import NotificationSender
from .state_machine import BookingEvent

logger = logging.getLogger(__name__)

PAYMENT_CODE_PREFIX = "PAY"


def generate_payment_code(length: int = 10) -> str:
    """Generate a random payment reference code."""
    alphabet = string.ascii_uppercase + string.digits
    return PAYMENT_CODE_PREFIX + ''.join(secrets.choice(alphabet) for _ in range(length))


class PaymentService:
    """Service recording and verifying payments against bookings."""

    def __init__(self, db: AsyncSession, notifier: NotificationSender | None = None):
        self.db = db
        self.booking_service = BookingService(db)
        self.notifier = notifier or NotificationSender()

    async def get_payment_or_raise(self, payment_id: UUID) -> Payment:
        """Get payment by ID, bypassing any stale copy in the session."""
        stmt = (
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "payment.get")
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(resource_type="payment", resource_id=str(payment_id))
        return payment

    async def submit(self, request: SubmitPaymentRequest, actor: str) -> Payment:
        """
        Record a pending payment. Ledger totals do not change until verification.

        Raises:
            NotFoundError: If booking not found
            InvalidStateTransitionError: If the booking is cancelled, completed or refunded
            ValidationError: If the amount exceeds the outstanding balance
        """
        booking = await self.booking_service.get_booking_or_raise(request.booking_id)

        if booking.booking_status.is_terminal:
            raise InvalidStateTransitionError(
                entity="booking",
                entity_id=str(booking.id),
                current_state=booking.booking_status.value,
                attempted="submit payment for",
            )

        if request.amount > booking.remaining_amount:
            raise ValidationError(
                detail=(
                    f"Payment of {request.amount} exceeds the outstanding balance "
                    f"of {booking.remaining_amount}"
                ),
                errors={"amount": request.amount, "remaining_amount": booking.remaining_amount},
            )

        payment = Payment(
            booking_id=booking.id,
            payment_code=generate_payment_code(),
            amount=request.amount,
            status=PaymentRecordStatus.PENDING,
            payment_method=request.payment_method,
            proof_url=request.proof_url,
            notes=request.notes,
        )
        self.db.add(payment)
        await with_timeout(self.db.commit(), "payment.submit")

        logger.info(
            "Payment submitted",
            extra={
                "payment_id": str(payment.id),
                "payment_code": payment.payment_code,
                "booking_id": str(booking.id),
                "amount": payment.amount,
                "actor": actor
            }
        )
        return payment

    async def _resolve_payment(self, request: VerifyPaymentRequest, actor: str) -> Payment:
        """
        Move the payment out of pending with one conditional update.

        Raises:
            NotFoundError: If payment not found
            PaymentAlreadyResolvedError: If the payment is no longer pending
        """
        values = {
            "status": request.outcome,
            "verified_at": datetime.utcnow(),
            "verified_by": actor,
            "updated_at": datetime.utcnow(),
        }
        if request.notes is not None:
            values["notes"] = request.notes

        stmt = (
            update(Payment)
            .where(Payment.id == request.payment_id, Payment.status == PaymentRecordStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "payment.verify")

        payment = await self.get_payment_or_raise(request.payment_id)
        if result.rowcount == 0:
            logger.warning(
                "Payment already resolved",
                extra={"payment_id": str(request.payment_id), "status": payment.status.value}
            )
            raise PaymentAlreadyResolvedError(str(request.payment_id), payment.status.value)
        return payment

    async def verify(self, request: VerifyPaymentRequest, actor: str) -> tuple[Payment, Booking]:
        """
        Approve or reject a pending payment and update the booking ledger.

        On approval the booking is locked and updated under its optimistic
        version. Reaching the total fires the payment_completed lifecycle event.
        The whole verification is retried when a concurrent writer wins the
        version race.

        Returns:
            Tuple of (resolved payment, booking after the change)

        Raises:
            NotFoundError: If payment not found
            PaymentAlreadyResolvedError: If the payment was already verified or rejected
            InvalidStateTransitionError: If approving for a terminal booking
            PersistenceConflictError: If every retry lost the version race
        """
        operation = "payment.verify"

        async def attempt() -> Payment:
            payment = await self._resolve_payment(request, actor)
            booking = await self.booking_service.get_booking_or_raise(payment.booking_id, lock=True)

            if payment.status == PaymentRecordStatus.PAID:
                if booking.booking_status.is_terminal:
                    raise InvalidStateTransitionError(
                        entity="booking",
                        entity_id=str(booking.id),
                        current_state=booking.booking_status.value,
                        attempted="apply payment to",
                    )

                totals = apply_payment(booking.total_price, booking.paid_amount, payment.amount)
                booking.paid_amount = totals.paid_amount
                booking.remaining_amount = totals.remaining_amount
                booking.payment_status = derive_payment_status(booking.total_price, totals.paid_amount)

                if booking.payment_status == PaymentStatus.PAID and booking.booking_status == BookingStatus.PENDING:
                    await self.booking_service.apply_event(booking, BookingEvent.PAYMENT_COMPLETED, actor)

            await self.booking_service.commit_versioned(booking.id, operation)
            return payment

        try:
            payment = await retry_on_conflict(self.db, attempt, operation)
        except Exception:
            await self.db.rollback()
            raise

        booking = await self.booking_service.get_booking_or_raise(payment.booking_id)
        metrics_collector.record_payment_verified(
            "booking",
            payment.status.value,
            payment.amount if payment.status == PaymentRecordStatus.PAID else 0,
        )
        logger.info(
            "Payment verified",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(booking.id),
                "outcome": payment.status.value,
                "amount": payment.amount,
                "paid_amount": booking.paid_amount,
                "remaining_amount": booking.remaining_amount,
                "payment_status": booking.payment_status.value,
                "booking_status": booking.booking_status.value,
                "actor": actor
            }
        )

        await self.notifier.payment_status_changed(booking, payment)
        return payment, booking

    async def list_payments(self, booking_id: UUID) -> list[Payment]:
        """Payments of a booking, oldest first."""
        await self.booking_service.get_booking_or_raise(booking_id)
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "payment.list")
        return list(result.scalars())

    async def send_payment_reminders(self, days_until_departure: int, today: date | None = None) -> list[str]:
        """
        Notify every open booking with a balance whose departure is inside the window.

        Returns:
            Booking codes a reminder was handed to the sender for
        """
        start = today or datetime.utcnow().date()
        outstanding = await self.booking_service.list_outstanding(days_until_departure, today=start)

        notified = []
        for booking, departure in outstanding:
            days_until = (departure.departure_date - start).days
            await self.notifier.payment_reminder(booking, departure, days_until)
            notified.append(booking.booking_code)

        logger.info(
            "Payment reminders processed",
            extra={"days_until_departure": days_until_departure, "notified": len(notified)}
        )
        return notified

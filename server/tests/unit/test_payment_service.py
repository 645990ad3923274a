"""Unit tests for payment submission and verification."""

from datetime import date
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from conftest import PRICE_DOUBLE, booking_request, passenger
from umrah_core.core.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PaymentAlreadyResolvedError,
    ValidationError,
)
from umrah_core.models.booking import BookingStatus, PaymentStatus
from umrah_core.models.payment import PaymentRecordStatus
from umrah_core.schemas.payment import SubmitPaymentRequest, VerifyPaymentRequest
from umrah_core.services.booking_service import BookingService
from umrah_core.services.notification_service import NotificationSender
from umrah_core.services.payment_service import PaymentService


@pytest_asyncio.fixture
async def booking(test_session, departure):
    """A pending single-passenger booking in a double room."""
    return await BookingService(test_session).create_booking(booking_request(departure.id), actor="staff-1")


class TestPaymentService:
    """Test cases for PaymentService."""

    @pytest.mark.asyncio
    async def test_submit_leaves_ledger_untouched(self, test_session, booking, notifier):
        service = PaymentService(test_session, notifier)

        payment = await service.submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=10_000_000, payment_method="transfer"),
            actor="CUST-001",
        )

        assert payment.status == PaymentRecordStatus.PENDING
        assert payment.payment_code.startswith("PAY")
        refreshed = await BookingService(test_session).get_booking_or_raise(booking.id)
        assert refreshed.paid_amount == 0
        assert refreshed.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_submit_more_than_remaining_is_rejected(self, test_session, booking, notifier):
        with pytest.raises(ValidationError):
            await PaymentService(test_session, notifier).submit(
                SubmitPaymentRequest(booking_id=booking.id, amount=PRICE_DOUBLE + 1), actor="CUST-001"
            )

    @pytest.mark.asyncio
    async def test_submit_for_unknown_booking(self, test_session, notifier):
        with pytest.raises(NotFoundError):
            await PaymentService(test_session, notifier).submit(
                SubmitPaymentRequest(booking_id=uuid4(), amount=1), actor="CUST-001"
            )

    @pytest.mark.asyncio
    async def test_submit_for_cancelled_booking_is_rejected(self, test_session, booking, notifier):
        await BookingService(test_session).cancel(booking.id, actor="staff-1")

        with pytest.raises(InvalidStateTransitionError):
            await PaymentService(test_session, notifier).submit(
                SubmitPaymentRequest(booking_id=booking.id, amount=1_000_000), actor="CUST-001"
            )

    @pytest.mark.asyncio
    async def test_partial_then_full_payment_confirms(self, test_session, booking, notifier, webhook_requests):
        service = PaymentService(test_session, notifier)
        first = await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=12_000_000), actor="CUST-001")
        second = await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=20_000_000), actor="CUST-001")

        payment, after_first = await service.verify(
            VerifyPaymentRequest(payment_id=first.id, outcome="paid"), actor="finance-1"
        )
        assert payment.status == PaymentRecordStatus.PAID
        assert payment.verified_by == "finance-1"
        assert after_first.paid_amount == 12_000_000
        assert after_first.remaining_amount == PRICE_DOUBLE - 12_000_000
        assert after_first.payment_status == PaymentStatus.PARTIAL
        assert after_first.booking_status == BookingStatus.PENDING

        _, after_second = await service.verify(
            VerifyPaymentRequest(payment_id=second.id, outcome="paid"), actor="finance-1"
        )
        assert after_second.paid_amount == PRICE_DOUBLE
        assert after_second.remaining_amount == 0
        assert after_second.payment_status == PaymentStatus.PAID
        assert after_second.booking_status == BookingStatus.CONFIRMED

        assert [body["kind"] for body in webhook_requests] == ["payment_status_changed"] * 2
        assert webhook_requests[-1]["payload"]["booking_status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_rejected_payment_changes_nothing(self, test_session, booking, notifier, webhook_requests):
        service = PaymentService(test_session, notifier)
        submitted = await service.submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=5_000_000), actor="CUST-001"
        )

        payment, after = await service.verify(
            VerifyPaymentRequest(payment_id=submitted.id, outcome="failed", notes="proof unreadable"),
            actor="finance-1",
        )

        assert payment.status == PaymentRecordStatus.FAILED
        assert payment.notes == "proof unreadable"
        assert after.paid_amount == 0
        assert after.payment_status == PaymentStatus.PENDING
        assert webhook_requests[0]["payload"]["payment_outcome"] == "failed"

    @pytest.mark.asyncio
    async def test_verify_twice_is_rejected(self, test_session, booking, notifier):
        service = PaymentService(test_session, notifier)
        booking_id = booking.id
        submitted = await service.submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=5_000_000), actor="CUST-001"
        )
        await service.verify(VerifyPaymentRequest(payment_id=submitted.id, outcome="paid"), actor="finance-1")

        with pytest.raises(PaymentAlreadyResolvedError) as exc_info:
            await service.verify(VerifyPaymentRequest(payment_id=submitted.id, outcome="paid"), actor="finance-2")

        assert exc_info.value.code == "PAYMENT_ALREADY_RESOLVED"
        refreshed = await BookingService(test_session).get_booking_or_raise(booking_id)
        assert refreshed.paid_amount == 5_000_000

    @pytest.mark.asyncio
    async def test_verify_unknown_payment(self, test_session, notifier):
        with pytest.raises(NotFoundError):
            await PaymentService(test_session, notifier).verify(
                VerifyPaymentRequest(payment_id=uuid4(), outcome="paid"), actor="finance-1"
            )

    @pytest.mark.asyncio
    async def test_approving_for_cancelled_booking_is_rejected(self, test_session, booking, notifier):
        service = PaymentService(test_session, notifier)
        submitted = await service.submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=5_000_000), actor="CUST-001"
        )
        await BookingService(test_session).cancel(booking.id, actor="staff-1")
        payment_id = submitted.id

        with pytest.raises(InvalidStateTransitionError):
            await service.verify(VerifyPaymentRequest(payment_id=payment_id, outcome="paid"), actor="finance-1")

        payment = await service.get_payment_or_raise(payment_id)
        assert payment.status == PaymentRecordStatus.PENDING

    @pytest.mark.asyncio
    async def test_rejecting_for_cancelled_booking_is_allowed(self, test_session, booking, notifier):
        service = PaymentService(test_session, notifier)
        submitted = await service.submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=5_000_000), actor="CUST-001"
        )
        await BookingService(test_session).cancel(booking.id, actor="staff-1")

        payment, after = await service.verify(
            VerifyPaymentRequest(payment_id=submitted.id, outcome="failed"), actor="finance-1"
        )

        assert payment.status == PaymentRecordStatus.FAILED
        assert after.booking_status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_overpayment_race_settles_at_total(self, test_session, booking, notifier):
        service = PaymentService(test_session, notifier)
        first = await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=20_000_000), actor="CUST-001")
        second = await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=20_000_000), actor="CUST-001")

        await service.verify(VerifyPaymentRequest(payment_id=first.id, outcome="paid"), actor="finance-1")
        _, after = await service.verify(VerifyPaymentRequest(payment_id=second.id, outcome="paid"), actor="finance-1")

        assert after.paid_amount == 40_000_000
        assert after.remaining_amount == 0
        assert after.payment_status == PaymentStatus.PAID
        assert after.booking_status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_list_payments_oldest_first(self, test_session, booking, notifier):
        service = PaymentService(test_session, notifier)
        await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=1_000_000), actor="CUST-001")
        await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=2_000_000), actor="CUST-001")

        payments = await service.list_payments(booking.id)

        assert sorted(p.amount for p in payments) == [1_000_000, 2_000_000]

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_undo_verification(self, test_session, booking):
        unreachable = NotificationSender(
            webhook_url="http://notifications.test/hook",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        service = PaymentService(test_session, unreachable)
        submitted = await service.submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=PRICE_DOUBLE), actor="CUST-001"
        )

        _, after = await service.verify(VerifyPaymentRequest(payment_id=submitted.id, outcome="paid"), actor="finance-1")

        assert after.booking_status == BookingStatus.CONFIRMED


class TestPaymentReminders:
    """Reminders for outstanding balances."""

    @pytest.mark.asyncio
    async def test_reminders_for_open_balances_inside_window(
        self, test_session, departure, notifier, webhook_requests
    ):
        booking_service = BookingService(test_session)
        owing = await booking_service.create_booking(booking_request(departure.id), actor="staff-1")
        await booking_service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-002")], discount_amount=PRICE_DOUBLE),
            actor="staff-1",
        )

        codes = await PaymentService(test_session, notifier).send_payment_reminders(60, today=date.today())

        assert codes == [owing.booking_code]
        assert webhook_requests[0]["kind"] == "payment_reminder"
        assert webhook_requests[0]["payload"]["days_until_departure"] == 45
        assert webhook_requests[0]["payload"]["currency"] == "IDR"

    @pytest.mark.asyncio
    async def test_no_reminders_outside_window(self, test_session, departure, notifier, webhook_requests):
        await BookingService(test_session).create_booking(booking_request(departure.id), actor="staff-1")

        codes = await PaymentService(test_session, notifier).send_payment_reminders(10)

        assert codes == []
        assert webhook_requests == []

"""Fire-and-forget webhook notifications for payment events."""

import logging
from datetime import datetime
from typing import Any

import httpx

from ..core.config import settings
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)


class NotificationSender:
    """
    Posts notification events to the configured webhook.

    Delivery is best effort. Failures are logged and counted but never raised,
    so ledger state that was already committed is not affected.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, kind: str, payload: dict[str, Any]) -> bool:
        """
        Deliver one event.

        Returns:
            True when the webhook accepted the event
        """
        if not self.enabled:
            logger.debug("Notification skipped, no webhook configured", extra={"kind": kind})
            return False

        body = {"kind": kind, "sent_at": datetime.utcnow().isoformat() + "Z", "payload": payload}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=body)
                response.raise_for_status()
        except httpx.HTTPError as e:
            metrics_collector.record_notification_failure(kind)
            logger.warning("Notification delivery failed", extra={"kind": kind, "error": str(e)})
            return False

        logger.info("Notification sent", extra={"kind": kind})
        return True

    async def payment_status_changed(self, booking, payment) -> bool:
        """Tell the customer a payment was approved or rejected."""
        return await self.send(
            "payment_status_changed",
            {
                "booking_code": booking.booking_code,
                "customer_id": booking.customer_id,
                "payment_code": payment.payment_code,
                "amount": payment.amount,
                "payment_outcome": payment.status.value,
                "paid_amount": booking.paid_amount,
                "remaining_amount": booking.remaining_amount,
                "payment_status": booking.payment_status.value,
                "booking_status": booking.booking_status.value,
            },
        )

    async def plan_payment_status_changed(self, plan, payment) -> bool:
        """Tell the customer a plan deposit was approved or rejected."""
        return await self.send(
            "plan_payment_status_changed",
            {
                "plan_id": str(plan.id),
                "customer_id": plan.customer_id,
                "payment_code": payment.payment_code,
                "amount": payment.amount,
                "payment_outcome": payment.status.value,
                "paid_amount": plan.paid_amount,
                "remaining_amount": plan.remaining_amount,
                "plan_status": plan.status.value,
            },
        )

    async def payment_reminder(self, booking, departure, days_until: int) -> bool:
        """Remind a customer of an outstanding balance before departure."""
        return await self.send(
            "payment_reminder",
            {
                "booking_code": booking.booking_code,
                "customer_id": booking.customer_id,
                "remaining_amount": booking.remaining_amount,
                "currency": departure.currency,
                "departure_date": departure.departure_date.isoformat(),
                "days_until_departure": days_until,
            },
        )


def get_notification_sender() -> NotificationSender:
    """Dependency providing the notification sender."""
    return NotificationSender()

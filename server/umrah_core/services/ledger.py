"""Pure partial-payment ledger arithmetic shared by bookings and plans."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..models.booking import PaymentStatus


@dataclass(frozen=True)
class LedgerTotals:
    """Paid and remaining amounts of a ledger after a change."""
    paid_amount: int
    remaining_amount: int

    @property
    def fully_paid(self) -> bool:
        return self.remaining_amount == 0


def remaining_for(total: int, paid: int) -> int:
    """Outstanding balance, never negative."""
    return max(0, total - paid)


def apply_payment(total: int, paid: int, amount: int) -> LedgerTotals:
    """
    Credit a verified amount to a ledger.

    An overpayment leaves the ledger fully paid with nothing remaining.
    """
    if amount <= 0:
        raise ValueError("Payment amount must be positive")
    new_paid = paid + amount
    return LedgerTotals(paid_amount=new_paid, remaining_amount=remaining_for(total, new_paid))


def derive_payment_status(total: int, paid: int) -> PaymentStatus:
    """Aggregate payment status implied by the ledger totals."""
    if paid >= total:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def price_booking(unit_price: int, pax: int, discount: int = 0, addons: int = 0) -> tuple[int, int]:
    """
    Price a booking.

    Returns:
        Tuple of (base_price, total_price) where the total never drops below zero
    """
    base_price = unit_price * pax
    return base_price, max(0, base_price - discount + addons)


def commission_for(price: int, rate: Decimal) -> int:
    """Commission on a price at a percentage rate, rounded half-up to a whole unit."""
    amount = Decimal(price) * Decimal(rate) / Decimal(100)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

"""Booking lifecycle transition table."""

from dataclasses import dataclass
from enum import Enum

from ..core.exceptions import InvalidStateTransitionError
from ..models.booking import BookingStatus


class BookingEvent(str, Enum):
    """Events that move a booking through its lifecycle."""
    PAYMENT_COMPLETED = "payment_completed"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    START_PROCESSING = "start_processing"
    COMPLETE = "complete"
    REFUND = "refund"


class SideEffect(str, Enum):
    """Work the booking service performs alongside a transition."""
    RELEASE_SEATS = "release_seats"
    RELEASE_SEATS_UNLESS_DEPARTED = "release_seats_unless_departed"
    VOID_COMMISSION = "void_commission"
    UNPAIR_ROOMMATES = "unpair_roommates"
    RELEASE_BEDS = "release_beds"
    RELEASE_BEDS_UNLESS_DEPARTED = "release_beds_unless_departed"
    MARK_PAYMENT_REFUNDED = "mark_payment_refunded"


@dataclass(frozen=True)
class Transition:
    """Target state of a transition and the side effects it carries."""
    next_state: BookingStatus
    side_effects: tuple[SideEffect, ...] = ()


_CANCEL = Transition(
    BookingStatus.CANCELLED,
    (
        SideEffect.RELEASE_SEATS,
        SideEffect.VOID_COMMISSION,
        SideEffect.UNPAIR_ROOMMATES,
        SideEffect.RELEASE_BEDS,
    ),
)
_REFUND = Transition(
    BookingStatus.REFUNDED,
    (
        SideEffect.RELEASE_SEATS_UNLESS_DEPARTED,
        SideEffect.MARK_PAYMENT_REFUNDED,
        SideEffect.VOID_COMMISSION,
        SideEffect.RELEASE_BEDS_UNLESS_DEPARTED,
    ),
)

TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], Transition] = {
    (BookingStatus.PENDING, BookingEvent.PAYMENT_COMPLETED): Transition(BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingEvent.CONFIRM): Transition(BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingEvent.CANCEL): _CANCEL,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): _CANCEL,
    (BookingStatus.CONFIRMED, BookingEvent.START_PROCESSING): Transition(BookingStatus.PROCESSING),
    (BookingStatus.PROCESSING, BookingEvent.COMPLETE): Transition(BookingStatus.COMPLETED),
    (BookingStatus.CONFIRMED, BookingEvent.REFUND): _REFUND,
    (BookingStatus.COMPLETED, BookingEvent.REFUND): _REFUND,
}


def allowed_events(state: BookingStatus) -> list[BookingEvent]:
    """Events accepted in a given state."""
    return [event for (current, event) in TRANSITIONS if current == state]


def resolve_transition(booking_id: str, state: BookingStatus, event: BookingEvent) -> Transition:
    """
    Look up the transition for an event in the current state.

    Raises:
        InvalidStateTransitionError: If the event is not allowed in this state
    """
    transition = TRANSITIONS.get((BookingStatus(state), BookingEvent(event)))
    if transition is None:
        raise InvalidStateTransitionError(
            entity="booking",
            entity_id=booking_id,
            current_state=BookingStatus(state).value,
            attempted=BookingEvent(event).value,
        )
    return transition

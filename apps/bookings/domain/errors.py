"""
Reservation Error Taxonomy

Every error here is safe to show to the end user; the message carries
the actionable guidance (pick another slot, deadline passed, ...).
"""

from uuid import UUID

from shared.domain.errors import DomainError, ErrorCode


class SlotFullError(DomainError):
    """The slot cannot take the requested number of guests."""

    def __init__(self, slot_id: UUID, available: int | None = None) -> None:
        hint = f" Only {available} spot(s) left." if available is not None else ""
        super().__init__(
            code=ErrorCode.SLOT_FULL,
            message=f"This time slot is full.{hint} Please pick another slot.",
        )
        self.slot_id = slot_id
        self.available = available


class CapacityExceededError(DomainError):
    """Raised by the slot ledger when a reservation would overbook a slot."""

    def __init__(self, slot_id: UUID, requested: int, available: int) -> None:
        super().__init__(
            code=ErrorCode.CAPACITY_EXCEEDED,
            message=f"Requested {requested} spot(s), {available} available",
        )
        self.slot_id = slot_id
        self.requested = requested
        self.available = available


class SlotNotFoundError(DomainError):
    def __init__(self, slot_id: UUID) -> None:
        super().__init__(code=ErrorCode.SLOT_NOT_FOUND, message="Time slot not found")
        self.slot_id = slot_id


class SlotMismatchError(DomainError):
    """The slot does not belong to the requested experience."""

    def __init__(self, slot_id: UUID, experience_id: UUID) -> None:
        super().__init__(
            code=ErrorCode.SLOT_MISMATCH,
            message="The time slot does not belong to this experience",
        )
        self.slot_id = slot_id
        self.experience_id = experience_id


class ExperienceNotFoundError(DomainError):
    def __init__(self, experience_id: UUID) -> None:
        super().__init__(code=ErrorCode.EXPERIENCE_NOT_FOUND, message="Experience not found")
        self.experience_id = experience_id


class BookingNotFoundError(DomainError):
    def __init__(self, booking_id: UUID) -> None:
        super().__init__(code=ErrorCode.BOOKING_NOT_FOUND, message="Booking not found")
        self.booking_id = booking_id


class InvalidGuestCountError(DomainError):
    def __init__(self, guest_count: int) -> None:
        super().__init__(
            code=ErrorCode.INVALID_GUEST_COUNT,
            message="Guest count must be at least 1",
        )
        self.guest_count = guest_count


class InvalidTransitionError(DomainError):
    """The booking's current status does not allow the requested change."""

    def __init__(self, booking_id: UUID, current: str, event: str, reason: str = "") -> None:
        message = f"Cannot apply {event} to a booking in status {current}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(code=ErrorCode.INVALID_TRANSITION, message=message)
        self.booking_id = booking_id
        self.current = current
        self.event = event


class CancellationWindowClosedError(DomainError):
    def __init__(self, booking_id: UUID, cutoff_hours: float) -> None:
        super().__init__(
            code=ErrorCode.CANCELLATION_WINDOW_CLOSED,
            message=(
                f"The cancellation deadline has passed. Bookings can be cancelled "
                f"up to {cutoff_hours:g} hours before the experience starts."
            ),
        )
        self.booking_id = booking_id


class NotRetryableError(DomainError):
    def __init__(self, booking_id: UUID, current: str) -> None:
        super().__init__(
            code=ErrorCode.NOT_RETRYABLE,
            message=f"Payment can only be retried after a failed payment (status is {current})",
        )
        self.booking_id = booking_id
        self.current = current


class NotAuthorizedError(DomainError):
    def __init__(self, requester_id: str, action: str) -> None:
        super().__init__(
            code=ErrorCode.NOT_AUTHORIZED,
            message=f"You are not allowed to {action} this booking",
        )
        self.requester_id = requester_id
        self.action = action


class AmountMismatchError(DomainError):
    """The charged amount drifted from the booking's total price.

    Never retried automatically; needs manual intervention.
    """

    def __init__(self, booking_id: UUID) -> None:
        super().__init__(
            code=ErrorCode.AMOUNT_MISMATCH,
            message="We could not process this payment. Our team has been notified.",
        )
        self.booking_id = booking_id

"""Structured audit trail for bookings.

Domain events are logged as they are published; invalid transitions and
payment anomalies are logged from the reservation service.
"""

from __future__ import annotations

import structlog

from shared.application.message_bus import message_bus
from apps.bookings.domain import events

logger = structlog.get_logger("apps.bookings.audit")


@message_bus.subscribe(events.BookingCreated)
def booking_created(event: events.BookingCreated) -> None:
    logger.info(
        "booking.created",
        **event.to_dict(),
        booking_id=str(event.booking_id),
        user_id=event.user_id,
        slot_id=str(event.slot_id),
        guests=event.guest_count,
        total_price=str(event.total_price),
    )


@message_bus.subscribe(events.BookingConfirmed)
def booking_confirmed(event: events.BookingConfirmed) -> None:
    logger.info(
        "booking.confirmed",
        **event.to_dict(),
        booking_id=str(event.booking_id),
        provider_ref=event.provider_ref,
    )


@message_bus.subscribe(events.BookingPaymentFailed)
def booking_payment_failed(event: events.BookingPaymentFailed) -> None:
    logger.warning(
        "booking.payment_failed",
        **event.to_dict(),
        booking_id=str(event.booking_id),
        reason=event.reason,
    )


@message_bus.subscribe(events.BookingCancelled)
def booking_cancelled(event: events.BookingCancelled) -> None:
    logger.info(
        "booking.cancelled",
        **event.to_dict(),
        booking_id=str(event.booking_id),
        source=event.source,
        old_status=event.old_status,
    )


@message_bus.subscribe(events.BookingCompleted)
def booking_completed(event: events.BookingCompleted) -> None:
    logger.info(
        "booking.completed",
        **event.to_dict(),
        booking_id=str(event.booking_id),
        experience_id=str(event.experience_id),
    )


@message_bus.subscribe(events.SlotCapacityReleased)
def capacity_released(event: events.SlotCapacityReleased) -> None:
    logger.info(
        "slot.released",
        **event.to_dict(),
        slot_id=str(event.slot_id),
        reservation_id=str(event.reservation_id),
        guests=event.guest_count,
    )


def invalid_transition(booking_id, current: str, attempted: str, reason: str = "") -> None:
    # structlog reserves "event" for the log message itself
    logger.warning(
        "booking.invalid_transition",
        booking_id=str(booking_id),
        status=current,
        booking_event=attempted,
        reason=reason,
    )


def payment_anomaly(booking_id, kind: str, **details) -> None:
    logger.critical("booking.payment_anomaly", booking_id=str(booking_id), kind=kind, **details)

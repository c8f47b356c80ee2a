"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .application.bootstrap import get_reservation_service

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_stale_payments")
def expire_stale_payments() -> dict[str, int]:
    """
    Cancel bookings left unpaid past the payment grace period.

    Covers PENDING_PAYMENT and PAYMENT_FAILED bookings older than
    RESERVATIONS["PAYMENT_GRACE_MINUTES"]; their capacity goes back to
    the slot.

    Runs every minute.

    Returns:
        dict: {"expired": number of cancelled bookings}
    """
    expired = get_reservation_service().expire_stale_payments()
    return {"expired": expired}


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> dict[str, int]:
    """
    Complete confirmed bookings whose time slot has ended.

    Guests can review the experience from then on.

    Runs every hour.

    Returns:
        dict: {"completed": number of completed bookings}
    """
    completed = get_reservation_service().complete_finished_bookings()
    return {"completed": completed}

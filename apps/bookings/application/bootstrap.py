"""Wiring of the reservation engine for the Django runtime."""

from functools import lru_cache
import logging

from shared.application.uow import DjangoUnitOfWork
from apps.bookings.application.authorization import HostOrStaffAuthorizer
from apps.bookings.application.reservation_service import ReservationService
from apps.bookings.domain import ReservationPolicy
from apps.bookings.stores.django_store import DjangoBookingStore, DjangoExperienceCatalog, DjangoSlotLedger
from apps.payments.coordinator import PaymentCoordinator
from apps.payments.providers import build_payment_provider
from apps.payments.stores import DjangoPaymentAttemptStore

logger = logging.getLogger(__name__)


def is_staff_user(requester_id: str) -> bool:
    from django.contrib.auth import get_user_model  # type: ignore

    try:
        return get_user_model().objects.filter(pk=requester_id, is_staff=True).exists()
    except (TypeError, ValueError):
        return False


def build_reservation_service() -> ReservationService:
    policy = ReservationPolicy.from_settings()
    catalog = DjangoExperienceCatalog()
    bookings = DjangoBookingStore()
    payments = PaymentCoordinator(
        provider=build_payment_provider(policy.payment_timeout_seconds),
        attempts=DjangoPaymentAttemptStore(),
    )
    logger.info(f"Reservation service using the {payments.provider.name} payment provider")
    return ReservationService(
        catalog=catalog,
        bookings=bookings,
        ledger=DjangoSlotLedger(),
        payments=payments,
        policy=policy,
        authorizer=HostOrStaffAuthorizer(catalog, bookings, is_staff=is_staff_user),
        uow_factory=DjangoUnitOfWork,
    )


@lru_cache(maxsize=1)
def get_reservation_service() -> ReservationService:
    """Process-wide service, so per-booking locks are shared by all requests"""
    return build_reservation_service()

"""Shared fixtures: an in-memory reservation engine with a controllable clock."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from shared.application.message_bus import MessageBus
from shared.application.uow import InMemoryUnitOfWork
from shared.domain.base import utcnow
from shared.domain.value_objects import Money, TimeWindow
from apps.bookings.application.authorization import HostOrStaffAuthorizer
from apps.bookings.application.reservation_service import ReservationService
from apps.bookings.domain import ReservationPolicy
from apps.bookings.stores.memory_store import (
    InMemoryBookingStore,
    InMemoryExperienceCatalog,
    InMemorySlotLedger,
)
from apps.experiences.domain import Experience, TimeSlot
from apps.payments.coordinator import PaymentCoordinator
from apps.payments.providers import SandboxPaymentProvider
from apps.payments.stores import InMemoryPaymentAttemptStore


class FakeClock:
    def __init__(self, now=None):
        self.now = now or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@dataclass
class Engine:
    catalog: InMemoryExperienceCatalog
    ledger: InMemorySlotLedger
    bookings: InMemoryBookingStore
    provider: SandboxPaymentProvider
    attempts: InMemoryPaymentAttemptStore
    service: ReservationService
    bus: MessageBus
    clock: FakeClock

    def add_experience(self, price="500.00", max_capacity=10, host_id="host-1", is_active=True) -> Experience:
        return self.catalog.add_experience(Experience(
            id=uuid4(),
            host_id=host_id,
            title="Mezcal tasting",
            price=Money(Decimal(price), "MXN"),
            duration_minutes=120,
            max_capacity=max_capacity,
            is_active=is_active,
        ))

    def add_slot(self, experience: Experience, starts_in=timedelta(days=3), capacity=None) -> TimeSlot:
        starts_at = self.clock.now + starts_in
        return self.catalog.add_slot(TimeSlot(
            id=uuid4(),
            experience_id=experience.id,
            window=TimeWindow(starts_at, starts_at + timedelta(minutes=experience.duration_minutes)),
            capacity=experience.max_capacity if capacity is None else capacity,
        ))

    def booked(self, slot: TimeSlot) -> int:
        return self.ledger.snapshot(slot.id).booked_count


def build_engine(clock: FakeClock, policy: ReservationPolicy | None = None) -> Engine:
    bus = MessageBus()
    catalog = InMemoryExperienceCatalog()
    ledger = InMemorySlotLedger(catalog)
    bookings = InMemoryBookingStore(catalog)
    provider = SandboxPaymentProvider()
    attempts = InMemoryPaymentAttemptStore()
    service = ReservationService(
        catalog=catalog,
        bookings=bookings,
        ledger=ledger,
        payments=PaymentCoordinator(provider, attempts),
        policy=policy or ReservationPolicy(),
        authorizer=HostOrStaffAuthorizer(catalog, bookings, is_staff=lambda requester_id: requester_id == "staff"),
        uow_factory=lambda: InMemoryUnitOfWork(bus),
        clock=clock,
    )
    return Engine(catalog, ledger, bookings, provider, attempts, service, bus, clock)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return build_engine(clock)

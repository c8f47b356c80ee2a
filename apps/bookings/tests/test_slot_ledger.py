"""In-memory slot ledger: capacity accounting and concurrent reservations."""

import threading
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from apps.bookings.domain import ReservationHandle
from apps.bookings.domain.errors import CapacityExceededError, InvalidGuestCountError, SlotNotFoundError


@pytest.fixture
def slot(engine):
    return engine.add_slot(engine.add_experience(max_capacity=5))


def test_reserve_increments_booked_count(engine, slot):
    handle = engine.ledger.reserve(slot.id, 3)

    assert handle.slot_id == slot.id
    assert handle.guest_count == 3
    snapshot = engine.ledger.snapshot(slot.id)
    assert snapshot.booked_count == 3
    assert snapshot.available_spots == 2
    assert snapshot.is_available


def test_catalog_sees_ledger_counters(engine, slot):
    engine.ledger.reserve(slot.id, 5)

    assert engine.catalog.get_slot(slot.id).booked_count == 5
    assert not engine.catalog.get_slot(slot.id).is_available


def test_catalog_counter_update_keeps_slot_invariant(engine, slot):
    with pytest.raises(ValueError):
        engine.catalog.set_booked_count(slot.id, 6)

    assert engine.booked(slot) == 0


def test_reserve_beyond_capacity_is_rejected(engine, slot):
    engine.ledger.reserve(slot.id, 4)

    with pytest.raises(CapacityExceededError) as exc_info:
        engine.ledger.reserve(slot.id, 2)

    assert exc_info.value.available == 1
    assert engine.booked(slot) == 4


def test_reserve_exactly_remaining_capacity(engine, slot):
    engine.ledger.reserve(slot.id, 2)
    engine.ledger.reserve(slot.id, 3)

    assert engine.booked(slot) == 5
    assert not engine.ledger.snapshot(slot.id).is_available


@pytest.mark.parametrize("guests", [0, -1, True, 1.5])
def test_invalid_guest_count(engine, slot, guests):
    with pytest.raises(InvalidGuestCountError):
        engine.ledger.reserve(slot.id, guests)
    assert engine.booked(slot) == 0


def test_unknown_slot(engine):
    with pytest.raises(SlotNotFoundError):
        engine.ledger.reserve(uuid4(), 1)
    with pytest.raises(SlotNotFoundError):
        engine.ledger.snapshot(uuid4())


def test_release_is_idempotent_per_handle(engine, slot):
    first = engine.ledger.reserve(slot.id, 2)
    engine.ledger.reserve(slot.id, 1)

    assert engine.ledger.release(first) is True
    assert engine.ledger.release(first) is False
    assert engine.booked(slot) == 1


def test_release_of_foreign_handle_is_a_noop(engine, slot):
    engine.ledger.reserve(slot.id, 2)

    assert engine.ledger.release(ReservationHandle(slot_id=slot.id, guest_count=2)) is False
    assert engine.booked(slot) == 2


def test_released_capacity_can_be_reserved_again(engine, slot):
    handle = engine.ledger.reserve(slot.id, 5)
    engine.ledger.release(handle)

    engine.ledger.reserve(slot.id, 5)

    assert engine.booked(slot) == 5


class TestConcurrency:

    def test_race_for_the_last_seat_has_one_winner(self, engine):
        slot = engine.add_slot(engine.add_experience(max_capacity=1))
        barrier = threading.Barrier(2)
        outcomes = []

        def contender():
            barrier.wait()
            try:
                engine.ledger.reserve(slot.id, 1)
                outcomes.append("won")
            except CapacityExceededError:
                outcomes.append("lost")

        threads = [threading.Thread(target=contender) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["lost", "won"]
        assert engine.booked(slot) == 1

    def test_many_concurrent_reservations_never_overbook(self, engine):
        slot = engine.add_slot(engine.add_experience(max_capacity=10))

        def attempt(_):
            try:
                return engine.ledger.reserve(slot.id, 1)
            except CapacityExceededError:
                return None

        with ThreadPoolExecutor(max_workers=16) as pool:
            handles = list(pool.map(attempt, range(50)))

        granted = [h for h in handles if h is not None]
        assert len(granted) == 10
        assert engine.booked(slot) == 10

    def test_concurrent_reserve_and_release_keep_counter_consistent(self, engine):
        slot = engine.add_slot(engine.add_experience(max_capacity=20))
        held = [engine.ledger.reserve(slot.id, 1) for _ in range(10)]

        def release(handle):
            # every handle is released from two threads at once
            return engine.ledger.release(handle)

        def reserve(_):
            try:
                engine.ledger.reserve(slot.id, 1)
                return True
            except CapacityExceededError:
                return False

        with ThreadPoolExecutor(max_workers=16) as pool:
            released = list(pool.map(release, held + held))
            reserved = list(pool.map(reserve, range(15)))

        assert released.count(True) == 10
        assert engine.booked(slot) == reserved.count(True)
        assert 0 <= engine.booked(slot) <= 20

    def test_different_slots_do_not_interfere(self, engine):
        experience = engine.add_experience(max_capacity=3)
        slots = [engine.add_slot(experience) for _ in range(4)]

        def fill(slot):
            granted = 0
            for _ in range(5):
                try:
                    engine.ledger.reserve(slot.id, 1)
                    granted += 1
                except CapacityExceededError:
                    pass
            return granted

        with ThreadPoolExecutor(max_workers=4) as pool:
            assert list(pool.map(fill, slots)) == [3, 3, 3, 3]

"""Bookings app package.

This app encapsulates the reservation engine: the slot ledger that owns
time slot capacity, the booking lifecycle state machine and the
reservation service that ties them to payments. Capacity holds are
taken with a single conditional UPDATE, so concurrent bookings can
never oversell a slot.
"""

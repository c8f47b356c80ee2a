"""Experiences app package.

This app holds the catalog side of guided experiences: the experience
offering itself and the fixed-capacity time slots guests book. Slot
capacity counters are only ever written by the bookings slot ledger.
"""

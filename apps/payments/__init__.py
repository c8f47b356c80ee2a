"""Payments app package.

Coordinates charges and refunds for bookings against an external
payment provider. Every attempt for a booking reuses the same
idempotency key, so retries never double charge.
"""

"""Reservation policy knobs (cutoffs, grace periods, retry limits)."""

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class ReservationPolicy:
    """
    Configuration for the reservation engine

    Built from settings.RESERVATIONS; every value has a default so the
    engine runs with an empty dict.
    """
    cancellation_cutoff: timedelta = timedelta(hours=24)
    payment_grace_period: timedelta = timedelta(minutes=30)
    max_payment_attempts: int = 3
    payment_timeout_seconds: float = 10.0
    currency: str = 'MXN'

    def __post_init__(self):
        if self.max_payment_attempts < 1:
            raise ValueError("max_payment_attempts must be at least 1")
        if self.payment_timeout_seconds <= 0:
            raise ValueError("payment_timeout_seconds must be positive")

    @classmethod
    def from_mapping(cls, config: dict) -> 'ReservationPolicy':
        defaults = cls()
        return cls(
            cancellation_cutoff=timedelta(
                hours=config.get('CANCELLATION_CUTOFF_HOURS', defaults.cancellation_cutoff.total_seconds() / 3600)
            ),
            payment_grace_period=timedelta(
                minutes=config.get('PAYMENT_GRACE_MINUTES', defaults.payment_grace_period.total_seconds() / 60)
            ),
            max_payment_attempts=int(config.get('MAX_PAYMENT_ATTEMPTS', defaults.max_payment_attempts)),
            payment_timeout_seconds=float(config.get('PAYMENT_TIMEOUT_SECONDS', defaults.payment_timeout_seconds)),
            currency=config.get('CURRENCY', defaults.currency),
        )

    @classmethod
    def from_settings(cls) -> 'ReservationPolicy':
        from django.conf import settings  # type: ignore

        return cls.from_mapping(getattr(settings, 'RESERVATIONS', {}))

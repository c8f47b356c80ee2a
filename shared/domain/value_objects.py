"""
Common Value Objects

Value objects used across multiple domains:
- Money: Represents monetary amounts with currency
- TimeWindow: Represents the start/end of a bookable time slot
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from shared.domain.base import ValueObject

SUPPORTED_CURRENCIES = ('MXN', 'USD', 'EUR')


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Represents a monetary amount with currency.
    Immutable and supports arithmetic operations.
    """
    amount: Decimal
    currency: str = 'MXN'

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if not self.currency:
            raise ValueError("Currency is required")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        """Add two money objects"""
        if not isinstance(other, Money):
            raise TypeError("Can only add Money to Money")
        if self.currency != other.currency:
            raise ValueError(f"Cannot add different currencies: {self.currency} and {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def __mul__(self, factor: int | Decimal) -> 'Money':
        """Multiply money by a quantity (e.g. guest count)"""
        if isinstance(factor, bool) or not isinstance(factor, (int, Decimal)):
            raise TypeError("Can only multiply Money by an integer or Decimal")
        return Money(self.amount * Decimal(factor), self.currency)

    @property
    def minor_units(self) -> int:
        """Amount in cents, as payment providers expect it"""
        return int((self.amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


@dataclass(frozen=True)
class TimeWindow(ValueObject):
    """
    Time window value object

    Represents the interval a time slot runs for, from starts_at
    (inclusive) to ends_at (exclusive).
    """
    starts_at: datetime
    ends_at: datetime

    def __post_init__(self):
        if self.starts_at >= self.ends_at:
            raise ValueError(f"Start ({self.starts_at}) must be before end ({self.ends_at})")

    def has_ended(self, now: datetime) -> bool:
        return now >= self.ends_at

    def starts_within(self, lead_time: timedelta, now: datetime) -> bool:
        """True when the window starts less than lead_time from now (or already started)"""
        return now >= self.starts_at - lead_time

    @property
    def duration(self) -> timedelta:
        return self.ends_at - self.starts_at

    def __str__(self):
        return f"{self.starts_at.strftime('%d.%m.%Y %H:%M')} - {self.ends_at.strftime('%H:%M')}"

    def __repr__(self):
        return f"TimeWindow({self.starts_at.isoformat()}, {self.ends_at.isoformat()})"

"""
Payment provider integrations

PaymentProvider is the outbound contract; HttpPaymentProvider talks to
a JSON payments API, SandboxPaymentProvider emulates one for
development and tests.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
import logging
import threading
import uuid

import requests

from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """Provider could not be reached or answered with a server error."""

    pass


class ProviderStatus(Enum):
    APPROVED = 'approved'
    DECLINED = 'declined'
    AMOUNT_MISMATCH = 'amount_mismatch'


@dataclass(frozen=True)
class ProviderResponse:
    status: ProviderStatus
    provider_ref: str | None = None
    message: str = ''

    @property
    def approved(self) -> bool:
        return self.status is ProviderStatus.APPROVED


class PaymentProvider(ABC):
    """
    Outbound payment provider contract

    Calls with a key the provider has already approved must return the
    original approval instead of charging again.
    """

    name = 'abstract'

    @abstractmethod
    def charge(self, idempotency_key: str, amount: Money, method_ref: str | None = None) -> ProviderResponse:
        """Raises PaymentProviderError on timeouts and transport failures"""

    @abstractmethod
    def refund(self, idempotency_key: str, provider_ref: str, amount: Money) -> ProviderResponse:
        """Raises PaymentProviderError on timeouts and transport failures"""


class HttpPaymentProvider(PaymentProvider):
    """
    JSON payments API client

    Args:
        base_url: API root, e.g. https://api.payments.example/v1/
        api_key: bearer token
        timeout: seconds before a call counts as PROVIDER_UNAVAILABLE
    """

    name = 'http'

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.base_url = base_url if base_url.endswith('/') else f"{base_url}/"
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, idempotency_key: str, payload: dict) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Idempotency-Key": idempotency_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error calling payment provider ({path}): {e}")
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e

        if response.status_code >= 500:
            logger.error(f"Payment provider returned {response.status_code} for {path}")
            raise PaymentProviderError(f"Payment provider error {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise PaymentProviderError("Payment provider returned a non-JSON response") from e

        if not isinstance(body, dict):
            logger.error(f"Payment provider returned a {type(body).__name__} for {path}")
            raise PaymentProviderError("Payment provider returned an unexpected response")
        return body

    @staticmethod
    def _parse(result: dict) -> ProviderResponse:
        status = result.get("status")
        if status == "succeeded":
            charge_id = result.get("id")
            return ProviderResponse(ProviderStatus.APPROVED, provider_ref=str(charge_id) if charge_id else None)

        error = result.get("error") or {}
        if not isinstance(error, dict):
            return ProviderResponse(ProviderStatus.DECLINED, message=str(error))

        message = str(error.get("message") or "")
        if error.get("code") == "amount_mismatch":
            return ProviderResponse(ProviderStatus.AMOUNT_MISMATCH, message=message)
        return ProviderResponse(ProviderStatus.DECLINED, message=message)

    def charge(self, idempotency_key: str, amount: Money, method_ref: str | None = None) -> ProviderResponse:
        logger.info(f"Charging {amount} (key {idempotency_key})")
        payload = {
            "amount": amount.minor_units,
            "currency": amount.currency,
            "reference": idempotency_key,
        }
        if method_ref:
            payload["payment_method"] = method_ref
        return self._parse(self._post("charges", idempotency_key, payload))

    def refund(self, idempotency_key: str, provider_ref: str, amount: Money) -> ProviderResponse:
        logger.info(f"Refunding {amount} of charge {provider_ref} (key {idempotency_key})")
        payload = {
            "charge": provider_ref,
            "amount": amount.minor_units,
            "currency": amount.currency,
        }
        return self._parse(self._post("refunds", idempotency_key, payload))


class SandboxPaymentProvider(PaymentProvider):
    """
    Emulated provider

    Approves everything unless told otherwise with queue(). Remembers
    approved keys so a repeated key returns the original approval, and
    reports AMOUNT_MISMATCH when a remembered key comes back with a
    different amount.
    """

    name = 'sandbox'

    def __init__(self):
        self._lock = threading.Lock()
        self._approved: dict[str, tuple[Money, ProviderResponse]] = {}
        self._scripted: deque = deque()
        self.calls: list[tuple[str, str, Money]] = []

    def queue(self, *outcomes):
        """
        Script the next calls

        Each outcome is a ProviderStatus, a ProviderResponse to return as is,
        or an exception instance to raise.
        """
        with self._lock:
            self._scripted.extend(outcomes)

    @property
    def captured(self) -> int:
        """Number of distinct approved charges"""
        return sum(1 for key in self._approved if key.endswith(':charge'))

    def _respond(self, operation: str, idempotency_key: str, amount: Money) -> ProviderResponse:
        with self._lock:
            self.calls.append((operation, idempotency_key, amount))

            remembered = self._approved.get(idempotency_key)
            if remembered is not None:
                approved_amount, response = remembered
                if approved_amount != amount:
                    return ProviderResponse(
                        ProviderStatus.AMOUNT_MISMATCH,
                        message="Amount differs from the original request with this key",
                    )
                return response

            scripted = self._scripted.popleft() if self._scripted else ProviderStatus.APPROVED
            if isinstance(scripted, Exception):
                raise scripted
            if isinstance(scripted, ProviderResponse):
                if scripted.approved:
                    self._approved[idempotency_key] = (amount, scripted)
                return scripted
            if scripted is ProviderStatus.DECLINED:
                return ProviderResponse(ProviderStatus.DECLINED, message="Card declined")
            if scripted is ProviderStatus.AMOUNT_MISMATCH:
                return ProviderResponse(ProviderStatus.AMOUNT_MISMATCH, message="Amount mismatch")

            response = ProviderResponse(ProviderStatus.APPROVED, provider_ref=f"sbx_{uuid.uuid4().hex[:16]}")
            self._approved[idempotency_key] = (amount, response)
            return response

    def charge(self, idempotency_key: str, amount: Money, method_ref: str | None = None) -> ProviderResponse:
        return self._respond('charge', idempotency_key, amount)

    def refund(self, idempotency_key: str, provider_ref: str, amount: Money) -> ProviderResponse:
        return self._respond('refund', idempotency_key, amount)


def build_payment_provider(timeout: float | None = None) -> PaymentProvider:
    """Provider for the current settings"""
    from django.conf import settings  # type: ignore

    api_key = getattr(settings, "PAYMENT_PROVIDER_API_KEY", "")
    if settings.DEBUG or not api_key:
        logger.warning("Using the sandbox payment provider (DEBUG mode or no API key)")
        return SandboxPaymentProvider()

    if timeout is None:
        timeout = float(getattr(settings, "RESERVATIONS", {}).get("PAYMENT_TIMEOUT_SECONDS", 10))
    return HttpPaymentProvider(
        base_url=settings.PAYMENT_PROVIDER_BASE_URL,
        api_key=api_key,
        timeout=timeout,
    )

"""Contracts for the payment provider used by intake, the lifecycle and webhooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class PaymentProviderError(Exception):
  """Raised when the payment provider rejects a call or cannot be reached."""


class WebhookSignatureError(Exception):
  """Raised when a webhook payload fails signature or timestamp checks."""


@dataclass(frozen=True)
class PaymentVerification:
  """Outcome of checking a payment reference before accepting a submission."""

  valid: bool
  error: str | None = None
  tier: str | None = None
  amount_minor_units: int | None = None
  customer_id: str | None = None


@dataclass(frozen=True)
class CreatedPaymentIntent:
  payment_intent_id: str
  client_secret: str
  amount_minor_units: int
  currency: str


class PaymentGateway(Protocol):
  """Narrow surface of the payment provider the rest of the service depends on."""

  async def verify_payment(self, payment_reference: str) -> PaymentVerification:
    """Confirm the payment is captured and not refunded."""

  async def refund(self, payment_reference: str, *, reason: str) -> str:
    """Refund a payment in full and return the provider refund id."""

  async def create_payment_intent(self, *, tier: str, amount_minor_units: int, email: str | None) -> CreatedPaymentIntent:
    """Create a payment for a tier purchase."""

"""Stripe REST client built on httpx.

Only the handful of endpoints the service needs are wrapped, which keeps the
dependency surface to httpx and lets tests swap in `httpx.MockTransport`.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any

import httpx

from folio.config import Settings
from folio.payments.contracts import CreatedPaymentIntent, PaymentGateway, PaymentProviderError, PaymentVerification, WebhookSignatureError

logger = logging.getLogger(__name__)


class StripePaymentGateway(PaymentGateway):
  """PaymentGateway backed by the Stripe v1 API."""

  def __init__(self, *, secret_key: str, api_base: str = "https://api.stripe.com/v1", timeout_seconds: float = 15.0, currency: str = "myr", transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._secret_key = secret_key
    self._api_base = api_base.rstrip("/")
    self._timeout = httpx.Timeout(timeout_seconds)
    self._currency = currency
    self._transport = transport

  def _build_client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=self._api_base, auth=(self._secret_key, ""), timeout=self._timeout, transport=self._transport, trust_env=False)

  async def _request(self, method: str, path: str, *, data: dict[str, Any] | None = None, params: dict[str, Any] | None = None, idempotency_key: str | None = None) -> dict[str, Any]:
    headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
    try:
      async with self._build_client() as client:
        response = await client.request(method, path, data=data, params=params, headers=headers)
    except httpx.RequestError as exc:
      logger.error("Stripe request failed method=%s path=%s error=%s", method, path, exc)
      raise PaymentProviderError(f"Payment provider unreachable: {exc}") from exc

    if response.status_code >= 400:
      message = _error_message(response)
      logger.error("Stripe returned %s for %s %s: %s", response.status_code, method, path, message)
      raise PaymentProviderError(message)

    return response.json()

  async def verify_payment(self, payment_reference: str) -> PaymentVerification:
    try:
      intent = await self._request("GET", f"/payment_intents/{payment_reference}", params={"expand[]": "latest_charge"})
    except PaymentProviderError as exc:
      return PaymentVerification(valid=False, error=str(exc))

    if intent.get("status") != "succeeded":
      return PaymentVerification(valid=False, error="Payment not completed")

    charge = intent.get("latest_charge")
    if isinstance(charge, dict) and (charge.get("refunded") or int(charge.get("amount_refunded") or 0) > 0):
      return PaymentVerification(valid=False, error="Payment has been refunded")

    metadata = intent.get("metadata") or {}
    customer = intent.get("customer")
    return PaymentVerification(
      valid=True, tier=metadata.get("tier"), amount_minor_units=intent.get("amount_received") or intent.get("amount"), customer_id=customer if isinstance(customer, str) else None
    )

  async def refund(self, payment_reference: str, *, reason: str) -> str:
    data = {"payment_intent": payment_reference, "reason": "requested_by_customer", "metadata[folio_reason]": reason[:500]}
    refund = await self._request("POST", "/refunds", data=data, idempotency_key=f"refund-{payment_reference}")
    refund_id = refund.get("id")
    if not refund_id:
      raise PaymentProviderError("Refund response missing id")
    logger.info("Refund issued payment_reference=%s refund_id=%s status=%s", payment_reference, refund_id, refund.get("status"))
    return str(refund_id)

  async def create_payment_intent(self, *, tier: str, amount_minor_units: int, email: str | None) -> CreatedPaymentIntent:
    data: dict[str, Any] = {"amount": amount_minor_units, "currency": self._currency, "automatic_payment_methods[enabled]": "true", "metadata[tier]": tier}
    if email:
      data["receipt_email"] = email
    intent = await self._request("POST", "/payment_intents", data=data)
    return CreatedPaymentIntent(payment_intent_id=str(intent["id"]), client_secret=str(intent["client_secret"]), amount_minor_units=amount_minor_units, currency=self._currency)


def _error_message(response: httpx.Response) -> str:
  try:
    body = response.json()
  except ValueError:
    return f"HTTP {response.status_code}"
  error = body.get("error") if isinstance(body, dict) else None
  if isinstance(error, dict) and error.get("message"):
    return str(error["message"])
  return f"HTTP {response.status_code}"


def verify_webhook_signature(payload: bytes, signature_header: str | None, secret: str, *, tolerance_seconds: int = 300, now: float | None = None) -> dict[str, Any]:
  """Check a `Stripe-Signature` header and return the decoded event."""
  if not signature_header:
    raise WebhookSignatureError("Missing signature header")

  timestamp: int | None = None
  signatures: list[str] = []
  for part in signature_header.split(","):
    key, _, value = part.strip().partition("=")
    if key == "t" and value.isdigit():
      timestamp = int(value)
    elif key == "v1" and value:
      signatures.append(value)

  if timestamp is None or not signatures:
    raise WebhookSignatureError("Malformed signature header")

  current = time.time() if now is None else now
  if abs(current - timestamp) > tolerance_seconds:
    raise WebhookSignatureError("Signature timestamp outside tolerance")

  signed_payload = f"{timestamp}.".encode() + payload
  expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
  if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
    raise WebhookSignatureError("Signature mismatch")

  try:
    event = json.loads(payload)
  except json.JSONDecodeError as exc:
    raise WebhookSignatureError("Payload is not valid JSON") from exc
  if not isinstance(event, dict):
    raise WebhookSignatureError("Payload is not a JSON object")
  return event


def build_payment_gateway(settings: Settings) -> StripePaymentGateway:
  if not settings.stripe_secret_key:
    raise RuntimeError("FOLIO_STRIPE_SECRET_KEY is not configured.")
  return StripePaymentGateway(secret_key=settings.stripe_secret_key, api_base=settings.stripe_api_base, timeout_seconds=settings.stripe_timeout_seconds, currency=settings.currency)

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from folio.api.deps import get_payment_gateway
from folio.api.models import PaymentIntentResponse
from folio.payments.contracts import PaymentGateway, PaymentProviderError
from folio.schema.submissions import PaymentIntentCreate
from folio.services.tiers import get_tier_price

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/intents", response_model=PaymentIntentResponse, response_model_by_alias=True)
async def create_payment_intent(payload: PaymentIntentCreate, payments: PaymentGateway = Depends(get_payment_gateway)) -> PaymentIntentResponse:  # noqa: B008
  """Create a payment for the chosen tier at the server-side price."""
  amount = get_tier_price(payload.tier)
  try:
    intent = await payments.create_payment_intent(tier=payload.tier.value, amount_minor_units=amount, email=payload.email)
  except PaymentProviderError as exc:
    logger.error("Payment intent creation failed for tier %s: %s", payload.tier.value, exc)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to create payment intent") from exc

  return PaymentIntentResponse(client_secret=intent.client_secret, payment_intent_id=intent.payment_intent_id, amount=intent.amount_minor_units, currency=intent.currency)

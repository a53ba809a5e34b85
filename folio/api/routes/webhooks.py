import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from folio.api.deps import get_payment_reconciler
from folio.api.models import WebhookResponse
from folio.config import Settings, get_settings
from folio.core.database import get_db
from folio.lifecycle.payment_events import PaymentEventReconciler
from folio.payments.contracts import WebhookSignatureError
from folio.payments.stripe_client import verify_webhook_signature

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/payments", response_model=WebhookResponse, response_model_by_alias=True)
async def receive_payment_webhook(
  request: Request,
  stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
  settings: Settings = Depends(get_settings),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
  reconciler: PaymentEventReconciler = Depends(get_payment_reconciler),  # noqa: B008
) -> WebhookResponse:
  """Verify the provider signature, then apply the event at most once."""
  if not settings.stripe_webhook_secret:
    logger.error("Payment webhook received but FOLIO_STRIPE_WEBHOOK_SECRET is not configured")
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Webhook not configured")

  payload = await request.body()
  try:
    event = verify_webhook_signature(payload, stripe_signature, settings.stripe_webhook_secret, tolerance_seconds=settings.stripe_webhook_tolerance_seconds)
  except WebhookSignatureError as exc:
    logger.warning("Rejected payment webhook: %s", exc)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature") from exc

  outcome = await reconciler.reconcile(db, event)
  return WebhookResponse(outcome=outcome.outcome)

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from folio.api.deps import get_notification_service, get_payment_gateway
from folio.api.models import SubmissionResponse, status_for
from folio.core.database import get_db
from folio.notifications.service import NotificationService
from folio.payments.contracts import PaymentGateway
from folio.schema.submissions import SubmissionCreate
from folio.services.submissions import create_submission

router = APIRouter()


@router.post("", response_model=SubmissionResponse, response_model_by_alias=True, status_code=status.HTTP_201_CREATED)
async def submit_onboarding(
  payload: SubmissionCreate,
  db: AsyncSession = Depends(get_db),  # noqa: B008
  payments: PaymentGateway = Depends(get_payment_gateway),  # noqa: B008
  notifications: NotificationService = Depends(get_notification_service),  # noqa: B008
) -> SubmissionResponse | JSONResponse:
  """Accept a paid onboarding submission; repeating the same payment returns the original student."""
  result = await create_submission(db, payload, payments=payments, notifications=notifications)
  if not result.success:
    body = {"success": False, "error": result.error, "errorCode": result.error_code.value if result.error_code else None}
    if result.errors:
      body["errors"] = result.errors
    return JSONResponse(body, status_code=status_for(result.error_code))

  response = SubmissionResponse(student_id=result.student_id, subdomain=result.subdomain, existing=result.existing)
  if result.existing:
    return JSONResponse(response.model_dump(mode="json", by_alias=True), status_code=status.HTTP_200_OK)
  return response

from __future__ import annotations

import datetime
import uuid

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from folio.lifecycle.results import LifecycleErrorCode, LifecycleResult
from folio.schema.sql import ChangeRequestStatus, ChangeRequestType
from folio.schema.submissions import _to_camel

ERROR_STATUS_CODES = {
  LifecycleErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
  LifecycleErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
  LifecycleErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
  LifecycleErrorCode.PAYMENT_REQUIRED: status.HTTP_402_PAYMENT_REQUIRED,
  LifecycleErrorCode.PAYMENT_INVALID: status.HTTP_402_PAYMENT_REQUIRED,
  LifecycleErrorCode.EMAIL_CONFLICT: status.HTTP_409_CONFLICT,
  LifecycleErrorCode.TIER_LIMIT: status.HTTP_400_BAD_REQUEST,
  LifecycleErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
  LifecycleErrorCode.PROVIDER_ERROR: status.HTTP_502_BAD_GATEWAY,
  LifecycleErrorCode.STORAGE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(code: LifecycleErrorCode | None) -> int:
  if code is None:
    return status.HTTP_400_BAD_REQUEST
  return ERROR_STATUS_CODES.get(code, status.HTTP_400_BAD_REQUEST)


def lifecycle_response(result: LifecycleResult) -> JSONResponse:
  """Render a lifecycle result as `{success}` or `{success: false, error}` with a matching status."""
  if result.success:
    return JSONResponse(result.as_response())
  return JSONResponse(result.as_response(), status_code=status_for(result.error_code))


class _CamelResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, from_attributes=True)


class _CamelRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, extra="ignore", str_strip_whitespace=True)


class SubmissionResponse(_CamelResponse):
  success: bool = True
  student_id: uuid.UUID
  subdomain: str | None = None
  existing: bool = False


class StudentStatusResponse(_CamelResponse):
  """Student-safe view of a submission; payment and refund identifiers are never included."""

  student_id: uuid.UUID
  name: str
  tier: str
  status: str
  status_label: str
  subdomain: str
  custom_domain: str | None = None
  portfolio_url: str | None = None
  rejection_reason: str | None = None
  refund_issued: bool = False
  edit_instructions: list[str] = Field(default_factory=list)
  payment_required: bool = False
  submitted_at: datetime.datetime | None = None


class PaymentIntentResponse(_CamelResponse):
  client_secret: str
  payment_intent_id: str
  amount: int
  currency: str


class RejectRequest(_CamelRequest):
  reason: str = Field(..., min_length=1, max_length=2000)
  should_refund: bool = False


class RequestEditsRequest(_CamelRequest):
  items: list[str] = Field(..., min_length=1, max_length=50)


class CustomDomainRequest(_CamelRequest):
  custom_domain: str | None = Field(default=None, max_length=253)


class ChangeRequestCreate(_CamelRequest):
  student_id: uuid.UUID
  type: ChangeRequestType
  description: str = Field(..., min_length=1, max_length=5000)


class ChangeRequestStatusUpdate(_CamelRequest):
  status: ChangeRequestStatus
  admin_notes: str | None = Field(default=None, max_length=5000)


class ChangeRequestRecord(_CamelResponse):
  id: uuid.UUID
  student_id: uuid.UUID
  type: ChangeRequestType
  status: ChangeRequestStatus
  description: str
  is_paid: bool
  amount: int
  admin_notes: str | None = None
  created_at: datetime.datetime | None = None
  updated_at: datetime.datetime | None = None


class ChangeRequestCreateResponse(_CamelResponse):
  success: bool = True
  change_request: ChangeRequestRecord
  requires_payment: bool
  amount: int


class ChangeRequestListResponse(_CamelResponse):
  requests: list[ChangeRequestRecord]


class DeploymentErrorRecord(_CamelResponse):
  student_id: uuid.UUID
  error: str


class DeploymentRunResponse(_CamelResponse):
  success: bool = True
  processed: int
  errors: list[DeploymentErrorRecord]
  retried: int


class WebhookResponse(_CamelResponse):
  received: bool = True
  outcome: str

"""Result types returned by lifecycle operations instead of raising."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum


class LifecycleErrorCode(str, Enum):
  NOT_FOUND = "not_found"
  INVALID_TRANSITION = "invalid_transition"
  INVALID_REQUEST = "invalid_request"
  PAYMENT_REQUIRED = "payment_required"
  PAYMENT_INVALID = "payment_invalid"
  EMAIL_CONFLICT = "email_conflict"
  TIER_LIMIT = "tier_limit"
  CONFLICT = "conflict"
  PROVIDER_ERROR = "provider_error"
  STORAGE_ERROR = "storage_error"


PAYMENT_UNVERIFIABLE_MESSAGE = "Payment could not be verified right now. Please try again."


@dataclass(frozen=True)
class LifecycleResult:
  """Discriminated outcome; `error` is always safe to show to staff."""

  success: bool
  error: str | None = None
  error_code: LifecycleErrorCode | None = None
  student_id: uuid.UUID | None = None
  refund_failed: bool = False
  refund_error: str | None = None
  payment_required: bool = False

  @classmethod
  def ok(cls, student_id: uuid.UUID | None = None, **extra: object) -> LifecycleResult:
    return cls(success=True, student_id=student_id, **extra)

  @classmethod
  def fail(cls, code: LifecycleErrorCode, error: str, student_id: uuid.UUID | None = None) -> LifecycleResult:
    return cls(success=False, error=error, error_code=code, student_id=student_id)

  def as_response(self) -> dict[str, object]:
    """Shape used by the staff and student HTTP surfaces."""
    if not self.success:
      return {"success": False, "error": self.error, "errorCode": self.error_code.value if self.error_code else None}
    payload: dict[str, object] = {"success": True}
    if self.refund_failed:
      payload["refundFailed"] = True
      payload["refundError"] = self.refund_error
    if self.payment_required:
      payload["paymentRequired"] = True
    return payload


@dataclass(frozen=True)
class WebhookOutcome:
  event_id: str
  event_type: str
  outcome: str
  student_id: uuid.UUID | None = None

"""Submission intake and the student-facing status view.

Intake is idempotent per payment reference: a retried form post with the same
payment returns the student created the first time.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.exceptions import translate_integrity_error
from folio.lifecycle.results import PAYMENT_UNVERIFIABLE_MESSAGE, LifecycleErrorCode
from folio.notifications.service import NotificationService
from folio.payments.contracts import PaymentGateway
from folio.schema.sql import Student, StudentStatus, TierSnapshot
from folio.schema.submissions import SubmissionCreate
from folio.services.tiers import create_tier_snapshot, enforce_tier_limits
from folio.storage import deployment_queue_repo as queue
from folio.storage.student_records import add_content_records, email_taken_by_other, get_student_by_payment_reference
from folio.utils.ids import slugify_subdomain, with_suffix

logger = logging.getLogger(__name__)

_SUBDOMAIN_ATTEMPTS = 5

STATUS_LABELS = {
  StudentStatus.SUBMITTED: "In Review",
  StudentStatus.EDITS_REQUESTED: "Action Needed",
  StudentStatus.APPROVED: "Building",
  StudentStatus.DEPLOYED: "Live",
  StudentStatus.REJECTED: "Not Approved",
  StudentStatus.ERROR: "Payment Issue",
}


@dataclass(frozen=True)
class SubmissionResult:
  success: bool
  student_id: uuid.UUID | None = None
  subdomain: str | None = None
  existing: bool = False
  error: str | None = None
  error_code: LifecycleErrorCode | None = None
  errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StudentStatusView:
  """What a student may see about their own record; no payment or refund identifiers."""

  student_id: uuid.UUID
  name: str
  tier: str
  status: str
  status_label: str
  subdomain: str
  custom_domain: str | None
  portfolio_url: str | None
  rejection_reason: str | None
  refund_issued: bool
  edit_instructions: list[str]
  payment_required: bool
  submitted_at: datetime.datetime | None


async def subdomain_exists(session: AsyncSession, subdomain: str) -> bool:
  return (await session.execute(select(Student.id).where(Student.subdomain == subdomain).limit(1))).first() is not None


async def generate_unique_subdomain(session: AsyncSession, name: str) -> str:
  base = slugify_subdomain(name)
  if not await subdomain_exists(session, base):
    return base
  for _ in range(_SUBDOMAIN_ATTEMPTS):
    candidate = with_suffix(base)
    if not await subdomain_exists(session, candidate):
      return candidate
  raise RuntimeError(f"Could not allocate a unique subdomain for '{base}'")


async def create_submission(session: AsyncSession, payload: SubmissionCreate, *, payments: PaymentGateway, notifications: NotificationService) -> SubmissionResult:
  """Verify payment and tier limits, then persist the student and all content in one transaction."""
  existing = await get_student_by_payment_reference(session, payload.payment_intent_id)
  if existing is not None:
    logger.info("Submission for payment %s already exists as student %s", payload.payment_intent_id, existing.id)
    return SubmissionResult(success=True, student_id=existing.id, subdomain=existing.subdomain, existing=True)

  try:
    verification = await payments.verify_payment(payload.payment_intent_id)
  except Exception as exc:  # noqa: BLE001
    logger.error("Payment verification failed for %s: %s", payload.payment_intent_id, exc)
    return SubmissionResult(success=False, error=PAYMENT_UNVERIFIABLE_MESSAGE, error_code=LifecycleErrorCode.PROVIDER_ERROR)
  if not verification.valid:
    return SubmissionResult(success=False, error=verification.error or "Payment could not be verified", error_code=LifecycleErrorCode.PAYMENT_INVALID)
  if verification.tier and verification.tier != payload.tier.value:
    return SubmissionResult(success=False, error="Payment tier does not match the selected tier", error_code=LifecycleErrorCode.PAYMENT_INVALID)

  check = enforce_tier_limits(payload.tier, project_count=len(payload.projects), custom_domain=payload.custom_domain)
  if not check.valid:
    return SubmissionResult(success=False, error="; ".join(check.errors), error_code=LifecycleErrorCode.TIER_LIMIT, errors=check.errors)

  if await email_taken_by_other(session, payload.email, student_id=None):
    return SubmissionResult(success=False, error="A submission with this email already exists.", error_code=LifecycleErrorCode.EMAIL_CONFLICT)

  try:
    subdomain = await generate_unique_subdomain(session, payload.name)
    student = Student(
      id=uuid.uuid4(),
      name=payload.name,
      email=payload.email,
      tier=payload.tier,
      status=StudentStatus.SUBMITTED,
      subdomain=subdomain,
      custom_domain=payload.custom_domain,
      payment_reference=payload.payment_intent_id,
      payment_customer_id=verification.customer_id,
    )
    session.add(student)
    await session.flush()
    add_content_records(session, student.id, profile=payload.profile, projects=payload.projects, experiences=payload.experiences, social_links=payload.social_links, assets=payload.assets)
    session.add(TierSnapshot(student_id=student.id, **create_tier_snapshot(payload.tier)))
    student_id = student.id
    await session.commit()
  except IntegrityError as exc:
    await session.rollback()
    # Two concurrent posts with the same payment: hand back the winner.
    winner = await get_student_by_payment_reference(session, payload.payment_intent_id)
    if winner is not None:
      return SubmissionResult(success=True, student_id=winner.id, subdomain=winner.subdomain, existing=True)
    return SubmissionResult(success=False, error=translate_integrity_error(exc), error_code=LifecycleErrorCode.CONFLICT)
  except SQLAlchemyError as exc:
    await session.rollback()
    logger.error("Failed to persist submission for payment %s: %s", payload.payment_intent_id, exc, exc_info=True)
    return SubmissionResult(success=False, error="Your submission could not be saved. Please try again.", error_code=LifecycleErrorCode.STORAGE_ERROR)

  logger.info("Created student %s tier=%s subdomain=%s", student_id, payload.tier.value, subdomain)
  await notifications.notify_submission_received(student_id=student_id, email=payload.email, name=payload.name, tier=payload.tier.value)
  return SubmissionResult(success=True, student_id=student_id, subdomain=subdomain)


async def build_status_view(session: AsyncSession, student: Student, *, site_domain: str) -> StudentStatusView:
  portfolio_url: str | None = None
  if student.status == StudentStatus.DEPLOYED:
    portfolio_url = await queue.latest_completed_url(session, student.id) or f"https://{student.subdomain}.{site_domain}"

  show_edits = student.status == StudentStatus.EDITS_REQUESTED
  return StudentStatusView(
    student_id=student.id,
    name=student.name,
    tier=student.tier.value,
    status=student.status.value,
    status_label=STATUS_LABELS[student.status],
    subdomain=student.subdomain,
    custom_domain=student.custom_domain,
    portfolio_url=portfolio_url,
    rejection_reason=student.rejection_reason if student.status == StudentStatus.REJECTED else None,
    refund_issued=student.refund_id is not None,
    edit_instructions=list(student.edit_instructions or []) if show_edits else [],
    payment_required=bool(student.payment_required) and show_edits,
    submitted_at=student.created_at,
  )

"""Student review lifecycle.

Every transition is a conditional UPDATE (`WHERE id = :id AND status IN (...)`)
that also bumps `status_version`. A zero row count means the guard failed and
the whole transaction is rolled back, so an invalid transition never partially
applies. Queue and change-request writes share that transaction. Emails are
sent only after commit, and refunds are issued before the transaction opens.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import ColumnElement, case, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.exceptions import translate_integrity_error
from folio.lifecycle.results import PAYMENT_UNVERIFIABLE_MESSAGE, LifecycleErrorCode, LifecycleResult
from folio.notifications.service import NotificationService
from folio.payments.contracts import PaymentGateway
from folio.schema.sql import ChangeRequest, ChangeRequestStatus, ChangeRequestType, Student, StudentStatus
from folio.schema.submissions import SubmissionUpdate
from folio.services.tiers import enforce_tier_limits, limits_for_student
from folio.storage import deployment_queue_repo as queue
from folio.storage.student_records import email_taken_by_other, get_student, get_tier_snapshot, replace_content_records

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (StudentStatus.SUBMITTED, StudentStatus.EDITS_REQUESTED)
REFUNDED_RESUBMIT_MESSAGE = "Your payment was refunded. Please make a new payment to resubmit."

_OPERATION_LABELS = {
  "approve": "approve",
  "reject": "reject",
  "request_edits": "request edits for",
  "allow_resubmission": "allow resubmission for",
  "resubmit": "resubmit",
  "update_submission": "update",
  "record_repayment": "record a new payment for",
}


def _invalid_transition(operation: str, student: Student) -> LifecycleResult:
  label = _OPERATION_LABELS.get(operation, operation)
  return LifecycleResult.fail(LifecycleErrorCode.INVALID_TRANSITION, f"Cannot {label} a submission with status '{student.status.value}'", student.id)


def _not_found(student_id: uuid.UUID) -> LifecycleResult:
  return LifecycleResult.fail(LifecycleErrorCode.NOT_FOUND, "Student not found", student_id)


async def transition_status(session: AsyncSession, student_id: uuid.UUID, *, allowed_from: Iterable[StudentStatus], values: dict[str, Any], extra_conditions: Sequence[ColumnElement[bool]] = ()) -> bool:
  """Compare-and-set a student row; True when exactly one row matched the guard."""
  stmt = (
    update(Student)
    .where(Student.id == student_id, Student.status.in_(list(allowed_from)), *extra_conditions)
    .values(status_version=Student.status_version + 1, **values)
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount == 1


class StudentLifecycle:
  """Guarded review transitions plus their queue, refund and email side effects."""

  def __init__(self, *, notifications: NotificationService, payments: PaymentGateway | None = None) -> None:
    self._notifications = notifications
    self._payments = payments

  async def _guard_failure(self, session: AsyncSession, student_id: uuid.UUID, operation: str) -> LifecycleResult:
    """Explain why a conditional update matched nothing, after rolling it back."""
    await session.rollback()
    student = await get_student(session, student_id)
    if student is None:
      return _not_found(student_id)
    if operation in ("resubmit", "update_submission") and student.status == StudentStatus.EDITS_REQUESTED and student.refund_id:
      return LifecycleResult.fail(LifecycleErrorCode.PAYMENT_REQUIRED, REFUNDED_RESUBMIT_MESSAGE, student_id)
    return _invalid_transition(operation, student)

  async def _storage_failure(self, session: AsyncSession, student_id: uuid.UUID, operation: str, exc: SQLAlchemyError) -> LifecycleResult:
    await session.rollback()
    logger.error("Lifecycle %s failed for student %s: %s", operation, student_id, exc, exc_info=True)
    return LifecycleResult.fail(LifecycleErrorCode.STORAGE_ERROR, "The submission could not be updated. Please try again.", student_id)

  async def approve(self, session: AsyncSession, student_id: uuid.UUID) -> LifecycleResult:
    """Approve a reviewable submission and queue exactly one fresh deployment."""
    try:
      moved = await transition_status(session, student_id, allowed_from=REVIEWABLE_STATUSES, values={"status": StudentStatus.APPROVED, "edit_instructions": None, "error_message": None})
      if not moved:
        return await self._guard_failure(session, student_id, "approve")

      superseded = await queue.cancel_active_items(session, student_id, reason=queue.SUPERSEDED_MESSAGE)
      await queue.enqueue_deployment(session, student_id)
      student = await get_student(session, student_id)
      email, name, subdomain = student.email, student.name, student.subdomain
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "approve", exc)

    logger.info("Student %s approved; superseded=%s", student_id, superseded)
    await self._notifications.notify_approved(student_id=student_id, email=email, name=name, subdomain=subdomain)
    return LifecycleResult.ok(student_id)

  async def reject(self, session: AsyncSession, student_id: uuid.UUID, *, reason: str, should_refund: bool = False) -> LifecycleResult:
    """Reject a submission, optionally refunding first; a failed refund never blocks the rejection."""
    reason = (reason or "").strip()
    if not reason:
      return LifecycleResult.fail(LifecycleErrorCode.INVALID_REQUEST, "A rejection reason is required", student_id)

    try:
      student = await get_student(session, student_id)
      if student is None:
        return _not_found(student_id)
      if student.status not in REVIEWABLE_STATUSES:
        return _invalid_transition("reject", student)
      payment_reference = student.payment_reference
      existing_refund_id = student.refund_id
      # End the read transaction so the provider call below holds no locks.
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "reject", exc)

    refund_id = existing_refund_id
    refund_error: str | None = None
    if should_refund and refund_id is None:
      refund_id, refund_error = await self._issue_refund(payment_reference, reason=reason)

    values: dict[str, Any] = {
      "status": StudentStatus.REJECTED,
      "rejection_reason": reason,
      "refund_id": refund_id,
      "refund_failure_reason": refund_error,
      "error_message": f"Refund failed: {refund_error}" if refund_error else None,
      "edit_instructions": None,
      "payment_required": False,
    }
    try:
      moved = await transition_status(session, student_id, allowed_from=REVIEWABLE_STATUSES, values=values)
      if not moved:
        if refund_id and refund_id != existing_refund_id:
          logger.error("Refund %s issued for student %s but the status changed before rejection committed", refund_id, student_id)
        return await self._guard_failure(session, student_id, "reject")

      cancelled = await queue.cancel_active_items(session, student_id, reason="Submission rejected")
      student = await get_student(session, student_id)
      email, name = student.email, student.name
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "reject", exc)

    logger.info("Student %s rejected; refund_id=%s refund_failed=%s cancelled=%s", student_id, refund_id, refund_error is not None, cancelled)
    await self._notifications.notify_rejected(student_id=student_id, email=email, name=name, reason=reason, refunded=refund_id is not None)
    return LifecycleResult.ok(student_id, refund_failed=refund_error is not None, refund_error=refund_error)

  async def _issue_refund(self, payment_reference: str, *, reason: str) -> tuple[str | None, str | None]:
    """Return (refund_id, error); provider failures are reported, not raised."""
    if self._payments is None:
      return None, "Payment provider is not configured"
    try:
      return await self._payments.refund(payment_reference, reason=reason), None
    except Exception as exc:  # noqa: BLE001
      logger.warning("Refund failed for payment %s: %s", payment_reference, exc)
      return None, str(exc) or type(exc).__name__

  async def request_edits(self, session: AsyncSession, student_id: uuid.UUID, *, items: Sequence[str]) -> LifecycleResult:
    """Send a fresh submission back to the student with a list of required changes."""
    cleaned = [item.strip() for item in items if item and item.strip()]
    if not cleaned:
      return LifecycleResult.fail(LifecycleErrorCode.INVALID_REQUEST, "At least one edit instruction is required", student_id)

    try:
      moved = await transition_status(session, student_id, allowed_from=(StudentStatus.SUBMITTED,), values={"status": StudentStatus.EDITS_REQUESTED, "edit_instructions": cleaned, "error_message": None})
      if not moved:
        return await self._guard_failure(session, student_id, "request_edits")

      description = "Edits requested:\n" + "\n".join(f"- {item}" for item in cleaned)
      session.add(ChangeRequest(student_id=student_id, type=ChangeRequestType.CONTENT_EDIT, status=ChangeRequestStatus.APPROVED, description=description, is_paid=False, amount=0))
      await queue.cancel_active_items(session, student_id, reason="Edits requested")
      student = await get_student(session, student_id)
      email, name = student.email, student.name
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "request_edits", exc)

    await self._notifications.notify_edits_requested(student_id=student_id, email=email, name=name, items=cleaned)
    return LifecycleResult.ok(student_id)

  async def allow_resubmission(self, session: AsyncSession, student_id: uuid.UUID) -> LifecycleResult:
    """Reopen a rejected submission; a refunded student must pay again before resubmitting."""
    values = {
      "status": StudentStatus.EDITS_REQUESTED,
      "rejection_reason": None,
      "refund_failure_reason": None,
      "edit_instructions": None,
      "error_message": None,
      "payment_required": case((Student.refund_id.is_not(None), True), else_=False),
    }
    try:
      moved = await transition_status(session, student_id, allowed_from=(StudentStatus.REJECTED,), values=values)
      if not moved:
        return await self._guard_failure(session, student_id, "allow_resubmission")
      student = await get_student(session, student_id)
      payment_required = bool(student.payment_required)
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "allow_resubmission", exc)

    logger.info("Resubmission allowed for student %s; payment_required=%s", student_id, payment_required)
    return LifecycleResult.ok(student_id, payment_required=payment_required)

  async def resubmit(self, session: AsyncSession, student_id: uuid.UUID) -> LifecycleResult:
    values = {"status": StudentStatus.SUBMITTED, "edit_instructions": None, "error_message": None, "payment_required": False}
    try:
      moved = await transition_status(session, student_id, allowed_from=(StudentStatus.EDITS_REQUESTED,), values=values, extra_conditions=(Student.refund_id.is_(None),))
      if not moved:
        return await self._guard_failure(session, student_id, "resubmit")
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "resubmit", exc)

    logger.info("Student %s resubmitted for review", student_id)
    return LifecycleResult.ok(student_id)

  async def update_submission(self, session: AsyncSession, student_id: uuid.UUID, changes: SubmissionUpdate) -> LifecycleResult:
    """Replace the supplied content collections while edits are requested."""
    try:
      student = await get_student(session, student_id)
      if student is None:
        return _not_found(student_id)
      if student.status != StudentStatus.EDITS_REQUESTED:
        return _invalid_transition("update_submission", student)
      if student.refund_id:
        return LifecycleResult.fail(LifecycleErrorCode.PAYMENT_REQUIRED, REFUNDED_RESUBMIT_MESSAGE, student_id)

      if changes.projects is not None:
        limits = limits_for_student(student.tier, await get_tier_snapshot(session, student_id))
        check = enforce_tier_limits(student.tier, project_count=len(changes.projects), limits=limits)
        if not check.valid:
          return LifecycleResult.fail(LifecycleErrorCode.TIER_LIMIT, "; ".join(check.errors), student_id)

      if changes.email and changes.email != student.email and await email_taken_by_other(session, changes.email, student_id=student_id):
        return LifecycleResult.fail(LifecycleErrorCode.EMAIL_CONFLICT, "This email is already used by another submission", student_id)

      contact: dict[str, Any] = {}
      if changes.name:
        contact["name"] = changes.name
      if changes.email:
        contact["email"] = changes.email

      moved = await transition_status(session, student_id, allowed_from=(StudentStatus.EDITS_REQUESTED,), values=contact, extra_conditions=(Student.refund_id.is_(None),))
      if not moved:
        return await self._guard_failure(session, student_id, "update_submission")

      replaced = await replace_content_records(
        session, student_id, profile=changes.profile, projects=changes.projects, experiences=changes.experiences, social_links=changes.social_links, assets=changes.assets
      )
      await session.commit()
    except IntegrityError as exc:
      await session.rollback()
      return LifecycleResult.fail(LifecycleErrorCode.EMAIL_CONFLICT, translate_integrity_error(exc), student_id)
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "update_submission", exc)

    logger.info("Student %s updated submission collections=%s", student_id, ",".join(replaced) or "contact-only")
    return LifecycleResult.ok(student_id)

  async def record_repayment(self, session: AsyncSession, student_id: uuid.UUID, *, payment_reference: str) -> LifecycleResult:
    """Attach a new verified payment to a refunded student so they can resubmit."""
    try:
      student = await get_student(session, student_id)
      if student is None:
        return _not_found(student_id)
      if student.status != StudentStatus.EDITS_REQUESTED or not student.refund_id:
        return _invalid_transition("record_repayment", student)
      tier = student.tier
      await session.commit()
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "record_repayment", exc)

    if self._payments is None:
      return LifecycleResult.fail(LifecycleErrorCode.PROVIDER_ERROR, "Payment provider is not configured", student_id)
    try:
      verification = await self._payments.verify_payment(payment_reference)
    except Exception as exc:  # noqa: BLE001
      logger.error("Repayment verification failed for student %s (payment %s): %s", student_id, payment_reference, exc)
      return LifecycleResult.fail(LifecycleErrorCode.PROVIDER_ERROR, PAYMENT_UNVERIFIABLE_MESSAGE, student_id)
    if not verification.valid:
      return LifecycleResult.fail(LifecycleErrorCode.PAYMENT_INVALID, verification.error or "Payment could not be verified", student_id)
    if verification.tier and verification.tier != tier.value:
      return LifecycleResult.fail(LifecycleErrorCode.PAYMENT_INVALID, "Payment tier does not match the submission tier", student_id)

    values = {"payment_reference": payment_reference, "refund_id": None, "refund_failure_reason": None, "payment_required": False}
    if verification.customer_id:
      values["payment_customer_id"] = verification.customer_id
    try:
      moved = await transition_status(session, student_id, allowed_from=(StudentStatus.EDITS_REQUESTED,), values=values, extra_conditions=(Student.refund_id.is_not(None),))
      if not moved:
        return await self._guard_failure(session, student_id, "record_repayment")
      await session.commit()
    except IntegrityError:
      await session.rollback()
      return LifecycleResult.fail(LifecycleErrorCode.CONFLICT, "This payment has already been used for a submission.", student_id)
    except SQLAlchemyError as exc:
      return await self._storage_failure(session, student_id, "record_repayment", exc)

    logger.info("Student %s recorded a new payment", student_id)
    return LifecycleResult.ok(student_id)

"""Post-launch change requests; independent of the review lifecycle and the deployment queue."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from folio.lifecycle.results import LifecycleErrorCode
from folio.schema.sql import ChangeRequest, ChangeRequestStatus, ChangeRequestType, Student, StudentStatus
from folio.storage.student_records import get_student

logger = logging.getLogger(__name__)

PAID_CHANGE_PRICES = {ChangeRequestType.TEMPLATE_SWAP: 4900, ChangeRequestType.REDESIGN: 9900}

ALLOWED_STATUS_CHANGES: dict[ChangeRequestStatus, tuple[ChangeRequestStatus, ...]] = {
  ChangeRequestStatus.PENDING: (ChangeRequestStatus.APPROVED, ChangeRequestStatus.REJECTED),
  ChangeRequestStatus.APPROVED: (ChangeRequestStatus.COMPLETED, ChangeRequestStatus.REJECTED),
  ChangeRequestStatus.COMPLETED: (),
  ChangeRequestStatus.REJECTED: (),
}


@dataclass(frozen=True)
class ChangeRequestResult:
  success: bool
  change_request: ChangeRequest | None = None
  error: str | None = None
  error_code: LifecycleErrorCode | None = None


def change_request_price(change_type: ChangeRequestType) -> int:
  return PAID_CHANGE_PRICES.get(change_type, 0)


async def create_change_request(session: AsyncSession, student_id: uuid.UUID, *, change_type: ChangeRequestType, description: str) -> ChangeRequestResult:
  description = (description or "").strip()
  if not description:
    return ChangeRequestResult(success=False, error="A description is required", error_code=LifecycleErrorCode.INVALID_REQUEST)

  student = await get_student(session, student_id)
  if student is None:
    return ChangeRequestResult(success=False, error="Student not found", error_code=LifecycleErrorCode.NOT_FOUND)
  if student.status == StudentStatus.REJECTED:
    return ChangeRequestResult(success=False, error="Change requests are not available for rejected submissions", error_code=LifecycleErrorCode.INVALID_TRANSITION)

  amount = change_request_price(change_type)
  request = ChangeRequest(student_id=student_id, type=change_type, status=ChangeRequestStatus.PENDING, description=description, is_paid=amount > 0, amount=amount)
  session.add(request)
  await session.commit()
  logger.info("Change request %s created for student %s type=%s", request.id, student_id, change_type.value)
  return ChangeRequestResult(success=True, change_request=request)


async def list_change_requests(session: AsyncSession, *, student_id: uuid.UUID | None = None, status: ChangeRequestStatus | None = None, limit: int = 100) -> list[ChangeRequest]:
  stmt = select(ChangeRequest).order_by(ChangeRequest.created_at.desc()).limit(limit)
  if student_id is not None:
    stmt = stmt.where(ChangeRequest.student_id == student_id)
  if status is not None:
    stmt = stmt.where(ChangeRequest.status == status)
  return list((await session.execute(stmt)).scalars().all())


async def list_change_requests_with_students(session: AsyncSession, *, status: ChangeRequestStatus | None = None, limit: int = 100) -> list[tuple[ChangeRequest, str, str]]:
  stmt = select(ChangeRequest, Student.name, Student.email).join(Student, Student.id == ChangeRequest.student_id).order_by(ChangeRequest.created_at.desc()).limit(limit)
  if status is not None:
    stmt = stmt.where(ChangeRequest.status == status)
  return [(request, name, email) for request, name, email in (await session.execute(stmt)).all()]


async def update_change_request_status(session: AsyncSession, request_id: uuid.UUID, *, status: ChangeRequestStatus, admin_notes: str | None = None) -> ChangeRequestResult:
  """Move a request along pending → approved → completed; rejection allowed until completed."""
  request = await session.get(ChangeRequest, request_id)
  if request is None:
    return ChangeRequestResult(success=False, error="Change request not found", error_code=LifecycleErrorCode.NOT_FOUND)

  current = request.status
  if status not in ALLOWED_STATUS_CHANGES[current]:
    return ChangeRequestResult(success=False, error=f"Cannot move a change request from '{current.value}' to '{status.value}'", error_code=LifecycleErrorCode.INVALID_TRANSITION)

  values: dict[str, object] = {"status": status}
  if admin_notes is not None:
    values["admin_notes"] = admin_notes.strip() or None
  stmt = update(ChangeRequest).where(ChangeRequest.id == request_id, ChangeRequest.status == current).values(**values).execution_options(synchronize_session=False)
  result = await session.execute(stmt)
  if result.rowcount != 1:
    await session.rollback()
    return ChangeRequestResult(success=False, error="Change request was updated concurrently", error_code=LifecycleErrorCode.CONFLICT)
  await session.commit()
  await session.refresh(request)
  logger.info("Change request %s moved %s -> %s", request_id, current.value, status.value)
  return ChangeRequestResult(success=True, change_request=request)

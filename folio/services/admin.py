"""Read models and small edits behind the staff dashboard."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from folio.lifecycle.results import LifecycleErrorCode, LifecycleResult
from folio.lifecycle.transitions import REVIEWABLE_STATUSES
from folio.schema.deployments import DeploymentStatus
from folio.schema.sql import ChangeRequest, ChangeRequestStatus, Student, StudentStatus
from folio.services.quality import QualityReport, validate_submission_quality
from folio.services.tiers import limits_for_student
from folio.storage import deployment_queue_repo as queue
from folio.storage.student_records import get_student, get_tier_snapshot

logger = logging.getLogger(__name__)

DOMAIN_RE = re.compile(r"^(?=.{4,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


@dataclass(frozen=True)
class PendingSubmission:
  student: Student
  quality: QualityReport


@dataclass(frozen=True)
class DashboardStats:
  students_by_status: dict[str, int] = field(default_factory=dict)
  queue_by_status: dict[str, int] = field(default_factory=dict)
  pending_change_requests: int = 0
  total_students: int = 0


async def list_pending_submissions(session: AsyncSession) -> list[PendingSubmission]:
  """Reviewable submissions, oldest first, each with its advisory quality report."""
  stmt = (
    select(Student)
    .where(Student.status.in_(REVIEWABLE_STATUSES))
    .options(selectinload(Student.profile), selectinload(Student.projects))
    .order_by(Student.created_at.asc())
  )
  students = (await session.execute(stmt)).scalars().all()
  pending = []
  for student in students:
    bio = student.profile.bio if student.profile else None
    pending.append(PendingSubmission(student=student, quality=validate_submission_quality(bio, student.projects)))
  return pending


async def list_students(session: AsyncSession, *, status: StudentStatus | None = None, limit: int = 200) -> list[Student]:
  stmt = select(Student).order_by(Student.created_at.desc()).limit(limit)
  if status is not None:
    stmt = stmt.where(Student.status == status)
  return list((await session.execute(stmt)).scalars().all())


async def get_student_detail(session: AsyncSession, student_id: uuid.UUID) -> Student | None:
  return await get_student(session, student_id, with_content=True)


async def collect_stats(session: AsyncSession) -> DashboardStats:
  student_rows = (await session.execute(select(Student.status, func.count()).group_by(Student.status))).all()
  students_by_status = {status.value: 0 for status in StudentStatus}
  for status, count in student_rows:
    students_by_status[StudentStatus(status).value] = count

  queue_by_status = {status.value: await queue.count_by_status(session, status) for status in DeploymentStatus}
  pending_requests = (await session.execute(select(func.count()).select_from(ChangeRequest).where(ChangeRequest.status == ChangeRequestStatus.PENDING))).scalar_one()
  return DashboardStats(
    students_by_status=students_by_status,
    queue_by_status=queue_by_status,
    pending_change_requests=pending_requests,
    total_students=sum(students_by_status.values()),
  )


def normalize_domain(raw: str | None) -> str | None:
  if raw is None:
    return None
  domain = raw.strip().lower().rstrip(".")
  if domain.startswith(("http://", "https://")):
    domain = domain.split("://", 1)[1].split("/", 1)[0]
  return domain or None


async def update_custom_domain(session: AsyncSession, student_id: uuid.UUID, *, custom_domain: str | None) -> LifecycleResult:
  """Set or clear a custom domain; only tiers that include custom domains may set one."""
  student = await get_student(session, student_id)
  if student is None:
    return LifecycleResult.fail(LifecycleErrorCode.NOT_FOUND, "Student not found", student_id)

  domain = normalize_domain(custom_domain)
  if domain is not None:
    if not limits_for_student(student.tier, await get_tier_snapshot(session, student_id)).custom_domain_allowed:
      return LifecycleResult.fail(LifecycleErrorCode.TIER_LIMIT, "Custom domains not available for this tier", student_id)
    if not DOMAIN_RE.match(domain):
      return LifecycleResult.fail(LifecycleErrorCode.INVALID_REQUEST, "Invalid domain format", student_id)

  await session.execute(update(Student).where(Student.id == student_id).values(custom_domain=domain).execution_options(synchronize_session=False))
  await session.commit()
  logger.info("Custom domain for student %s set to %s", student_id, domain)
  return LifecycleResult.ok(student_id)

"""Deployment queue persistence.

Every function takes the caller's `AsyncSession` and never commits, so lifecycle
transitions can change a student's status and its queue rows in one transaction.
Status changes are conditional updates; callers check the returned booleans.
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from folio.schema.deployments import ACTIVE_DEPLOYMENT_STATUSES, DeploymentQueueItem, DeploymentStatus
from folio.schema.sql import Student, StudentStatus

SUPERSEDED_MESSAGE = "Superseded by re-approval"
STALE_PROCESSING_MESSAGE = "Deployment timed out while processing"


def _utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


async def cancel_active_items(session: AsyncSession, student_id: uuid.UUID, *, reason: str) -> int:
  """Mark every queued/processing item for a student as failed; returns rows touched."""
  stmt = (
    update(DeploymentQueueItem)
    .where(DeploymentQueueItem.student_id == student_id, DeploymentQueueItem.status.in_(ACTIVE_DEPLOYMENT_STATUSES))
    .values(status=DeploymentStatus.FAILED, error_message=reason, cancelled=True, updated_at=_utcnow())
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount or 0


async def fail_stale_processing(session: AsyncSession, *, older_than: datetime.datetime) -> int:
  """Fail processing items untouched since `older_than` and count the attempt; returns rows touched."""
  stmt = (
    update(DeploymentQueueItem)
    .where(DeploymentQueueItem.status == DeploymentStatus.PROCESSING, DeploymentQueueItem.updated_at < older_than)
    .values(status=DeploymentStatus.FAILED, retry_count=DeploymentQueueItem.retry_count + 1, error_message=STALE_PROCESSING_MESSAGE, updated_at=_utcnow())
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount or 0


async def enqueue_deployment(session: AsyncSession, student_id: uuid.UUID) -> DeploymentQueueItem:
  item = DeploymentQueueItem(student_id=student_id, status=DeploymentStatus.QUEUED, retry_count=0)
  session.add(item)
  await session.flush()
  return item


async def has_active_item(session: AsyncSession, student_id: uuid.UUID) -> bool:
  stmt = select(func.count()).select_from(DeploymentQueueItem).where(DeploymentQueueItem.student_id == student_id, DeploymentQueueItem.status.in_(ACTIVE_DEPLOYMENT_STATUSES))
  return (await session.execute(stmt)).scalar_one() > 0


async def list_queued(session: AsyncSession, *, limit: int) -> list[DeploymentQueueItem]:
  """Return the oldest queued items first."""
  stmt = select(DeploymentQueueItem).where(DeploymentQueueItem.status == DeploymentStatus.QUEUED).order_by(DeploymentQueueItem.created_at.asc()).limit(limit)
  return list((await session.execute(stmt)).scalars().all())


async def claim_item(session: AsyncSession, item_id: uuid.UUID) -> bool:
  """Move an item from queued to processing; False when another run got there first."""
  stmt = (
    update(DeploymentQueueItem)
    .where(DeploymentQueueItem.id == item_id, DeploymentQueueItem.status == DeploymentStatus.QUEUED)
    .values(status=DeploymentStatus.PROCESSING, updated_at=_utcnow())
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount == 1


async def mark_completed(session: AsyncSession, item_id: uuid.UUID, *, deployment_url: str, hosting_project_id: str | None) -> bool:
  """Complete a processing item; False when it was cancelled while the job ran."""
  now = _utcnow()
  stmt = (
    update(DeploymentQueueItem)
    .where(DeploymentQueueItem.id == item_id, DeploymentQueueItem.status == DeploymentStatus.PROCESSING)
    .values(status=DeploymentStatus.COMPLETED, deployment_url=deployment_url, hosting_project_id=hosting_project_id, error_message=None, completed_at=now, updated_at=now)
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount == 1


async def mark_failed(session: AsyncSession, item_id: uuid.UUID, *, error: str) -> bool:
  """Fail a processing item and count the attempt."""
  stmt = (
    update(DeploymentQueueItem)
    .where(DeploymentQueueItem.id == item_id, DeploymentQueueItem.status == DeploymentStatus.PROCESSING)
    .values(status=DeploymentStatus.FAILED, retry_count=DeploymentQueueItem.retry_count + 1, error_message=error[:2000], updated_at=_utcnow())
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount == 1


async def list_retry_candidates(session: AsyncSession, *, max_retries: int) -> list[tuple[DeploymentQueueItem, StudentStatus]]:
  """Failed items under the retry cap, newest first, with their student's current status."""
  stmt = (
    select(DeploymentQueueItem, Student.status)
    .join(Student, Student.id == DeploymentQueueItem.student_id)
    .where(DeploymentQueueItem.status == DeploymentStatus.FAILED, DeploymentQueueItem.retry_count < max_retries)
    .order_by(DeploymentQueueItem.created_at.desc())
  )
  return [(item, status) for item, status in (await session.execute(stmt)).all()]


async def requeue_item(session: AsyncSession, item_id: uuid.UUID) -> bool:
  stmt = (
    update(DeploymentQueueItem)
    .where(DeploymentQueueItem.id == item_id, DeploymentQueueItem.status == DeploymentStatus.FAILED)
    .values(status=DeploymentStatus.QUEUED, error_message=None, updated_at=_utcnow())
    .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount == 1


async def list_items(session: AsyncSession, *, status: DeploymentStatus | None = None, student_id: uuid.UUID | None = None, limit: int = 100) -> list[tuple[DeploymentQueueItem, str, str]]:
  """Queue rows for the staff dashboard with student name and subdomain."""
  stmt = select(DeploymentQueueItem, Student.name, Student.subdomain).join(Student, Student.id == DeploymentQueueItem.student_id).order_by(DeploymentQueueItem.created_at.desc()).limit(limit)
  if status is not None:
    stmt = stmt.where(DeploymentQueueItem.status == status)
  if student_id is not None:
    stmt = stmt.where(DeploymentQueueItem.student_id == student_id)
  return [(item, name, subdomain) for item, name, subdomain in (await session.execute(stmt)).all()]


async def latest_completed_url(session: AsyncSession, student_id: uuid.UUID) -> str | None:
  stmt = (
    select(DeploymentQueueItem.deployment_url)
    .where(DeploymentQueueItem.student_id == student_id, DeploymentQueueItem.status == DeploymentStatus.COMPLETED)
    .order_by(DeploymentQueueItem.completed_at.desc())
    .limit(1)
  )
  return (await session.execute(stmt)).scalar_one_or_none()


async def count_by_status(session: AsyncSession, status: DeploymentStatus) -> int:
  stmt = select(func.count()).select_from(DeploymentQueueItem).where(DeploymentQueueItem.status == status)
  return (await session.execute(stmt)).scalar_one()

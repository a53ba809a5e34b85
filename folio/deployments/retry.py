"""Return eligible failed deployments to the queue."""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from folio.schema.sql import StudentStatus
from folio.storage import deployment_queue_repo as queue

logger = logging.getLogger(__name__)

NON_RETRYABLE_STUDENT_STATUSES = (StudentStatus.REJECTED, StudentStatus.EDITS_REQUESTED, StudentStatus.ERROR)


@dataclass(frozen=True)
class RetryResult:
  retried: int = 0
  skipped: int = 0
  reclaimed: int = 0


async def requeue_failed_deployments(session: AsyncSession, *, max_retries: int, stale_after_seconds: int | None = None) -> RetryResult:
  """Requeue at most one failed item per student, newest first, and commit.

  When `stale_after_seconds` is set, items stuck in processing for longer than that
  are failed first so they can be picked up by the same pass.
  """
  reclaimed = 0
  if stale_after_seconds is not None:
    cutoff = datetime.datetime.now(datetime.UTC) - datetime.timedelta(seconds=stale_after_seconds)
    reclaimed = await queue.fail_stale_processing(session, older_than=cutoff)
    if reclaimed:
      logger.warning("Failed %s deployment item(s) stuck in processing since before %s", reclaimed, cutoff.isoformat())

  candidates = await queue.list_retry_candidates(session, max_retries=max_retries)
  seen: set[uuid.UUID] = set()
  retried = 0
  skipped = 0

  for item, student_status in candidates:
    if item.student_id in seen:
      skipped += 1
      continue
    seen.add(item.student_id)

    if item.cancelled or student_status in NON_RETRYABLE_STUDENT_STATUSES:
      skipped += 1
      continue
    if await queue.has_active_item(session, item.student_id):
      skipped += 1
      continue
    if await queue.requeue_item(session, item.id):
      retried += 1

  await session.commit()
  if retried or skipped:
    logger.info("Retry scheduler requeued=%s skipped=%s", retried, skipped)
  return RetryResult(retried=retried, skipped=skipped, reclaimed=reclaimed)

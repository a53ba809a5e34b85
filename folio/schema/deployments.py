"""SQLAlchemy model for the deployment queue."""

from __future__ import annotations

import datetime
import uuid
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from folio.core.database import Base


class DeploymentStatus(str, Enum):
  QUEUED = "queued"
  PROCESSING = "processing"
  COMPLETED = "completed"
  FAILED = "failed"


ACTIVE_DEPLOYMENT_STATUSES = (DeploymentStatus.QUEUED, DeploymentStatus.PROCESSING)


def _utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


class DeploymentQueueItem(Base):
  """One deployment attempt lineage for a student; retries reuse the same row."""

  __tablename__ = "deployment_queue"
  __table_args__ = (Index("ix_deployment_queue_status_created_at", "status", "created_at"),)

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
  status: Mapped[DeploymentStatus] = mapped_column(
    SAEnum(DeploymentStatus, name="deployment_status", values_callable=lambda enum_cls: [member.value for member in enum_cls]), default=DeploymentStatus.QUEUED, nullable=False
  )
  retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  # Set when a lifecycle change stopped the deploy; such rows are never retried.
  cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
  deployment_url: Mapped[str | None] = mapped_column(String, nullable=True)
  hosting_project_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow)
  completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

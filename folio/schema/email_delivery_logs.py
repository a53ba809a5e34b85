"""SQLAlchemy model for tracking outbound email delivery attempts."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from folio.core.database import Base, JSONType


class EmailDeliveryLog(Base):
  """Persist outbound email metadata for auditing and debugging."""

  __tablename__ = "email_delivery_logs"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("students.id", ondelete="SET NULL"), nullable=True, index=True)
  to_address: Mapped[str] = mapped_column(String, nullable=False, index=True)
  template_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  placeholders: Mapped[dict] = mapped_column(JSONType, nullable=False)
  provider: Mapped[str] = mapped_column(String, nullable=False)
  provider_message_id: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

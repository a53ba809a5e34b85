"""Repository helpers for email delivery logs."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.core.database import get_session_factory
from folio.schema.email_delivery_logs import EmailDeliveryLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailDeliveryLogEntry:
  """Capture a single outbound email attempt for auditing and troubleshooting."""

  student_id: uuid.UUID | None
  to_address: str
  template_id: str
  placeholders: dict
  provider: str
  provider_message_id: str | None
  status: str
  error_message: str | None


class EmailDeliveryLogRepository:
  """Persist email delivery logs in their own session, independent of the caller's transaction."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory

  async def insert(self, entry: EmailDeliveryLogEntry) -> None:
    session_factory = self._session_factory or get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      session.add(
        EmailDeliveryLog(
          student_id=entry.student_id,
          to_address=entry.to_address,
          template_id=entry.template_id,
          placeholders=entry.placeholders,
          provider=entry.provider,
          provider_message_id=entry.provider_message_id,
          status=entry.status,
          error_message=entry.error_message,
        )
      )
      await session.commit()


class NullEmailDeliveryLogRepository(EmailDeliveryLogRepository):
  """No-op repository used when persistence is unavailable."""

  async def insert(self, entry: EmailDeliveryLogEntry) -> None:
    logger.debug("Email delivery log persistence disabled; dropping template_id=%s status=%s", entry.template_id, entry.status)

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from sqlalchemy import text

from folio.core.database import get_db_engine
from folio.core.firebase import initialize_firebase
from folio.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and external SDKs once uvicorn has started."""
  from folio.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("folio.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    logger.info("Database DSN=%s site_domain=%s", _redact_dsn(settings.pg_dsn), settings.site_domain)

    initialize_firebase()
    await _log_db_state(logger=logger)
  except Exception:
    # Keep serving; failing dependencies surface on the requests that need them.
    logger.warning("Startup initialization incomplete.", exc_info=True)

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"


async def _log_db_state(*, logger: logging.Logger) -> None:
  """Log whether the core tables exist so a missing migration is obvious at boot."""
  engine = get_db_engine()
  if engine is None:
    logger.warning("Database engine unavailable; FOLIO_PG_DSN is not set.")
    return

  async with engine.connect() as connection:
    query = """
      SELECT table_name
      FROM information_schema.tables
      WHERE table_schema = current_schema()
        AND table_name IN ('students', 'deployment_queue', 'payment_webhook_events')
      """
    present = sorted(row[0] for row in (await connection.execute(text(query))).all())
    logger.info("Runtime DB tables present=%s", ",".join(present) or "<none>")

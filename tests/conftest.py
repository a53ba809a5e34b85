import os

os.environ["FOLIO_ALLOWED_ORIGINS"] = "http://localhost:3000"
os.environ["FOLIO_CRON_SECRET"] = "cron-test-secret"
os.environ["FOLIO_STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["FOLIO_SITE_DOMAIN"] = "folio.dev"
os.environ.pop("FOLIO_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)
os.environ.pop("FOLIO_STRIPE_SECRET_KEY", None)
os.environ.pop("FOLIO_EMAIL_NOTIFICATIONS_ENABLED", None)

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from folio.api.deps import get_hosting_client, get_notification_service, get_optional_payment_gateway, get_payment_gateway, get_session_maker  # noqa: E402
from folio.core.database import Base, get_db  # noqa: E402
from folio.main import app  # noqa: E402
from tests.helpers import FakeHostingClient, FakePaymentGateway  # noqa: E402

NOTIFICATION_METHODS = ("notify_submission_received", "notify_approved", "notify_portfolio_live", "notify_rejected", "notify_edits_requested", "notify_refund_processed")


@pytest.fixture
async def engine(tmp_path):
  # A file database so the worker's separate sessions see each other's commits.
  db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'folio_test.db'}")
  async with db_engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
  yield db_engine
  await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
  async with session_factory() as session:
    yield session


@pytest.fixture
def payments():
  return FakePaymentGateway()


@pytest.fixture
def hosting():
  return FakeHostingClient()


@pytest.fixture
def notifications():
  service = MagicMock()
  for name in NOTIFICATION_METHODS:
    setattr(service, name, AsyncMock())
  return service


@pytest.fixture
async def async_client(session_factory, payments, hosting, notifications):
  async def _get_db():
    async with session_factory() as session:
      yield session

  app.dependency_overrides[get_db] = _get_db
  app.dependency_overrides[get_session_maker] = lambda: session_factory
  app.dependency_overrides[get_payment_gateway] = lambda: payments
  app.dependency_overrides[get_optional_payment_gateway] = lambda: payments
  app.dependency_overrides[get_hosting_client] = lambda: hosting
  app.dependency_overrides[get_notification_service] = lambda: notifications
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()

"""Shared FastAPI dependencies for provider clients and lifecycle services.

Every provider is a plain dependency so tests can swap it through
`app.dependency_overrides`.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.config import Settings, get_settings
from folio.core.database import get_session_factory
from folio.deployments.worker import DeploymentWorker
from folio.hosting.contracts import HostingClient
from folio.hosting.vercel import build_hosting_client
from folio.lifecycle.payment_events import PaymentEventReconciler
from folio.lifecycle.transitions import StudentLifecycle
from folio.notifications.factory import build_notification_service
from folio.notifications.service import NotificationService
from folio.payments.contracts import PaymentGateway
from folio.payments.stripe_client import build_payment_gateway
from folio.rendering.portfolio import HtmlPortfolioRenderer, PortfolioRenderer

logger = logging.getLogger(__name__)


def _unavailable(detail: str) -> HTTPException:
  return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def get_session_maker() -> async_sessionmaker[AsyncSession]:
  """Session factory for work that opens its own transactions (the deployment worker)."""
  factory = get_session_factory()
  if factory is None:
    raise _unavailable("Database is not configured")
  return factory


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:  # noqa: B008
  try:
    return build_payment_gateway(settings)
  except RuntimeError as exc:
    logger.error("Payment gateway unavailable: %s", exc)
    raise _unavailable("Payment provider is not configured") from exc


def get_optional_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway | None:  # noqa: B008
  """Gateway for lifecycle actions; approvals still work when payments are not configured."""
  if not settings.stripe_secret_key:
    return None
  return build_payment_gateway(settings)


def get_hosting_client(settings: Settings = Depends(get_settings)) -> HostingClient:  # noqa: B008
  try:
    return build_hosting_client(settings)
  except RuntimeError as exc:
    logger.error("Hosting client unavailable: %s", exc)
    raise _unavailable("Hosting provider is not configured") from exc


def get_renderer() -> PortfolioRenderer:
  return HtmlPortfolioRenderer()


def get_notification_service(settings: Settings = Depends(get_settings)) -> NotificationService:  # noqa: B008
  return build_notification_service(settings)


def get_lifecycle(notifications: NotificationService = Depends(get_notification_service), payments: PaymentGateway | None = Depends(get_optional_payment_gateway)) -> StudentLifecycle:  # noqa: B008
  return StudentLifecycle(notifications=notifications, payments=payments)


def get_payment_reconciler(notifications: NotificationService = Depends(get_notification_service)) -> PaymentEventReconciler:  # noqa: B008
  return PaymentEventReconciler(notifications=notifications)


def get_deployment_worker(
  settings: Settings = Depends(get_settings),  # noqa: B008
  session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_maker),  # noqa: B008
  hosting: HostingClient = Depends(get_hosting_client),  # noqa: B008
  renderer: PortfolioRenderer = Depends(get_renderer),  # noqa: B008
  notifications: NotificationService = Depends(get_notification_service),  # noqa: B008
) -> DeploymentWorker:
  return DeploymentWorker(session_factory=session_factory, hosting=hosting, renderer=renderer, notifications=notifications, batch_size=settings.deploy_batch_size)

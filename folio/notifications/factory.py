"""Factory helpers for notification services."""

from __future__ import annotations

from folio.config import Settings
from folio.notifications.email_log_repo import EmailDeliveryLogRepository, NullEmailDeliveryLogRepository
from folio.notifications.email_sender import MailerSendConfig, MailerSendEmailSender, NullEmailSender
from folio.notifications.service import NotificationService


def build_notification_service(settings: Settings) -> NotificationService:
  """Construct a notification service based on environment configuration."""
  # Email is disabled by default so dev and test runs never deliver.
  if settings.email_notifications_enabled:
    config = MailerSendConfig(
      api_key=settings.mailersend_api_key or "", from_address=settings.email_from_address or "", from_name=settings.email_from_name, timeout_seconds=settings.mailersend_timeout_seconds, base_url=settings.mailersend_base_url
    )
    email_sender = MailerSendEmailSender(config=config)
  else:
    email_sender = NullEmailSender()

  email_log_repo = EmailDeliveryLogRepository() if settings.pg_dsn else NullEmailDeliveryLogRepository()
  return NotificationService(
    email_sender=email_sender, email_log_repo=email_log_repo, email_enabled=settings.email_notifications_enabled, site_domain=settings.site_domain, support_email=settings.support_email, dashboard_url=settings.dashboard_url
  )

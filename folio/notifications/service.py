"""Notification orchestration for student lifecycle events."""

from __future__ import annotations

import logging
import uuid

from starlette.concurrency import run_in_threadpool

from folio.notifications.contracts import EmailNotification, EmailSender, NotificationProviderError
from folio.notifications.email_log_repo import EmailDeliveryLogEntry, EmailDeliveryLogRepository
from folio.notifications.template_renderer import render_email_template

logger = logging.getLogger(__name__)

_TIER_LABELS = {"starter": "Starter", "professional": "Professional", "flagship": "Flagship"}


def _greeting(name: str | None) -> str:
  first_name = (name or "").strip().split(" ")[0]
  return f"Hi {first_name}," if first_name else "Hi,"


class NotificationService:
  """Sends templated student emails; delivery failures are logged, never raised."""

  def __init__(self, *, email_sender: EmailSender, email_log_repo: EmailDeliveryLogRepository, email_enabled: bool, site_domain: str, support_email: str, dashboard_url: str | None = None) -> None:
    self._email_sender = email_sender
    self._email_log_repo = email_log_repo
    self._email_enabled = email_enabled
    self._site_domain = site_domain
    self._support_email = support_email
    self._dashboard_url = dashboard_url or f"https://{site_domain}/dashboard"

  async def send_email_template(self, *, student_id: uuid.UUID | None, to_address: str, to_name: str | None, template_id: str, placeholders: dict) -> None:
    """Send a templated email and persist a delivery audit row on a best-effort basis."""
    if not self._email_enabled:
      return

    provider = "unknown"
    provider_message_id: str | None = None
    error_message: str | None = None
    status = "sent"

    try:
      subject, text_body, html_body = render_email_template(template_id=template_id, placeholders=placeholders)
      notification = EmailNotification(to_address=to_address, to_name=to_name, subject=subject, text=text_body, html=html_body)
      send_result = await run_in_threadpool(self._email_sender.send, notification)
      provider = str(send_result.get("provider") or "unknown")
      provider_message_id = send_result.get("message_id") or None

    except NotificationProviderError as exc:
      status = "error"
      error_message = str(exc)
      logger.error("Email delivery failed (provider error) template_id=%s: %s", template_id, exc)

    except Exception as exc:  # noqa: BLE001
      status = "error"
      error_message = str(exc)
      logger.error("Email delivery failed template_id=%s: %s", template_id, exc, exc_info=True)

    try:
      await self._email_log_repo.insert(
        EmailDeliveryLogEntry(
          student_id=student_id, to_address=to_address, template_id=template_id, placeholders=placeholders, provider=provider, provider_message_id=provider_message_id, status=status, error_message=error_message
        )
      )
    except Exception as exc:  # noqa: BLE001
      logger.error("Email delivery log insert failed: %s", exc, exc_info=True)

  def site_url(self, subdomain: str) -> str:
    return f"https://{subdomain}.{self._site_domain}"

  async def notify_submission_received(self, *, student_id: uuid.UUID, email: str, name: str, tier: str) -> None:
    placeholders = {"greeting": _greeting(name), "tier_label": _TIER_LABELS.get(tier, tier.title()), "dashboard_url": self._dashboard_url}
    await self.send_email_template(student_id=student_id, to_address=email, to_name=name, template_id="submission_received_v1", placeholders=placeholders)

  async def notify_approved(self, *, student_id: uuid.UUID, email: str, name: str, subdomain: str) -> None:
    placeholders = {"greeting": _greeting(name), "site_url": self.site_url(subdomain)}
    await self.send_email_template(student_id=student_id, to_address=email, to_name=name, template_id="submission_approved_v1", placeholders=placeholders)

  async def notify_portfolio_live(self, *, student_id: uuid.UUID, email: str, name: str, live_url: str) -> None:
    placeholders = {"greeting": _greeting(name), "live_url": live_url}
    await self.send_email_template(student_id=student_id, to_address=email, to_name=name, template_id="portfolio_live_v1", placeholders=placeholders)

  async def notify_rejected(self, *, student_id: uuid.UUID, email: str, name: str, reason: str, refunded: bool) -> None:
    if refunded:
      refund_note = "A full refund has been issued and should reach your account within 5-10 business days."
    else:
      refund_note = f"If you have questions about your payment, contact {self._support_email}."
    placeholders = {"greeting": _greeting(name), "reason": reason, "refund_note": refund_note}
    await self.send_email_template(student_id=student_id, to_address=email, to_name=name, template_id="submission_rejected_v1", placeholders=placeholders)

  async def notify_edits_requested(self, *, student_id: uuid.UUID, email: str, name: str, items: list[str]) -> None:
    edit_items = "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))
    placeholders = {"greeting": _greeting(name), "edit_items": edit_items, "dashboard_url": self._dashboard_url}
    await self.send_email_template(student_id=student_id, to_address=email, to_name=name, template_id="edits_requested_v1", placeholders=placeholders)

  async def notify_refund_processed(self, *, student_id: uuid.UUID, email: str, name: str) -> None:
    placeholders = {"greeting": _greeting(name), "support_email": self._support_email}
    await self.send_email_template(student_id=student_id, to_address=email, to_name=name, template_id="refund_processed_v1", placeholders=placeholders)

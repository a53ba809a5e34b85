"""Email delivery implementations.

MailerSend is called over its HTTP API with the standard library client; the
call is blocking, so `NotificationService` runs it in a threadpool.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass

from folio.notifications.contracts import EmailNotification, EmailSender, NotificationProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailerSendConfig:
  api_key: str
  from_address: str
  from_name: str | None
  timeout_seconds: int
  base_url: str = "https://api.mailersend.com/v1"


class MailerSendEmailSender(EmailSender):
  """MailerSend-backed email sender."""

  def __init__(self, *, config: MailerSendConfig) -> None:
    self._config = config

  def _build_payload(self, notification: EmailNotification) -> dict[str, object]:
    sender = {"email": self._config.from_address}
    if self._config.from_name:
      sender["name"] = self._config.from_name
    recipient = {"email": notification.to_address}
    if notification.to_name:
      recipient["name"] = notification.to_name
    return {"from": sender, "to": [recipient], "subject": notification.subject, "text": notification.text, "html": notification.html}

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    request = urllib.request.Request(
      url=f"{self._config.base_url.rstrip('/')}/email",
      data=json.dumps(self._build_payload(notification)).encode("utf-8"),
      method="POST",
      headers={"Authorization": f"Bearer {self._config.api_key}", "Content-Type": "application/json", "Accept": "application/json"},
    )

    try:
      with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
        headers = dict(response.headers.items())
    except urllib.error.HTTPError as exc:
      raw_error = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
      logger.error("MailerSend email request failed status=%s body=%s", exc.code, raw_error[:500])
      raise NotificationProviderError(f"HTTP Error {exc.code}: {exc.reason}") from exc
    except (urllib.error.URLError, TimeoutError) as exc:
      logger.error("MailerSend email request failed: %s", exc)
      raise NotificationProviderError(str(exc)) from exc

    # MailerSend answers 202 with an empty body; ids travel in headers.
    return {"provider": "mailersend", "message_id": headers.get("X-Message-Id") or headers.get("x-message-id")}


class NullEmailSender(EmailSender):
  """No-op email sender used when notifications are disabled."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    logger.debug("Email notifications disabled; dropping email to=%s subject=%s", notification.to_address, notification.subject)
    return {"provider": None, "message_id": None}

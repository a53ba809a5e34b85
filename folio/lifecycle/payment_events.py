"""Reconcile payment-provider webhook events against stored payment references."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from folio.lifecycle.results import WebhookOutcome
from folio.lifecycle.transitions import transition_status
from folio.notifications.service import NotificationService
from folio.schema.sql import PaymentWebhookEvent, Student, StudentStatus
from folio.storage import deployment_queue_repo as queue
from folio.storage.student_records import get_student_by_payment_reference

logger = logging.getLogger(__name__)

PAYMENT_FAILED_MESSAGE = "Payment failed"
REFUNDED_REASON = "Payment refunded"
REFUND_CANCELLED_MESSAGE = "Payment refunded, deployment cancelled"

HANDLED_EVENT_TYPES = ("payment_intent.succeeded", "payment_intent.payment_failed", "charge.refunded")


def _refund_id_from_charge(charge: dict[str, Any]) -> str:
  refunds = charge.get("refunds")
  if isinstance(refunds, dict):
    data = refunds.get("data") or []
    if data and isinstance(data[0], dict) and data[0].get("id"):
      return str(data[0]["id"])
  return f"charge:{charge.get('id', 'unknown')}"


def _is_full_refund(charge: dict[str, Any]) -> bool:
  if charge.get("refunded") is True:
    return True
  amount = int(charge.get("amount") or 0)
  amount_refunded = int(charge.get("amount_refunded") or 0)
  return amount > 0 and amount_refunded >= amount


class PaymentEventReconciler:
  """Apply succeeded/failed/refunded events once per event id."""

  def __init__(self, *, notifications: NotificationService) -> None:
    self._notifications = notifications

  async def reconcile(self, session: AsyncSession, event: dict[str, Any]) -> WebhookOutcome:
    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")
    payload = (event.get("data") or {}).get("object") or {}

    if not event_id:
      return WebhookOutcome(event_id="", event_type=event_type, outcome="missing_id")

    if await session.get(PaymentWebhookEvent, event_id) is not None:
      logger.info("Webhook event %s already processed; skipping", event_id)
      return WebhookOutcome(event_id=event_id, event_type=event_type, outcome="duplicate")

    if event_type == "charge.refunded":
      payment_reference = payload.get("payment_intent")
    else:
      payment_reference = payload.get("id")
    payment_reference = str(payment_reference) if payment_reference else None

    student = await get_student_by_payment_reference(session, payment_reference) if payment_reference else None
    notify_refund: tuple[str, str] | None = None

    if event_type not in HANDLED_EVENT_TYPES:
      outcome = "ignored"
    elif student is None:
      outcome = "unmatched"
    elif event_type == "payment_intent.succeeded":
      outcome = await self._on_succeeded(session, student, payload)
    elif event_type == "payment_intent.payment_failed":
      outcome = await self._on_failed(session, student)
    else:
      outcome = await self._on_refunded(session, student, payload)
      if outcome == "rejected":
        notify_refund = (student.email, student.name)

    student_id = student.id if student is not None else None
    session.add(PaymentWebhookEvent(event_id=event_id, event_type=event_type, payment_reference=payment_reference, outcome=outcome))
    try:
      await session.commit()
    except IntegrityError:
      # A concurrent delivery of the same event committed first.
      await session.rollback()
      return WebhookOutcome(event_id=event_id, event_type=event_type, outcome="duplicate", student_id=student_id)

    logger.info("Webhook event %s type=%s outcome=%s student=%s", event_id, event_type, outcome, student_id)
    if notify_refund is not None and student_id is not None:
      email, name = notify_refund
      await self._notifications.notify_refund_processed(student_id=student_id, email=email, name=name)
    return WebhookOutcome(event_id=event_id, event_type=event_type, outcome=outcome, student_id=student_id)

  async def _on_succeeded(self, session: AsyncSession, student: Student, payload: dict[str, Any]) -> str:
    values: dict[str, Any] = {}
    customer = payload.get("customer")
    if isinstance(customer, str) and customer:
      values["payment_customer_id"] = customer
    if student.error_message == PAYMENT_FAILED_MESSAGE:
      values["error_message"] = None
    if not values:
      return "no_change"
    await session.execute(update(Student).where(Student.id == student.id).values(**values).execution_options(synchronize_session=False))
    return "payment_confirmed"

  async def _on_failed(self, session: AsyncSession, student: Student) -> str:
    moved = await transition_status(
      session, student.id, allowed_from=(StudentStatus.SUBMITTED, StudentStatus.EDITS_REQUESTED), values={"status": StudentStatus.ERROR, "error_message": PAYMENT_FAILED_MESSAGE}
    )
    if not moved:
      return "ignored_status"
    await queue.cancel_active_items(session, student.id, reason=PAYMENT_FAILED_MESSAGE)
    return "payment_failed"

  async def _on_refunded(self, session: AsyncSession, student: Student, charge: dict[str, Any]) -> str:
    if not _is_full_refund(charge):
      return "ignored_partial_refund"
    # Keep the reason and refund id recorded by a staff rejection.
    if student.status == StudentStatus.REJECTED:
      return "already_rejected"

    non_rejected = [status for status in StudentStatus if status != StudentStatus.REJECTED]
    values = {
      "status": StudentStatus.REJECTED,
      "rejection_reason": REFUNDED_REASON,
      "refund_id": _refund_id_from_charge(charge),
      "refund_failure_reason": None,
      "edit_instructions": None,
      "payment_required": False,
      "error_message": REFUND_CANCELLED_MESSAGE,
    }
    moved = await transition_status(session, student.id, allowed_from=non_rejected, values=values)
    if not moved:
      return "already_rejected"
    await queue.cancel_active_items(session, student.id, reason=REFUND_CANCELLED_MESSAGE)
    return "rejected"


async def list_recent_events(session: AsyncSession, *, limit: int = 50) -> list[PaymentWebhookEvent]:
  stmt = select(PaymentWebhookEvent).order_by(PaymentWebhookEvent.received_at.desc()).limit(limit)
  return list((await session.execute(stmt)).scalars().all())

"""Review lifecycle transitions against a real (sqlite) database."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from folio.lifecycle.results import LifecycleErrorCode
from folio.lifecycle.transitions import REFUNDED_RESUBMIT_MESSAGE, StudentLifecycle
from folio.payments.contracts import PaymentProviderError
from folio.schema.deployments import DeploymentStatus
from folio.schema.sql import ChangeRequest, ChangeRequestStatus, ChangeRequestType, Project, StudentStatus, Tier
from folio.schema.submissions import ProjectInput, SubmissionUpdate
from folio.storage.deployment_queue_repo import SUPERSEDED_MESSAGE
from tests.helpers import GOOD_PROJECT_DESCRIPTION, add_queue_item, create_student, load_queue, load_student, set_tier_snapshot


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def lifecycle(notifications, payments):
  return StudentLifecycle(notifications=notifications, payments=payments)


@pytest.mark.anyio
async def test_approve_supersedes_active_items_and_queues_one(session_factory, db_session, lifecycle, notifications):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)
  stale_id = await add_queue_item(session_factory, student_id)

  result = await lifecycle.approve(db_session, student_id)

  assert result.success is True
  assert result.as_response() == {"success": True}
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.APPROVED
  assert student.status_version == 1

  items = await load_queue(session_factory, student_id)
  assert len(items) == 2
  stale = next(item for item in items if item.id == stale_id)
  fresh = next(item for item in items if item.id != stale_id)
  assert stale.status == DeploymentStatus.FAILED
  assert stale.error_message == SUPERSEDED_MESSAGE
  assert stale.cancelled is True
  assert fresh.status == DeploymentStatus.QUEUED
  assert fresh.retry_count == 0
  notifications.notify_approved.assert_awaited_once()
  assert notifications.notify_approved.await_args.kwargs["subdomain"] == student.subdomain


@pytest.mark.anyio
async def test_approve_refuses_deployed_student(session_factory, db_session, lifecycle, notifications):
  student_id = await create_student(session_factory, status=StudentStatus.DEPLOYED)

  result = await lifecycle.approve(db_session, student_id)

  assert result.success is False
  assert result.error_code == LifecycleErrorCode.INVALID_TRANSITION
  assert result.error == "Cannot approve a submission with status 'deployed'"
  assert await load_queue(session_factory, student_id) == []
  student = await load_student(session_factory, student_id)
  assert student.status_version == 0
  notifications.notify_approved.assert_not_awaited()


@pytest.mark.anyio
async def test_approve_unknown_student(db_session, lifecycle):
  result = await lifecycle.approve(db_session, uuid.uuid4())
  assert result.error_code == LifecycleErrorCode.NOT_FOUND
  assert result.as_response() == {"success": False, "error": "Student not found", "errorCode": "not_found"}


@pytest.mark.anyio
async def test_reject_with_refund_cancels_queue(session_factory, db_session, lifecycle, payments, notifications):
  student_id = await create_student(session_factory, payment_reference="pi_reject_1")
  item_id = await add_queue_item(session_factory, student_id)

  result = await lifecycle.reject(db_session, student_id, reason="Content is not original", should_refund=True)

  assert result.success is True
  assert result.refund_failed is False
  assert payments.refund_calls == [("pi_reject_1", "Content is not original")]
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.REJECTED
  assert student.rejection_reason == "Content is not original"
  assert student.refund_id == "re_pi_reject_1"
  assert student.refund_failure_reason is None

  items = await load_queue(session_factory, student_id)
  assert [(item.id, item.status, item.error_message) for item in items] == [(item_id, DeploymentStatus.FAILED, "Submission rejected")]
  notifications.notify_rejected.assert_awaited_once()
  assert notifications.notify_rejected.await_args.kwargs["refunded"] is True


@pytest.mark.anyio
async def test_reject_still_applies_when_refund_fails(session_factory, db_session, lifecycle, payments, notifications):
  student_id = await create_student(session_factory)
  payments.refund_error = PaymentProviderError("charge_already_refunded")

  result = await lifecycle.reject(db_session, student_id, reason="Duplicate account", should_refund=True)

  assert result.success is True
  assert result.refund_failed is True
  assert result.as_response() == {"success": True, "refundFailed": True, "refundError": "charge_already_refunded"}
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.REJECTED
  assert student.refund_id is None
  assert student.refund_failure_reason == "charge_already_refunded"
  assert student.error_message == "Refund failed: charge_already_refunded"
  assert notifications.notify_rejected.await_args.kwargs["refunded"] is False


@pytest.mark.anyio
async def test_reject_without_refund_skips_provider(session_factory, db_session, lifecycle, payments):
  student_id = await create_student(session_factory)

  result = await lifecycle.reject(db_session, student_id, reason="Incomplete", should_refund=False)

  assert result.success is True
  assert payments.refund_calls == []
  assert (await load_student(session_factory, student_id)).refund_id is None


@pytest.mark.anyio
async def test_reject_requires_reason(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory)
  result = await lifecycle.reject(db_session, student_id, reason="   ")
  assert result.error_code == LifecycleErrorCode.INVALID_REQUEST


@pytest.mark.anyio
async def test_reject_twice_is_an_invalid_transition(session_factory, db_session, lifecycle, payments):
  student_id = await create_student(session_factory, status=StudentStatus.REJECTED, refund_id="re_first")

  result = await lifecycle.reject(db_session, student_id, reason="Again", should_refund=True)

  assert result.error_code == LifecycleErrorCode.INVALID_TRANSITION
  assert payments.refund_calls == []
  assert (await load_student(session_factory, student_id)).refund_id == "re_first"


@pytest.mark.anyio
async def test_request_edits_records_instructions_and_change_request(session_factory, db_session, lifecycle, notifications):
  student_id = await create_student(session_factory)
  await add_queue_item(session_factory, student_id)

  result = await lifecycle.request_edits(db_session, student_id, items=[" Add a profile photo ", "", "Describe project outcomes"])

  assert result.success is True
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.EDITS_REQUESTED
  assert student.edit_instructions == ["Add a profile photo", "Describe project outcomes"]
  items = await load_queue(session_factory, student_id)
  assert items[0].status == DeploymentStatus.FAILED
  assert items[0].error_message == "Edits requested"
  assert items[0].cancelled is True

  async with session_factory() as session:
    request = (await session.execute(select(ChangeRequest).where(ChangeRequest.student_id == student_id))).scalar_one()
  assert request.type == ChangeRequestType.CONTENT_EDIT
  assert request.status == ChangeRequestStatus.APPROVED
  assert request.is_paid is False
  assert "- Add a profile photo" in request.description
  notifications.notify_edits_requested.assert_awaited_once()
  assert notifications.notify_edits_requested.await_args.kwargs["items"] == ["Add a profile photo", "Describe project outcomes"]


@pytest.mark.anyio
async def test_request_edits_only_from_submitted(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)
  result = await lifecycle.request_edits(db_session, student_id, items=["More detail"])
  assert result.error_code == LifecycleErrorCode.INVALID_TRANSITION


@pytest.mark.anyio
async def test_request_edits_needs_items(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory)
  result = await lifecycle.request_edits(db_session, student_id, items=["  "])
  assert result.error_code == LifecycleErrorCode.INVALID_REQUEST
  assert (await load_student(session_factory, student_id)).status == StudentStatus.SUBMITTED


@pytest.mark.anyio
async def test_allow_resubmission_flags_payment_for_refunded_student(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.REJECTED, refund_id="re_1")

  result = await lifecycle.allow_resubmission(db_session, student_id)

  assert result.success is True
  assert result.payment_required is True
  assert result.as_response() == {"success": True, "paymentRequired": True}
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.EDITS_REQUESTED
  assert student.payment_required is True
  assert student.rejection_reason is None


@pytest.mark.anyio
async def test_allow_resubmission_without_refund(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.REJECTED)
  result = await lifecycle.allow_resubmission(db_session, student_id)
  assert result.payment_required is False
  assert (await load_student(session_factory, student_id)).payment_required is False


@pytest.mark.anyio
async def test_allow_resubmission_only_from_rejected(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  result = await lifecycle.allow_resubmission(db_session, student_id)
  assert result.error_code == LifecycleErrorCode.INVALID_TRANSITION


@pytest.mark.anyio
async def test_resubmit_blocked_until_refunded_student_pays(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, refund_id="re_1", payment_required=True)

  result = await lifecycle.resubmit(db_session, student_id)

  assert result.error_code == LifecycleErrorCode.PAYMENT_REQUIRED
  assert result.error == REFUNDED_RESUBMIT_MESSAGE
  assert (await load_student(session_factory, student_id)).status == StudentStatus.EDITS_REQUESTED


@pytest.mark.anyio
async def test_resubmit_returns_to_review(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)

  result = await lifecycle.resubmit(db_session, student_id)

  assert result.success is True
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.SUBMITTED
  assert student.edit_instructions is None


@pytest.mark.anyio
async def test_update_submission_replaces_projects_and_contact(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)
  changes = SubmissionUpdate(
    name="Aisha R.",
    projects=[
      ProjectInput(title="Inventory Sync", description=GOOD_PROJECT_DESCRIPTION, tech_stack=["Python"]),
      ProjectInput(title="Queue Monitor", description=GOOD_PROJECT_DESCRIPTION, tech_stack=["Go"]),
    ],
  )

  result = await lifecycle.update_submission(db_session, student_id, changes)

  assert result.success is True
  student = await load_student(session_factory, student_id)
  assert student.name == "Aisha R."
  assert student.status == StudentStatus.EDITS_REQUESTED
  async with session_factory() as session:
    titles = (await session.execute(select(Project.title).where(Project.student_id == student_id).order_by(Project.position))).scalars().all()
  assert titles == ["Inventory Sync", "Queue Monitor"]


@pytest.mark.anyio
async def test_update_submission_rejects_email_used_by_another_student(session_factory, db_session, lifecycle):
  await create_student(session_factory, email="taken@example.com")
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)

  result = await lifecycle.update_submission(db_session, student_id, SubmissionUpdate(email="Taken@Example.com"))

  assert result.error_code == LifecycleErrorCode.EMAIL_CONFLICT


@pytest.mark.anyio
async def test_update_submission_enforces_snapshot_tier_limits(session_factory, db_session, lifecycle):
  # The live table leaves professional unlimited; this student was sold two projects.
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, tier=Tier.PROFESSIONAL)
  await set_tier_snapshot(session_factory, student_id, max_projects=2)
  projects = [ProjectInput(title=f"Project {index}", description=GOOD_PROJECT_DESCRIPTION, tech_stack=["Python"]) for index in range(3)]

  result = await lifecycle.update_submission(db_session, student_id, SubmissionUpdate(projects=projects))

  assert result.error_code == LifecycleErrorCode.TIER_LIMIT
  async with session_factory() as session:
    count = (await session.execute(select(func.count()).select_from(Project).where(Project.student_id == student_id))).scalar_one()
  assert count == 1


@pytest.mark.anyio
async def test_update_submission_honours_grandfathered_snapshot(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, tier=Tier.STARTER)
  await set_tier_snapshot(session_factory, student_id, max_projects=999)
  projects = [ProjectInput(title=f"Project {index}", description=GOOD_PROJECT_DESCRIPTION, tech_stack=["Python"]) for index in range(5)]

  result = await lifecycle.update_submission(db_session, student_id, SubmissionUpdate(projects=projects))

  assert result.success is True
  async with session_factory() as session:
    count = (await session.execute(select(func.count()).select_from(Project).where(Project.student_id == student_id))).scalar_one()
  assert count == 5


@pytest.mark.anyio
async def test_update_submission_outside_edit_window(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  result = await lifecycle.update_submission(db_session, student_id, SubmissionUpdate(name="New Name"))
  assert result.error_code == LifecycleErrorCode.INVALID_TRANSITION


@pytest.mark.anyio
async def test_record_repayment_unblocks_resubmission(session_factory, db_session, lifecycle, payments):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, refund_id="re_old", payment_required=True)
  payments.approve("pi_second", tier="professional", customer_id="cus_9")

  result = await lifecycle.record_repayment(db_session, student_id, payment_reference="pi_second")

  assert result.success is True
  student = await load_student(session_factory, student_id)
  assert student.payment_reference == "pi_second"
  assert student.refund_id is None
  assert student.payment_required is False
  assert student.payment_customer_id == "cus_9"

  resubmitted = await lifecycle.resubmit(db_session, student_id)
  assert resubmitted.success is True


@pytest.mark.anyio
async def test_record_repayment_checks_payment(session_factory, db_session, lifecycle, payments):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, refund_id="re_old")

  unpaid = await lifecycle.record_repayment(db_session, student_id, payment_reference="pi_unpaid")
  assert unpaid.error_code == LifecycleErrorCode.PAYMENT_INVALID
  assert unpaid.error == "Payment not completed"

  payments.approve("pi_starter", tier="starter")
  wrong_tier = await lifecycle.record_repayment(db_session, student_id, payment_reference="pi_starter")
  assert wrong_tier.error_code == LifecycleErrorCode.PAYMENT_INVALID
  assert (await load_student(session_factory, student_id)).refund_id == "re_old"


@pytest.mark.anyio
async def test_record_repayment_reports_provider_outage(session_factory, db_session, lifecycle, payments):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, refund_id="re_old")
  payments.verify_error = RuntimeError("boom")

  result = await lifecycle.record_repayment(db_session, student_id, payment_reference="pi_second")

  assert result.success is False
  assert result.error_code == LifecycleErrorCode.PROVIDER_ERROR
  assert result.error == "Payment could not be verified right now. Please try again."
  student = await load_student(session_factory, student_id)
  assert student.refund_id == "re_old"
  assert student.payment_reference != "pi_second"


@pytest.mark.anyio
async def test_record_repayment_requires_refunded_student(session_factory, db_session, lifecycle):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)
  result = await lifecycle.record_repayment(db_session, student_id, payment_reference="pi_x")
  assert result.error_code == LifecycleErrorCode.INVALID_TRANSITION

"""Submission intake: payment verification, tier checks, idempotency and the student status view."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from folio.lifecycle.results import LifecycleErrorCode
from folio.schema.sql import Project, Student, StudentStatus, Tier, TierSnapshot
from folio.schema.submissions import SubmissionCreate
from folio.services.submissions import build_status_view, create_submission
from folio.storage.student_records import get_student
from tests.helpers import GOOD_BIO, GOOD_PROJECT_DESCRIPTION, create_student


@pytest.fixture
def anyio_backend():
  return "asyncio"


def _payload(*, payment_intent_id: str = "pi_form", tier: str = "professional", projects: int = 1, email: str = "Aisha@Example.com", **extra) -> SubmissionCreate:
  body = {
    "paymentIntentId": payment_intent_id,
    "tier": tier,
    "name": "Aisha Rahman",
    "email": email,
    "profile": {"role": "Developer", "bio": GOOD_BIO, "techStack": ["Python", " "]},
    "projects": [{"title": f"Project {index}", "description": GOOD_PROJECT_DESCRIPTION, "techStack": ["Python"]} for index in range(projects)],
    "socialLinks": {"github": "https://github.com/aisha"},
    **extra,
  }
  return SubmissionCreate.model_validate(body)


@pytest.mark.anyio
async def test_creates_student_with_content_and_snapshot(db_session, payments, notifications):
  payments.approve("pi_form", customer_id="cus_1")

  result = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  assert result.success is True
  assert result.existing is False
  assert result.subdomain == "aisha-rahman"
  student = await get_student(db_session, result.student_id, with_content=True)
  assert student.status == StudentStatus.SUBMITTED
  assert student.email == "aisha@example.com"
  assert student.payment_customer_id == "cus_1"
  assert student.profile.tech_stack == ["Python"]
  assert [project.title for project in student.projects] == ["Project 0"]
  snapshot = (await db_session.execute(select(TierSnapshot).where(TierSnapshot.student_id == student.id))).scalar_one()
  assert snapshot.custom_domain_allowed is True
  notifications.notify_submission_received.assert_awaited_once()


@pytest.mark.anyio
async def test_same_payment_returns_existing_student(db_session, payments, notifications):
  payments.approve("pi_form")
  first = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  second = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  assert second.success is True
  assert second.existing is True
  assert second.student_id == first.student_id
  assert notifications.notify_submission_received.await_count == 1
  count = len((await db_session.execute(select(Student.id))).all())
  assert count == 1


@pytest.mark.anyio
async def test_unverified_payment_is_refused(db_session, payments, notifications):
  result = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  assert result.error_code == LifecycleErrorCode.PAYMENT_INVALID
  assert result.error == "Payment not completed"


@pytest.mark.anyio
async def test_provider_outage_is_reported_not_raised(db_session, payments, notifications):
  payments.verify_error = RuntimeError("boom")

  result = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  assert result.success is False
  assert result.error_code == LifecycleErrorCode.PROVIDER_ERROR
  assert result.error == "Payment could not be verified right now. Please try again."
  assert (await db_session.execute(select(Student.id))).first() is None
  notifications.notify_submission_received.assert_not_awaited()


@pytest.mark.anyio
async def test_payment_for_a_different_tier_is_refused(db_session, payments, notifications):
  payments.approve("pi_form", tier="starter")

  result = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  assert result.error_code == LifecycleErrorCode.PAYMENT_INVALID
  assert "tier" in result.error


@pytest.mark.anyio
async def test_tier_limits_are_enforced_server_side(db_session, payments, notifications):
  payments.approve("pi_form", tier="starter")

  result = await create_submission(db_session, _payload(tier="starter", projects=4, customDomain="aisha.dev"), payments=payments, notifications=notifications)

  assert result.error_code == LifecycleErrorCode.TIER_LIMIT
  assert result.errors == ["Maximum 3 projects allowed for starter tier", "Custom domains not available for this tier"]
  assert (await db_session.execute(select(Project.id))).first() is None


@pytest.mark.anyio
async def test_email_already_used_is_a_conflict(session_factory, db_session, payments, notifications):
  await create_student(session_factory, email="aisha@example.com")
  payments.approve("pi_form")

  result = await create_submission(db_session, _payload(), payments=payments, notifications=notifications)

  assert result.error_code == LifecycleErrorCode.EMAIL_CONFLICT


@pytest.mark.anyio
async def test_clashing_names_get_suffixed_subdomains(db_session, payments, notifications):
  payments.approve("pi_one")
  payments.approve("pi_two")

  first = await create_submission(db_session, _payload(payment_intent_id="pi_one", email="one@example.com"), payments=payments, notifications=notifications)
  second = await create_submission(db_session, _payload(payment_intent_id="pi_two", email="two@example.com"), payments=payments, notifications=notifications)

  assert first.subdomain == "aisha-rahman"
  assert second.subdomain.startswith("aisha-rahman-")


@pytest.mark.anyio
async def test_status_view_hides_payment_details(session_factory, db_session):
  student_id = await create_student(session_factory, status=StudentStatus.REJECTED, refund_id="re_1")
  async with session_factory() as session:
    student = await session.get(Student, student_id)
    student.rejection_reason = "Duplicate submission"
    student.edit_instructions = ["Not shown"]
    await session.commit()

  student = await get_student(db_session, student_id)
  view = await build_status_view(db_session, student, site_domain="folio.dev")

  assert view.status_label == "Not Approved"
  assert view.rejection_reason == "Duplicate submission"
  assert view.refund_issued is True
  assert view.edit_instructions == []
  assert view.portfolio_url is None
  assert not hasattr(view, "payment_reference")


@pytest.mark.anyio
async def test_status_view_for_live_and_edit_states(session_factory, db_session):
  live_id = await create_student(session_factory, status=StudentStatus.DEPLOYED, tier=Tier.FLAGSHIP)
  edits_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED, payment_required=True, refund_id="re_2")
  async with session_factory() as session:
    student = await session.get(Student, edits_id)
    student.edit_instructions = ["Add a photo"]
    await session.commit()

  live = await build_status_view(db_session, await get_student(db_session, live_id), site_domain="folio.dev")
  edits = await build_status_view(db_session, await get_student(db_session, edits_id), site_domain="folio.dev")

  assert live.status_label == "Live"
  assert live.portfolio_url == f"https://{live.subdomain}.folio.dev"
  assert edits.status_label == "Action Needed"
  assert edits.edit_instructions == ["Add a photo"]
  assert edits.payment_required is True

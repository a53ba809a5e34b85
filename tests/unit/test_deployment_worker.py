"""Deployment worker behaviour: claiming, publishing, cancellation and failure recording."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import OperationalError

from folio.deployments.worker import DeploymentJobError, DeploymentWorker, build_portfolio_data
from folio.hosting.contracts import HostingProviderError
from folio.rendering.portfolio import HtmlPortfolioRenderer
from folio.schema.deployments import DeploymentStatus
from folio.schema.sql import StudentStatus, Tier
from folio.storage import deployment_queue_repo as queue
from folio.storage.student_records import get_student
from tests.helpers import add_queue_item, create_student, load_queue, load_student


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def worker(session_factory, hosting, notifications):
  return DeploymentWorker(session_factory=session_factory, hosting=hosting, renderer=HtmlPortfolioRenderer(), notifications=notifications, batch_size=5)


@pytest.mark.anyio
async def test_run_batch_deploys_approved_student(session_factory, worker, hosting, notifications):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED, name="Aisha Rahman")
  item_id = await add_queue_item(session_factory, student_id)

  result = await worker.run_batch()

  assert result.processed == 1
  assert result.errors == []
  student = await load_student(session_factory, student_id)
  assert student.status == StudentStatus.DEPLOYED
  assert hosting.published[0]["subdomain"] == student.subdomain
  assert "Aisha Rahman" in hosting.published[0]["html"]

  [item] = await load_queue(session_factory, student_id)
  assert item.id == item_id
  assert item.status == DeploymentStatus.COMPLETED
  assert item.deployment_url == f"https://{student.subdomain}.folio.dev"
  assert item.hosting_project_id == f"prj_{student.subdomain}"
  assert item.completed_at is not None
  notifications.notify_portfolio_live.assert_awaited_once()
  assert notifications.notify_portfolio_live.await_args.kwargs["live_url"] == item.deployment_url


@pytest.mark.anyio
async def test_redeploying_live_student_does_not_resend_live_email(session_factory, worker, notifications):
  student_id = await create_student(session_factory, status=StudentStatus.DEPLOYED)
  await add_queue_item(session_factory, student_id)

  result = await worker.run_batch()

  assert result.processed == 1
  assert (await load_student(session_factory, student_id)).status == StudentStatus.DEPLOYED
  notifications.notify_portfolio_live.assert_not_awaited()


@pytest.mark.anyio
async def test_custom_domain_is_aliased_only_when_snapshot_allows(session_factory, worker, hosting):
  pro_id = await create_student(session_factory, status=StudentStatus.APPROVED, custom_domain="aisha.dev")
  starter_id = await create_student(session_factory, status=StudentStatus.APPROVED, tier=Tier.STARTER, custom_domain="cheap.dev")
  await add_queue_item(session_factory, pro_id)
  await add_queue_item(session_factory, starter_id)

  await worker.run_batch()

  by_subdomain = {entry["subdomain"]: entry["extra_domains"] for entry in hosting.published}
  assert by_subdomain[(await load_student(session_factory, pro_id)).subdomain] == ("aisha.dev",)
  assert by_subdomain[(await load_student(session_factory, starter_id)).subdomain] == ()


@pytest.mark.anyio
async def test_refuses_student_waiting_on_edits(session_factory, worker, hosting, notifications):
  student_id = await create_student(session_factory, status=StudentStatus.EDITS_REQUESTED)
  await add_queue_item(session_factory, student_id)

  result = await worker.run_batch()

  assert result.processed == 0
  assert [(failure.student_id, failure.error) for failure in result.errors] == [(student_id, "Cannot deploy student with status 'edits_requested'")]
  assert hosting.published == []
  [item] = await load_queue(session_factory, student_id)
  assert item.status == DeploymentStatus.FAILED
  assert item.retry_count == 1
  notifications.notify_portfolio_live.assert_not_awaited()


@pytest.mark.anyio
async def test_missing_profile_fails_the_job(session_factory, worker):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED, with_content=False)
  await add_queue_item(session_factory, student_id)

  result = await worker.run_batch()

  assert result.errors[0].error == "Profile not found"


@pytest.mark.anyio
async def test_hosting_failure_is_recorded_and_student_stays_approved(session_factory, worker, hosting):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  await add_queue_item(session_factory, student_id, retry_count=1)
  hosting.publish_error = HostingProviderError("Failed to deploy: quota exceeded", status_code=402)

  result = await worker.run_batch()

  assert result.errors[0].error == "Failed to deploy: quota exceeded"
  [item] = await load_queue(session_factory, student_id)
  assert item.status == DeploymentStatus.FAILED
  assert item.retry_count == 2
  assert item.error_message == "Failed to deploy: quota exceeded"
  assert (await load_student(session_factory, student_id)).status == StudentStatus.APPROVED


@pytest.mark.anyio
async def test_cancellation_during_publish_takes_the_site_down(session_factory, worker, hosting, notifications):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  await add_queue_item(session_factory, student_id)

  async def _reject_mid_publish(subdomain: str) -> None:
    async with session_factory() as session:
      await queue.cancel_active_items(session, student_id, reason="Submission rejected")
      await session.commit()

  hosting.on_publish = _reject_mid_publish

  result = await worker.run_batch()

  assert result.processed == 0
  assert result.errors == []
  student = await load_student(session_factory, student_id)
  assert hosting.deleted == [student.subdomain]
  assert student.status == StudentStatus.APPROVED
  [item] = await load_queue(session_factory, student_id)
  assert item.status == DeploymentStatus.FAILED
  assert item.error_message == "Submission rejected"
  assert item.cancelled is True
  notifications.notify_portfolio_live.assert_not_awaited()


@pytest.mark.anyio
async def test_database_error_while_finalizing_fails_only_that_item(session_factory, worker, monkeypatch):
  first_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  second_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  await add_queue_item(session_factory, first_id)
  await add_queue_item(session_factory, second_id)
  real_mark_completed = queue.mark_completed
  calls = []

  async def _locked_once(session, item_id, **kwargs):
    calls.append(item_id)
    if len(calls) == 1:
      raise OperationalError("UPDATE deployment_queue", {}, Exception("database is locked"))
    return await real_mark_completed(session, item_id, **kwargs)

  monkeypatch.setattr(queue, "mark_completed", _locked_once)

  result = await worker.run_batch()

  assert result.processed == 1
  assert [failure.student_id for failure in result.errors] == [first_id]
  [first] = await load_queue(session_factory, first_id)
  assert first.status == DeploymentStatus.FAILED
  assert first.retry_count == 1
  assert "database is locked" in first.error_message
  assert (await load_student(session_factory, first_id)).status == StudentStatus.APPROVED
  [second] = await load_queue(session_factory, second_id)
  assert second.status == DeploymentStatus.COMPLETED
  assert (await load_student(session_factory, second_id)).status == StudentStatus.DEPLOYED


@pytest.mark.anyio
async def test_database_error_while_claiming_leaves_item_queued(session_factory, worker, hosting, monkeypatch):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  item_id = await add_queue_item(session_factory, student_id)

  async def _locked(session, claimed_id):
    raise OperationalError("UPDATE deployment_queue", {}, Exception("database is locked"))

  monkeypatch.setattr(queue, "claim_item", _locked)

  outcome = await worker.process_item(item_id, student_id)

  assert outcome == ("failed", "Could not claim deployment item")
  assert hosting.published == []
  [item] = await load_queue(session_factory, student_id)
  assert item.status == DeploymentStatus.QUEUED
  assert item.retry_count == 0


@pytest.mark.anyio
async def test_unrecorded_failure_leaves_item_for_timeout_sweep(session_factory, worker, hosting, monkeypatch):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  await add_queue_item(session_factory, student_id)
  hosting.publish_error = HostingProviderError("Failed to deploy: upstream timeout", status_code=504)

  async def _locked(session, item_id, *, error):
    raise OperationalError("UPDATE deployment_queue", {}, Exception("database is locked"))

  monkeypatch.setattr(queue, "mark_failed", _locked)

  result = await worker.run_batch()

  assert [failure.error for failure in result.errors] == ["Failed to deploy: upstream timeout"]
  [item] = await load_queue(session_factory, student_id)
  assert item.status == DeploymentStatus.PROCESSING


@pytest.mark.anyio
async def test_process_item_skips_items_claimed_elsewhere(session_factory, worker, hosting):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED)
  item_id = await add_queue_item(session_factory, student_id, status=DeploymentStatus.PROCESSING)

  outcome = await worker.process_item(item_id, student_id)

  assert outcome == ("skipped", None)
  assert hosting.published == []


@pytest.mark.anyio
async def test_batch_size_limits_work_per_run(session_factory, hosting, notifications):
  worker = DeploymentWorker(session_factory=session_factory, hosting=hosting, renderer=HtmlPortfolioRenderer(), notifications=notifications, batch_size=2)
  student_ids = [await create_student(session_factory, status=StudentStatus.APPROVED) for _ in range(3)]
  for student_id in student_ids:
    await add_queue_item(session_factory, student_id)

  result = await worker.run_batch()

  assert result.processed == 2
  # Oldest first, so the last queued student is still waiting.
  [remaining] = await load_queue(session_factory, student_ids[2])
  assert remaining.status == DeploymentStatus.QUEUED


@pytest.mark.anyio
async def test_undeploy_removes_hosting_project(session_factory, worker, hosting):
  student_id = await create_student(session_factory, status=StudentStatus.DEPLOYED)

  assert await worker.undeploy(student_id) is True

  student = await load_student(session_factory, student_id)
  assert hosting.deleted == [student.subdomain]
  assert student.status == StudentStatus.DEPLOYED


@pytest.mark.anyio
async def test_undeploy_reports_provider_failure(session_factory, worker, hosting):
  student_id = await create_student(session_factory, status=StudentStatus.DEPLOYED)
  hosting.delete_error = HostingProviderError("Failed to delete project", status_code=500)

  assert await worker.undeploy(student_id) is False


@pytest.mark.anyio
async def test_undeploy_unknown_student_is_a_no_op(worker, hosting):
  assert await worker.undeploy(uuid.uuid4()) is True
  assert hosting.deleted == []


@pytest.mark.anyio
async def test_build_portfolio_data_collects_links(session_factory):
  student_id = await create_student(session_factory, status=StudentStatus.APPROVED, role="Data Scientist")
  async with session_factory() as session:
    student = await get_student(session, student_id, with_content=True)
    data = build_portfolio_data(student)

  assert data.role == "Data Scientist"
  assert data.links == {"github": "https://github.com/aisha"}
  assert [project.title for project in data.projects] == ["Inventory Sync"]
  assert data.experiences[0].organization == "Campus Store"


@pytest.mark.anyio
async def test_build_portfolio_data_requires_profile(session_factory):
  student_id = await create_student(session_factory, with_content=False)
  async with session_factory() as session:
    student = await get_student(session, student_id, with_content=True)
    with pytest.raises(DeploymentJobError, match="Profile not found"):
      build_portfolio_data(student)

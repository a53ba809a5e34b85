"""Background processor for queued portfolio deployments."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.hosting.contracts import HostingClient, HostingProviderError
from folio.lifecycle.transitions import transition_status
from folio.notifications.service import NotificationService
from folio.rendering.portfolio import ExperienceData, PortfolioData, PortfolioRenderer, ProjectData, select_template
from folio.schema.sql import Student, StudentStatus
from folio.storage import deployment_queue_repo as queue
from folio.storage.student_records import get_student

REFUSED_STATUSES = (StudentStatus.REJECTED, StudentStatus.EDITS_REQUESTED)


class DeploymentJobError(Exception):
  """Raised inside a job when the student cannot be deployed."""


@dataclass(frozen=True)
class DeploymentFailure:
  student_id: uuid.UUID
  error: str


@dataclass(frozen=True)
class BatchResult:
  processed: int = 0
  errors: list[DeploymentFailure] = field(default_factory=list)


@dataclass(frozen=True)
class _PreparedJob:
  student_id: uuid.UUID
  email: str
  name: str
  subdomain: str
  variant: str
  data: PortfolioData
  extra_domains: tuple[str, ...]


def build_portfolio_data(student: Student) -> PortfolioData:
  """Assemble template input from a student loaded with its content records."""
  profile = student.profile
  if profile is None:
    raise DeploymentJobError("Profile not found")

  links: dict[str, str] = {}
  if student.social_links is not None:
    for key in ("github", "linkedin", "existing_portfolio"):
      value = getattr(student.social_links, key)
      if value:
        links[key] = value

  assets = student.assets
  return PortfolioData(
    name=student.name,
    email=student.email,
    role=profile.role,
    bio=profile.bio,
    tech_stack=tuple(profile.tech_stack or ()),
    skills=tuple(profile.skills or ()),
    projects=tuple(
      ProjectData(title=project.title, description=project.description, tech_stack=tuple(project.tech_stack or ()), github_url=project.github_url, live_url=project.live_url) for project in student.projects
    ),
    experiences=tuple(
      ExperienceData(organization=item.organization, role=item.role, start_date=item.start_date, end_date=item.end_date, description=item.description) for item in student.experiences
    ),
    links=links,
    profile_photo_url=assets.profile_photo_url if assets else None,
    resume_url=assets.resume_url if assets else None,
  )


def _extra_domains(student: Student) -> tuple[str, ...]:
  snapshot = student.tier_snapshot
  if student.custom_domain and snapshot is not None and snapshot.custom_domain_allowed:
    return (student.custom_domain,)
  return ()


class DeploymentWorker:
  """Drains the deployment queue one job at a time; each job is its own failure boundary."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession], hosting: HostingClient, renderer: PortfolioRenderer, notifications: NotificationService, batch_size: int = 5) -> None:
    self._session_factory = session_factory
    self._hosting = hosting
    self._renderer = renderer
    self._notifications = notifications
    self._batch_size = batch_size
    self._logger = logging.getLogger(__name__)

  async def run_batch(self) -> BatchResult:
    """Process up to `batch_size` queued items, oldest first."""
    async with self._session_factory() as session:
      items = await queue.list_queued(session, limit=self._batch_size)
      pending = [(item.id, item.student_id) for item in items]

    processed = 0
    errors: list[DeploymentFailure] = []
    for item_id, student_id in pending:
      outcome, error = await self.process_item(item_id, student_id)
      if outcome == "completed":
        processed += 1
      elif outcome == "failed":
        errors.append(DeploymentFailure(student_id=student_id, error=error or "Unknown error"))
    self._logger.info("Deployment batch finished: processed=%s failed=%s picked=%s", processed, len(errors), len(pending))
    return BatchResult(processed=processed, errors=errors)

  async def process_item(self, item_id: uuid.UUID, student_id: uuid.UUID) -> tuple[str, str | None]:
    """Run one job; returns (outcome, error) where outcome is skipped, completed, cancelled or failed."""
    try:
      async with self._session_factory() as session:
        claimed = await queue.claim_item(session, item_id)
        await session.commit()
    except SQLAlchemyError as exc:
      # Item is still queued; the next run picks it up again.
      self._logger.error("Could not claim deployment item %s for student %s: %s", item_id, student_id, exc)
      return "failed", "Could not claim deployment item"
    if not claimed:
      self._logger.info("Deployment item %s is no longer queued; skipping", item_id)
      return "skipped", None

    try:
      job = await self._prepare(student_id)
      html = self._renderer.render(job.variant, job.data)
      site = await self._hosting.publish(subdomain=job.subdomain, html=html, extra_domains=job.extra_domains)
      return await self._finalize(item_id, job, url=site.url, project_id=site.project_id)
    except Exception as exc:  # noqa: BLE001
      message = str(exc) or type(exc).__name__
      self._logger.error("Deployment failed for student %s (item %s): %s", student_id, item_id, message, exc_info=not isinstance(exc, DeploymentJobError | HostingProviderError))
      await self._record_failure(item_id, message)
      return "failed", message

  async def _prepare(self, student_id: uuid.UUID) -> _PreparedJob:
    async with self._session_factory() as session:
      student = await get_student(session, student_id, with_content=True)
      if student is None:
        raise DeploymentJobError("Student not found")
      if student.status in REFUSED_STATUSES:
        raise DeploymentJobError(f"Cannot deploy student with status '{student.status.value}'")
      data = build_portfolio_data(student)
      return _PreparedJob(
        student_id=student.id,
        email=student.email,
        name=student.name,
        subdomain=student.subdomain,
        variant=select_template(data.role),
        data=data,
        extra_domains=_extra_domains(student),
      )

  async def _record_failure(self, item_id: uuid.UUID, message: str) -> None:
    try:
      async with self._session_factory() as session:
        marked = await queue.mark_failed(session, item_id, error=message)
        await session.commit()
    except SQLAlchemyError as exc:
      # Row stays processing until the retry scheduler times it out.
      self._logger.error("Could not record failure for deployment item %s: %s", item_id, exc)
      return
    if not marked:
      self._logger.warning("Deployment item %s left processing before its failure was recorded", item_id)

  async def _finalize(self, item_id: uuid.UUID, job: _PreparedJob, *, url: str, project_id: str) -> tuple[str, str | None]:
    async with self._session_factory() as session:
      completed = await queue.mark_completed(session, item_id, deployment_url=url, hosting_project_id=project_id)
      if not completed:
        await session.commit()
        # Cancelled by a rejection or edit request while publishing; take the site back down.
        self._logger.warning("Deployment item %s was cancelled during publish; removing site for student %s", item_id, job.student_id)
        await self._delete_site(job.student_id, job.subdomain)
        return "cancelled", None

      went_live = await transition_status(session, job.student_id, allowed_from=(StudentStatus.APPROVED,), values={"status": StudentStatus.DEPLOYED, "error_message": None})
      await session.commit()

    self._logger.info("Deployed student %s to %s (item %s)", job.student_id, url, item_id)
    if went_live:
      await self._notifications.notify_portfolio_live(student_id=job.student_id, email=job.email, name=job.name, live_url=url)
    return "completed", None

  async def _delete_site(self, student_id: uuid.UUID, subdomain: str) -> bool:
    try:
      deleted = await self._hosting.delete_project(subdomain=subdomain)
    except HostingProviderError as exc:
      self._logger.error("Failed to remove hosting project for student %s: %s", student_id, exc)
      return False
    self._logger.info("Hosting project for student %s removed=%s", student_id, deleted)
    return True

  async def undeploy(self, student_id: uuid.UUID) -> bool:
    """Best-effort removal of a student's hosting project; a missing project counts as success."""
    async with self._session_factory() as session:
      student = await get_student(session, student_id)
      subdomain = student.subdomain if student is not None else None
    if not subdomain:
      self._logger.warning("No subdomain found for student %s; skipping hosting cleanup", student_id)
      return True
    return await self._delete_site(student_id, subdomain)

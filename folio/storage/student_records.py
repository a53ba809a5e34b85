"""Read and write a student's content records (profile, projects, experience, links, assets)."""

from __future__ import annotations

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from folio.schema.sql import Assets, Experience, Profile, Project, SocialLinks, Student, TierSnapshot
from folio.schema.submissions import AssetsInput, ExperienceInput, ProfileInput, ProjectInput, SocialLinksInput


async def get_student(session: AsyncSession, student_id: uuid.UUID, *, with_content: bool = False) -> Student | None:
  stmt = select(Student).where(Student.id == student_id)
  if with_content:
    stmt = stmt.options(
      selectinload(Student.profile),
      selectinload(Student.projects),
      selectinload(Student.experiences),
      selectinload(Student.social_links),
      selectinload(Student.assets),
      selectinload(Student.tier_snapshot),
    )
  # populate_existing so a status changed by a conditional UPDATE is not masked by the identity map.
  stmt = stmt.execution_options(populate_existing=True)
  return (await session.execute(stmt)).scalar_one_or_none()


async def get_student_by_email(session: AsyncSession, email: str) -> Student | None:
  stmt = select(Student).where(Student.email == email.strip().lower()).execution_options(populate_existing=True)
  return (await session.execute(stmt)).scalar_one_or_none()


async def get_student_by_payment_reference(session: AsyncSession, payment_reference: str) -> Student | None:
  stmt = select(Student).where(Student.payment_reference == payment_reference).execution_options(populate_existing=True)
  return (await session.execute(stmt)).scalar_one_or_none()


async def get_tier_snapshot(session: AsyncSession, student_id: uuid.UUID) -> TierSnapshot | None:
  stmt = select(TierSnapshot).where(TierSnapshot.student_id == student_id)
  return (await session.execute(stmt)).scalar_one_or_none()


async def email_taken_by_other(session: AsyncSession, email: str, *, student_id: uuid.UUID | None) -> bool:
  stmt = select(Student.id).where(Student.email == email.strip().lower())
  if student_id is not None:
    stmt = stmt.where(Student.id != student_id)
  return (await session.execute(stmt.limit(1))).first() is not None


def _profile_row(student_id: uuid.UUID, profile: ProfileInput) -> Profile:
  return Profile(student_id=student_id, role=profile.role, bio=profile.bio, tech_stack=list(profile.tech_stack), skills=list(profile.skills))


def _project_rows(student_id: uuid.UUID, projects: list[ProjectInput]) -> list[Project]:
  return [
    Project(student_id=student_id, position=index, title=project.title, description=project.description, tech_stack=list(project.tech_stack), github_url=project.github_url, live_url=project.live_url)
    for index, project in enumerate(projects)
  ]


def _experience_rows(student_id: uuid.UUID, experiences: list[ExperienceInput]) -> list[Experience]:
  return [
    Experience(student_id=student_id, position=index, organization=item.organization, role=item.role, start_date=item.start_date, end_date=item.end_date, description=item.description)
    for index, item in enumerate(experiences)
  ]


def add_content_records(
  session: AsyncSession, student_id: uuid.UUID, *, profile: ProfileInput, projects: list[ProjectInput], experiences: list[ExperienceInput], social_links: SocialLinksInput, assets: AssetsInput
) -> None:
  """Stage every content row for a freshly created student."""
  session.add(_profile_row(student_id, profile))
  session.add_all(_project_rows(student_id, projects))
  session.add_all(_experience_rows(student_id, experiences))
  session.add(SocialLinks(student_id=student_id, github=social_links.github, linkedin=social_links.linkedin, existing_portfolio=social_links.existing_portfolio))
  session.add(Assets(student_id=student_id, profile_photo_url=assets.profile_photo_url, resume_url=assets.resume_url))


async def replace_content_records(
  session: AsyncSession,
  student_id: uuid.UUID,
  *,
  profile: ProfileInput | None = None,
  projects: list[ProjectInput] | None = None,
  experiences: list[ExperienceInput] | None = None,
  social_links: SocialLinksInput | None = None,
  assets: AssetsInput | None = None,
) -> list[str]:
  """Delete and reinsert each supplied collection; returns the names of replaced collections."""
  replaced: list[str] = []
  if profile is not None:
    await session.execute(delete(Profile).where(Profile.student_id == student_id))
    session.add(_profile_row(student_id, profile))
    replaced.append("profile")
  if projects is not None:
    await session.execute(delete(Project).where(Project.student_id == student_id))
    session.add_all(_project_rows(student_id, projects))
    replaced.append("projects")
  if experiences is not None:
    await session.execute(delete(Experience).where(Experience.student_id == student_id))
    session.add_all(_experience_rows(student_id, experiences))
    replaced.append("experiences")
  if social_links is not None:
    await session.execute(delete(SocialLinks).where(SocialLinks.student_id == student_id))
    session.add(SocialLinks(student_id=student_id, github=social_links.github, linkedin=social_links.linkedin, existing_portfolio=social_links.existing_portfolio))
    replaced.append("social_links")
  if assets is not None:
    await session.execute(delete(Assets).where(Assets.student_id == student_id))
    session.add(Assets(student_id=student_id, profile_photo_url=assets.profile_photo_url, resume_url=assets.resume_url))
    replaced.append("assets")

  await session.flush()
  return replaced

"""Provider doubles and row builders shared by the unit and integration suites."""

from __future__ import annotations

import datetime
import uuid

from folio.hosting.contracts import PublishedSite
from folio.payments.contracts import CreatedPaymentIntent, PaymentVerification
from folio.schema.deployments import DeploymentQueueItem, DeploymentStatus
from folio.schema.sql import Assets, Experience, Profile, Project, SocialLinks, StaffUser, Student, StudentStatus, Tier, TierSnapshot
from folio.services.tiers import create_tier_snapshot

GOOD_BIO = " ".join(["I build reliable backend services and enjoy turning messy requirements into clear designs."] * 4)
GOOD_PROJECT_DESCRIPTION = "Built an inventory service that reduced stock errors for a campus store by reconciling sales data nightly and alerting staff about mismatches early."


class FakePaymentGateway:
  """In-memory payment provider; verification results are keyed by payment reference."""

  def __init__(self) -> None:
    self.verifications: dict[str, PaymentVerification] = {}
    self.refund_calls: list[tuple[str, str]] = []
    self.refund_error: Exception | None = None
    self.verify_error: Exception | None = None

  def approve(self, payment_reference: str, *, tier: str = "professional", customer_id: str | None = None) -> None:
    self.verifications[payment_reference] = PaymentVerification(valid=True, tier=tier, amount_minor_units=22900, customer_id=customer_id)

  async def verify_payment(self, payment_reference: str) -> PaymentVerification:
    if self.verify_error is not None:
      raise self.verify_error
    return self.verifications.get(payment_reference, PaymentVerification(valid=False, error="Payment not completed"))

  async def refund(self, payment_reference: str, *, reason: str) -> str:
    self.refund_calls.append((payment_reference, reason))
    if self.refund_error is not None:
      raise self.refund_error
    return f"re_{payment_reference}"

  async def create_payment_intent(self, *, tier: str, amount_minor_units: int, email: str | None) -> CreatedPaymentIntent:
    return CreatedPaymentIntent(payment_intent_id="pi_new", client_secret="pi_new_secret", amount_minor_units=amount_minor_units, currency="myr")


class FakeHostingClient:
  def __init__(self) -> None:
    self.published: list[dict] = []
    self.deleted: list[str] = []
    self.publish_error: Exception | None = None
    self.delete_error: Exception | None = None
    self.on_publish = None

  async def publish(self, *, subdomain: str, html: str, extra_domains: tuple[str, ...] = ()) -> PublishedSite:
    self.published.append({"subdomain": subdomain, "html": html, "extra_domains": extra_domains})
    if self.on_publish is not None:
      await self.on_publish(subdomain)
    if self.publish_error is not None:
      raise self.publish_error
    return PublishedSite(project_id=f"prj_{subdomain}", deployment_id="dpl_1", url=f"https://{subdomain}.folio.dev", aliases=(f"{subdomain}.folio.dev", *extra_domains))

  async def delete_project(self, *, subdomain: str) -> bool:
    if self.delete_error is not None:
      raise self.delete_error
    self.deleted.append(subdomain)
    return True


async def create_student(
  session_factory,
  *,
  status: StudentStatus = StudentStatus.SUBMITTED,
  tier: Tier = Tier.PROFESSIONAL,
  email: str | None = None,
  name: str = "Aisha Rahman",
  role: str = "Developer",
  refund_id: str | None = None,
  custom_domain: str | None = None,
  payment_reference: str | None = None,
  payment_required: bool = False,
  with_content: bool = True,
) -> uuid.UUID:
  """Insert a student with a full content set and return its id."""
  student_id = uuid.uuid4()
  suffix = student_id.hex[:8]
  async with session_factory() as session:
    session.add(
      Student(
        id=student_id,
        name=name,
        email=email or f"student-{suffix}@example.com",
        tier=tier,
        status=status,
        subdomain=f"aisha-{suffix}",
        custom_domain=custom_domain,
        payment_reference=payment_reference or f"pi_{suffix}",
        payment_required=payment_required,
        refund_id=refund_id,
      )
    )
    await session.flush()
    if with_content:
      session.add(Profile(student_id=student_id, role=role, bio=GOOD_BIO, tech_stack=["Python", "PostgreSQL"], skills=["APIs"]))
      session.add(Project(student_id=student_id, position=0, title="Inventory Sync", description=GOOD_PROJECT_DESCRIPTION, tech_stack=["Python"], github_url="https://github.com/aisha/inventory"))
      session.add(Experience(student_id=student_id, position=0, organization="Campus Store", role="Intern", start_date="2025-01"))
      session.add(SocialLinks(student_id=student_id, github="https://github.com/aisha", linkedin=None, existing_portfolio=None))
      session.add(Assets(student_id=student_id, profile_photo_url=None, resume_url=None))
      session.add(TierSnapshot(student_id=student_id, **create_tier_snapshot(tier)))
    await session.commit()
  return student_id


async def add_queue_item(
  session_factory,
  student_id: uuid.UUID,
  *,
  status: DeploymentStatus = DeploymentStatus.QUEUED,
  retry_count: int = 0,
  error_message: str | None = None,
  cancelled: bool = False,
  updated_at: datetime.datetime | None = None,
) -> uuid.UUID:
  async with session_factory() as session:
    item = DeploymentQueueItem(student_id=student_id, status=status, retry_count=retry_count, error_message=error_message, cancelled=cancelled)
    if updated_at is not None:
      item.updated_at = updated_at
    session.add(item)
    await session.commit()
    return item.id


async def load_student(session_factory, student_id: uuid.UUID) -> Student:
  async with session_factory() as session:
    return await session.get(Student, student_id)


async def load_queue(session_factory, student_id: uuid.UUID) -> list[DeploymentQueueItem]:
  from sqlalchemy import select

  async with session_factory() as session:
    stmt = select(DeploymentQueueItem).where(DeploymentQueueItem.student_id == student_id).order_by(DeploymentQueueItem.created_at.asc())
    return list((await session.execute(stmt)).scalars().all())


async def create_staff(session_factory, *, firebase_uid: str = "staff-uid", email: str = "reviewer@folio.dev", is_active: bool = True) -> uuid.UUID:
  async with session_factory() as session:
    staff = StaffUser(firebase_uid=firebase_uid, email=email, full_name="Review Team", is_active=is_active)
    session.add(staff)
    await session.commit()
    return staff.id


async def set_tier_snapshot(session_factory, student_id: uuid.UUID, **values) -> None:
  """Overwrite frozen snapshot columns, simulating limits sold before a pricing change."""
  from sqlalchemy import update

  async with session_factory() as session:
    await session.execute(update(TierSnapshot).where(TierSnapshot.student_id == student_id).values(**values))
    await session.commit()

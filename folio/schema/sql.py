from __future__ import annotations

import datetime
import uuid
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from folio.core.database import Base, JSONType
from folio.schema.deployments import DeploymentQueueItem  # noqa: F401
from folio.schema.email_delivery_logs import EmailDeliveryLog  # noqa: F401


class Tier(str, Enum):
  STARTER = "starter"
  PROFESSIONAL = "professional"
  FLAGSHIP = "flagship"


class StudentStatus(str, Enum):
  SUBMITTED = "submitted"
  APPROVED = "approved"
  REJECTED = "rejected"
  EDITS_REQUESTED = "edits_requested"
  DEPLOYED = "deployed"
  ERROR = "error"


class ChangeRequestType(str, Enum):
  CONTENT_EDIT = "content_edit"
  LINK_UPDATE = "link_update"
  TEMPLATE_SWAP = "template_swap"
  REDESIGN = "redesign"


class ChangeRequestStatus(str, Enum):
  PENDING = "pending"
  APPROVED = "approved"
  COMPLETED = "completed"
  REJECTED = "rejected"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
  return [member.value for member in enum_cls]


def _utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


TierType = SAEnum(Tier, name="student_tier", values_callable=_enum_values)


class Student(Base):
  __tablename__ = "students"
  __table_args__ = (
    UniqueConstraint("email", name="uq_students_email"),
    UniqueConstraint("subdomain", name="uq_students_subdomain"),
    UniqueConstraint("payment_reference", name="uq_students_payment_reference"),
  )

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  name: Mapped[str] = mapped_column(String, nullable=False)
  email: Mapped[str] = mapped_column(String, nullable=False, index=True)
  tier: Mapped[Tier] = mapped_column(TierType, nullable=False)
  status: Mapped[StudentStatus] = mapped_column(SAEnum(StudentStatus, name="student_status", values_callable=_enum_values), default=StudentStatus.SUBMITTED, nullable=False, index=True)
  # Bumped by every guarded transition so readers can detect concurrent changes.
  status_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
  subdomain: Mapped[str] = mapped_column(String, nullable=False)
  custom_domain: Mapped[str | None] = mapped_column(String, nullable=True)
  payment_reference: Mapped[str] = mapped_column(String, nullable=False)
  payment_customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payment_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
  rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  refund_id: Mapped[str | None] = mapped_column(String, nullable=True)
  refund_failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  edit_instructions: Mapped[list | None] = mapped_column(JSONType, nullable=True)
  # Staff-facing diagnostics only; never shown to students.
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow)

  profile: Mapped[Profile | None] = relationship(back_populates="student", uselist=False, cascade="all, delete-orphan")
  projects: Mapped[list[Project]] = relationship(back_populates="student", order_by="Project.position", cascade="all, delete-orphan")
  experiences: Mapped[list[Experience]] = relationship(back_populates="student", order_by="Experience.position", cascade="all, delete-orphan")
  social_links: Mapped[SocialLinks | None] = relationship(back_populates="student", uselist=False, cascade="all, delete-orphan")
  assets: Mapped[Assets | None] = relationship(back_populates="student", uselist=False, cascade="all, delete-orphan")
  tier_snapshot: Mapped[TierSnapshot | None] = relationship(back_populates="student", uselist=False, cascade="all, delete-orphan")


class Profile(Base):
  __tablename__ = "profiles"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False)
  bio: Mapped[str] = mapped_column(Text, nullable=False)
  tech_stack: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
  skills: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

  student: Mapped[Student] = relationship(back_populates="profile")


class Project(Base):
  __tablename__ = "projects"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  tech_stack: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
  github_url: Mapped[str | None] = mapped_column(String, nullable=True)
  live_url: Mapped[str | None] = mapped_column(String, nullable=True)

  student: Mapped[Student] = relationship(back_populates="projects")


class Experience(Base):
  __tablename__ = "experiences"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  organization: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False)
  start_date: Mapped[str] = mapped_column(String, nullable=False)
  end_date: Mapped[str | None] = mapped_column(String, nullable=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)

  student: Mapped[Student] = relationship(back_populates="experiences")


class SocialLinks(Base):
  __tablename__ = "social_links"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False)
  github: Mapped[str | None] = mapped_column(String, nullable=True)
  linkedin: Mapped[str | None] = mapped_column(String, nullable=True)
  existing_portfolio: Mapped[str | None] = mapped_column(String, nullable=True)

  student: Mapped[Student] = relationship(back_populates="social_links")


class Assets(Base):
  __tablename__ = "assets"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False)
  profile_photo_url: Mapped[str | None] = mapped_column(String, nullable=True)
  resume_url: Mapped[str | None] = mapped_column(String, nullable=True)

  student: Mapped[Student] = relationship(back_populates="assets")


class TierSnapshot(Base):
  """Tier limits frozen at submission time; never updated afterwards."""

  __tablename__ = "tier_limits_snapshots"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False)
  tier: Mapped[Tier] = mapped_column(TierType, nullable=False)
  max_projects: Mapped[int] = mapped_column(Integer, nullable=False)
  custom_domain_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)
  analytics_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)
  allowed_templates: Mapped[list] = mapped_column(JSONType, nullable=False)
  price_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

  student: Mapped[Student] = relationship(back_populates="tier_snapshot")


class ChangeRequest(Base):
  __tablename__ = "change_requests"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
  type: Mapped[ChangeRequestType] = mapped_column(SAEnum(ChangeRequestType, name="change_request_type", values_callable=_enum_values), nullable=False)
  status: Mapped[ChangeRequestStatus] = mapped_column(SAEnum(ChangeRequestStatus, name="change_request_status", values_callable=_enum_values), default=ChangeRequestStatus.PENDING, nullable=False, index=True)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
  amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
  admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow)


class StaffUser(Base):
  __tablename__ = "staff_users"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  firebase_uid: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
  full_name: Mapped[str | None] = mapped_column(String, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())


class PaymentWebhookEvent(Base):
  """Provider event ids already reconciled; a second delivery of the same id is a no-op."""

  __tablename__ = "payment_webhook_events"

  event_id: Mapped[str] = mapped_column(String, primary_key=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  payment_reference: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  outcome: Mapped[str] = mapped_column(String, nullable=False)
  received_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

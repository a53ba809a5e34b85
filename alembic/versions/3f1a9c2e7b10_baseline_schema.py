"""baseline_schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-17 09:12:44.103512

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

student_tier = postgresql.ENUM("starter", "professional", "flagship", name="student_tier", create_type=False)
student_status = postgresql.ENUM("submitted", "approved", "rejected", "edits_requested", "deployed", "error", name="student_status", create_type=False)
deployment_status = postgresql.ENUM("queued", "processing", "completed", "failed", name="deployment_status", create_type=False)
change_request_type = postgresql.ENUM("content_edit", "link_update", "template_swap", "redesign", name="change_request_type", create_type=False)
change_request_status = postgresql.ENUM("pending", "approved", "completed", "rejected", name="change_request_status", create_type=False)

_ENUMS = (student_tier, student_status, deployment_status, change_request_type, change_request_status)


def _jsonb() -> postgresql.JSONB:
  return postgresql.JSONB(astext_type=sa.Text())


def _student_fk() -> sa.Column:
  return sa.Column("student_id", sa.Uuid(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False)


def upgrade() -> None:
  """Upgrade schema."""
  bind = op.get_bind()
  for enum in _ENUMS:
    enum.create(bind, checkfirst=True)

  op.create_table(
    "students",
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("tier", student_tier, nullable=False),
    sa.Column("status", student_status, nullable=False),
    sa.Column("status_version", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("subdomain", sa.String(), nullable=False),
    sa.Column("custom_domain", sa.String(), nullable=True),
    sa.Column("payment_reference", sa.String(), nullable=False),
    sa.Column("payment_customer_id", sa.String(), nullable=True),
    sa.Column("payment_required", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("rejection_reason", sa.Text(), nullable=True),
    sa.Column("refund_id", sa.String(), nullable=True),
    sa.Column("refund_failure_reason", sa.Text(), nullable=True),
    sa.Column("edit_instructions", _jsonb(), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.UniqueConstraint("email", name="uq_students_email"),
    sa.UniqueConstraint("subdomain", name="uq_students_subdomain"),
    sa.UniqueConstraint("payment_reference", name="uq_students_payment_reference"),
  )
  op.create_index("ix_students_email", "students", ["email"])
  op.create_index("ix_students_status", "students", ["status"])

  op.create_table(
    "profiles",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("bio", sa.Text(), nullable=False),
    sa.Column("tech_stack", _jsonb(), nullable=False),
    sa.Column("skills", _jsonb(), nullable=False),
    sa.UniqueConstraint("student_id"),
  )

  op.create_table(
    "projects",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("tech_stack", _jsonb(), nullable=False),
    sa.Column("github_url", sa.String(), nullable=True),
    sa.Column("live_url", sa.String(), nullable=True),
  )
  op.create_index("ix_projects_student_id", "projects", ["student_id"])

  op.create_table(
    "experiences",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("organization", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("start_date", sa.String(), nullable=False),
    sa.Column("end_date", sa.String(), nullable=True),
    sa.Column("description", sa.Text(), nullable=True),
  )
  op.create_index("ix_experiences_student_id", "experiences", ["student_id"])

  op.create_table(
    "social_links",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("github", sa.String(), nullable=True),
    sa.Column("linkedin", sa.String(), nullable=True),
    sa.Column("existing_portfolio", sa.String(), nullable=True),
    sa.UniqueConstraint("student_id"),
  )

  op.create_table(
    "assets",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("profile_photo_url", sa.String(), nullable=True),
    sa.Column("resume_url", sa.String(), nullable=True),
    sa.UniqueConstraint("student_id"),
  )

  op.create_table(
    "tier_limits_snapshots",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("tier", student_tier, nullable=False),
    sa.Column("max_projects", sa.Integer(), nullable=False),
    sa.Column("custom_domain_allowed", sa.Boolean(), nullable=False),
    sa.Column("analytics_allowed", sa.Boolean(), nullable=False),
    sa.Column("allowed_templates", _jsonb(), nullable=False),
    sa.Column("price_minor_units", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.UniqueConstraint("student_id"),
  )

  op.create_table(
    "deployment_queue",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("status", deployment_status, nullable=False),
    sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("deployment_url", sa.String(), nullable=True),
    sa.Column("hosting_project_id", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_deployment_queue_student_id", "deployment_queue", ["student_id"])
  op.create_index("ix_deployment_queue_status_created_at", "deployment_queue", ["status", "created_at"])

  op.create_table(
    "change_requests",
    sa.Column("id", sa.Uuid(), primary_key=True),
    _student_fk(),
    sa.Column("type", change_request_type, nullable=False),
    sa.Column("status", change_request_status, nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("admin_notes", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
  )
  op.create_index("ix_change_requests_student_id", "change_requests", ["student_id"])
  op.create_index("ix_change_requests_status", "change_requests", ["status"])

  op.create_table(
    "staff_users",
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("firebase_uid", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("full_name", sa.String(), nullable=True),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    sa.UniqueConstraint("email"),
  )
  op.create_index("ix_staff_users_firebase_uid", "staff_users", ["firebase_uid"], unique=True)

  op.create_table(
    "payment_webhook_events",
    sa.Column("event_id", sa.String(), primary_key=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("payment_reference", sa.String(), nullable=True),
    sa.Column("outcome", sa.String(), nullable=False),
    sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
  )
  op.create_index("ix_payment_webhook_events_payment_reference", "payment_webhook_events", ["payment_reference"])

  op.create_table(
    "email_delivery_logs",
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("student_id", sa.Uuid(), sa.ForeignKey("students.id", ondelete="SET NULL"), nullable=True),
    sa.Column("to_address", sa.String(), nullable=False),
    sa.Column("template_id", sa.String(), nullable=False),
    sa.Column("placeholders", _jsonb(), nullable=False),
    sa.Column("provider", sa.String(), nullable=False),
    sa.Column("provider_message_id", sa.String(), nullable=True),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
  )
  op.create_index("ix_email_delivery_logs_student_id", "email_delivery_logs", ["student_id"])
  op.create_index("ix_email_delivery_logs_to_address", "email_delivery_logs", ["to_address"])
  op.create_index("ix_email_delivery_logs_template_id", "email_delivery_logs", ["template_id"])


def downgrade() -> None:
  """Downgrade schema."""
  for table in (
    "email_delivery_logs",
    "payment_webhook_events",
    "staff_users",
    "change_requests",
    "deployment_queue",
    "tier_limits_snapshots",
    "assets",
    "social_links",
    "experiences",
    "projects",
    "profiles",
    "students",
  ):
    op.drop_table(table)

  bind = op.get_bind()
  for enum in reversed(_ENUMS):
    enum.drop(bind, checkfirst=True)

"""Request payloads for onboarding submissions and student edits."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from folio.schema.sql import Tier

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so the API accepts frontend-style payloads."""
  parts = string.split("_")
  if not parts:
    return string
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


def _clean_list(values: list[str]) -> list[str]:
  return [value.strip() for value in values if value and value.strip()]


class _CamelModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore", alias_generator=_to_camel, str_strip_whitespace=True)


class ProfileInput(_CamelModel):
  role: str = Field(..., min_length=1, description="Role label used to pick the portfolio template, e.g. 'Data Scientist'.")
  bio: str = Field(..., min_length=1)
  tech_stack: list[str] = Field(default_factory=list)
  skills: list[str] = Field(default_factory=list)

  @field_validator("tech_stack", "skills")
  @classmethod
  def _strip_blank(cls, value: list[str]) -> list[str]:
    return _clean_list(value)


class ProjectInput(_CamelModel):
  title: str = Field(..., min_length=1)
  description: str = Field(..., min_length=1)
  tech_stack: list[str] = Field(default_factory=list)
  github_url: str | None = None
  live_url: str | None = None

  @field_validator("tech_stack")
  @classmethod
  def _strip_blank(cls, value: list[str]) -> list[str]:
    return _clean_list(value)


class ExperienceInput(_CamelModel):
  organization: str = Field(..., min_length=1)
  role: str = Field(..., min_length=1)
  start_date: str = Field(..., min_length=1)
  end_date: str | None = None
  description: str | None = None


class SocialLinksInput(_CamelModel):
  github: str | None = None
  linkedin: str | None = None
  existing_portfolio: str | None = None


class AssetsInput(_CamelModel):
  profile_photo_url: str | None = None
  resume_url: str | None = None


class _ContactFields(_CamelModel):
  @field_validator("email", check_fields=False)
  @classmethod
  def _validate_email(cls, value: str | None) -> str | None:
    if value is None:
      return value
    normalized = value.strip().lower()
    if not _EMAIL_RE.match(normalized):
      raise ValueError("Invalid email address.")
    return normalized


class SubmissionCreate(_ContactFields):
  """Full onboarding form, sent once payment has been confirmed client-side."""

  payment_intent_id: str = Field(..., min_length=1)
  tier: Tier
  name: str = Field(..., min_length=1, max_length=200)
  email: str
  profile: ProfileInput
  projects: list[ProjectInput] = Field(default_factory=list)
  experiences: list[ExperienceInput] = Field(default_factory=list)
  social_links: SocialLinksInput = Field(default_factory=SocialLinksInput)
  assets: AssetsInput = Field(default_factory=AssetsInput)
  custom_domain: str | None = None


class SubmissionUpdate(_ContactFields):
  """Partial edit; every supplied collection replaces the stored one wholesale."""

  name: str | None = Field(default=None, min_length=1, max_length=200)
  email: str | None = None
  profile: ProfileInput | None = None
  projects: list[ProjectInput] | None = None
  experiences: list[ExperienceInput] | None = None
  social_links: SocialLinksInput | None = None
  assets: AssetsInput | None = None


class PaymentIntentCreate(_CamelModel):
  tier: Tier
  email: str | None = None


class RepaymentRequest(_CamelModel):
  payment_intent_id: str = Field(..., min_length=1)

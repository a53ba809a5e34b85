"""Tier entitlements and server-side limit enforcement.

Limits are read from the static table below at submission time and frozen into a
`TierSnapshot` row, so later edits to this table never change what an existing
student was sold.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from folio.schema.sql import Tier, TierSnapshot

# Stored in `tier_limits_snapshots.max_projects` when a tier has no project cap.
UNLIMITED_PROJECTS_SENTINEL = 999

TEMPLATE_DEVELOPER = "developer"
TEMPLATE_DATA_SCIENTIST = "data-scientist"
TEMPLATE_DEVOPS = "devops"
ALL_TEMPLATES = (TEMPLATE_DEVELOPER, TEMPLATE_DATA_SCIENTIST, TEMPLATE_DEVOPS)


@dataclass(frozen=True)
class TierLimits:
  max_projects: int | None
  custom_domain_allowed: bool
  analytics_allowed: bool
  allowed_templates: tuple[str, ...]
  price_minor_units: int


@dataclass(frozen=True)
class TierCheck:
  valid: bool
  errors: list[str] = field(default_factory=list)


TIER_LIMITS: dict[Tier, TierLimits] = {
  Tier.STARTER: TierLimits(max_projects=3, custom_domain_allowed=False, analytics_allowed=False, allowed_templates=(TEMPLATE_DEVELOPER,), price_minor_units=12900),
  Tier.PROFESSIONAL: TierLimits(max_projects=None, custom_domain_allowed=True, analytics_allowed=True, allowed_templates=ALL_TEMPLATES, price_minor_units=22900),
  Tier.FLAGSHIP: TierLimits(max_projects=None, custom_domain_allowed=True, analytics_allowed=True, allowed_templates=ALL_TEMPLATES, price_minor_units=49900),
}


def _coerce_tier(tier: Tier | str) -> Tier:
  try:
    return Tier(tier)
  except ValueError as exc:
    raise ValueError(f"Unknown tier: {tier}") from exc


def get_tier_limits(tier: Tier | str) -> TierLimits:
  return TIER_LIMITS[_coerce_tier(tier)]


def get_tier_price(tier: Tier | str) -> int:
  """Return the tier price in minor currency units."""
  return get_tier_limits(tier).price_minor_units


def can_use_custom_domain(tier: Tier | str) -> bool:
  return get_tier_limits(tier).custom_domain_allowed


def can_access_analytics(tier: Tier | str) -> bool:
  return get_tier_limits(tier).analytics_allowed


def is_template_allowed(tier: Tier | str, template: str) -> bool:
  return template in get_tier_limits(tier).allowed_templates


def remaining_projects(tier: Tier | str, current_count: int) -> int | None:
  """Return how many more projects fit, or None when the tier is unlimited."""
  max_projects = get_tier_limits(tier).max_projects
  if max_projects is None:
    return None
  return max(0, max_projects - current_count)


def snapshot_limits(snapshot: TierSnapshot) -> TierLimits:
  """Rebuild limits from a frozen snapshot row."""
  max_projects = None if snapshot.max_projects >= UNLIMITED_PROJECTS_SENTINEL else snapshot.max_projects
  return TierLimits(
    max_projects=max_projects,
    custom_domain_allowed=snapshot.custom_domain_allowed,
    analytics_allowed=snapshot.analytics_allowed,
    allowed_templates=tuple(snapshot.allowed_templates or ()),
    price_minor_units=snapshot.price_minor_units,
  )


def limits_for_student(tier: Tier | str, snapshot: TierSnapshot | None) -> TierLimits:
  """Limits a student was sold; rows created before snapshots existed fall back to the live table."""
  if snapshot is not None:
    return snapshot_limits(snapshot)
  return get_tier_limits(tier)


def enforce_tier_limits(
  tier: Tier | str, *, project_count: int, custom_domain: str | None = None, template: str | None = None, limits: TierLimits | None = None
) -> TierCheck:
  """Check a submission against its tier; the client-side UI is never trusted for this.

  Pass `limits` to check against a student's frozen snapshot instead of the live table.
  """
  resolved = _coerce_tier(tier)
  if limits is None:
    limits = TIER_LIMITS[resolved]
  errors: list[str] = []

  if limits.max_projects is not None and project_count > limits.max_projects:
    errors.append(f"Maximum {limits.max_projects} projects allowed for {resolved.value} tier")

  if custom_domain and not limits.custom_domain_allowed:
    errors.append("Custom domains not available for this tier")

  if template and template not in limits.allowed_templates:
    errors.append(f"Template '{template}' not available for {resolved.value} tier")

  return TierCheck(valid=not errors, errors=errors)


def create_tier_snapshot(tier: Tier | str) -> dict[str, object]:
  """Build the column values for a `TierSnapshot` row."""
  resolved = _coerce_tier(tier)
  limits = TIER_LIMITS[resolved]
  return {
    "tier": resolved,
    "max_projects": limits.max_projects if limits.max_projects is not None else UNLIMITED_PROJECTS_SENTINEL,
    "custom_domain_allowed": limits.custom_domain_allowed,
    "analytics_allowed": limits.analytics_allowed,
    "allowed_templates": list(limits.allowed_templates),
    "price_minor_units": limits.price_minor_units,
  }

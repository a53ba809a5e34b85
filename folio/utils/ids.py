"""Identifier and subdomain slug utilities."""

from __future__ import annotations

import re
import secrets
import string

SUBDOMAIN_MAX_LENGTH = 30
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def generate_suffix(size: int = 4) -> str:
  """Return a short random lowercase suffix for disambiguating slugs."""
  return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(size))


def slugify_subdomain(name: str) -> str:
  """Lowercase a display name into a DNS-safe label of at most 30 characters."""
  slug = _NON_SLUG_RE.sub("-", name.lower()).strip("-")
  slug = slug[:SUBDOMAIN_MAX_LENGTH].rstrip("-")
  return slug or "portfolio"


def with_suffix(slug: str, suffix: str | None = None) -> str:
  """Append `-xxxx`, trimming the base so the label stays within the length cap."""
  suffix = suffix or generate_suffix()
  base = slug[: SUBDOMAIN_MAX_LENGTH - len(suffix) - 1].rstrip("-")
  return f"{base}-{suffix}"

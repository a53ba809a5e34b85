"""Advisory content checks surfaced to reviewers next to each pending submission."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

MIN_BIO_WORDS = 40
MIN_PROJECT_DESCRIPTION_WORDS = 20

# Case-insensitive substrings; "tested" and "xxxx1" count as placeholder text.
PLACEHOLDER_MARKERS = ("lorem ipsum", "placeholder", "test", "xxx", "sample")

OUTCOME_KEYWORDS = ("improved", "reduced", "increased", "learned", "result", "outcome", "impact")


@dataclass(frozen=True)
class QualityReport:
  valid: bool
  errors: list[str] = field(default_factory=list)


def count_words(text: str | None) -> int:
  if not text:
    return 0
  return len(text.split())


def _field(project: Any, name: str) -> Any:
  """Read a project attribute from an ORM row, a pydantic model or a plain dict."""
  if isinstance(project, dict):
    camel = re.sub(r"_([a-z])", lambda match: match.group(1).upper(), name)
    return project.get(name, project.get(camel))
  return getattr(project, name, None)


def _project_errors(index: int, project: Any) -> list[str]:
  errors: list[str] = []
  label = f"Project {index}"
  description = _field(project, "description") or ""

  if count_words(description) < MIN_PROJECT_DESCRIPTION_WORDS:
    errors.append(f"{label}: Description too short")

  if not _field(project, "tech_stack"):
    errors.append(f"{label}: No technologies listed")

  lowered = description.lower()
  if not any(keyword in lowered for keyword in OUTCOME_KEYWORDS):
    errors.append(f"{label}: Add outcome or learning")

  return errors


def validate_submission_quality(bio: str | None, projects: Sequence[Any]) -> QualityReport:
  """Score a bio and its projects against minimum content heuristics."""
  errors: list[str] = []

  bio_words = count_words(bio)
  if bio_words < MIN_BIO_WORDS:
    errors.append(f"Bio too short ({bio_words} words, min {MIN_BIO_WORDS})")

  if bio and any(marker in bio.lower() for marker in PLACEHOLDER_MARKERS):
    errors.append("Bio contains placeholder text")

  if not projects:
    errors.append("At least one project required")

  for index, project in enumerate(projects, start=1):
    errors.extend(_project_errors(index, project))

  return QualityReport(valid=not errors, errors=errors)

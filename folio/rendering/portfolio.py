"""Portfolio rendering behind a `render(variant, data) -> str` contract.

The worker only depends on `PortfolioRenderer`; the HTML produced here is a
plain single-page layout with one accent palette per template variant.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Protocol

from folio.services.tiers import TEMPLATE_DATA_SCIENTIST, TEMPLATE_DEVELOPER, TEMPLATE_DEVOPS

_ROLE_TEMPLATES = {"developer": TEMPLATE_DEVELOPER, "data scientist": TEMPLATE_DATA_SCIENTIST, "devops": TEMPLATE_DEVOPS}

_ACCENTS = {TEMPLATE_DEVELOPER: "#2563eb", TEMPLATE_DATA_SCIENTIST: "#7c3aed", TEMPLATE_DEVOPS: "#059669"}


@dataclass(frozen=True)
class ProjectData:
  title: str
  description: str
  tech_stack: tuple[str, ...] = ()
  github_url: str | None = None
  live_url: str | None = None


@dataclass(frozen=True)
class ExperienceData:
  organization: str
  role: str
  start_date: str
  end_date: str | None = None
  description: str | None = None


@dataclass(frozen=True)
class PortfolioData:
  """Everything a template needs; assembled by the deployment worker."""

  name: str
  email: str
  role: str
  bio: str
  tech_stack: tuple[str, ...] = ()
  skills: tuple[str, ...] = ()
  projects: tuple[ProjectData, ...] = ()
  experiences: tuple[ExperienceData, ...] = ()
  links: dict[str, str] = field(default_factory=dict)
  profile_photo_url: str | None = None
  resume_url: str | None = None


class PortfolioRenderer(Protocol):
  def render(self, variant: str, data: PortfolioData) -> str:
    """Render a complete HTML document for a template variant."""


def select_template(role: str | None) -> str:
  """Map a profile role to a template variant, defaulting to the developer layout."""
  return _ROLE_TEMPLATES.get((role or "").strip().lower(), TEMPLATE_DEVELOPER)


def _e(value: str | None) -> str:
  return html.escape(value or "", quote=True)


def _chips(items: tuple[str, ...]) -> str:
  return "".join(f'<span class="chip">{_e(item)}</span>' for item in items)


def _project_html(project: ProjectData) -> str:
  links = []
  if project.github_url:
    links.append(f'<a href="{_e(project.github_url)}">Source</a>')
  if project.live_url:
    links.append(f'<a href="{_e(project.live_url)}">Live</a>')
  return f'<article class="card"><h3>{_e(project.title)}</h3><p>{_e(project.description)}</p><div>{_chips(project.tech_stack)}</div><p class="links">{" ".join(links)}</p></article>'


def _experience_html(item: ExperienceData) -> str:
  period = f"{_e(item.start_date)} - {_e(item.end_date) or 'Present'}"
  return f'<li><strong>{_e(item.role)}</strong>, {_e(item.organization)} <span class="muted">{period}</span><p>{_e(item.description)}</p></li>'


class HtmlPortfolioRenderer(PortfolioRenderer):
  def render(self, variant: str, data: PortfolioData) -> str:
    accent = _ACCENTS.get(variant, _ACCENTS[TEMPLATE_DEVELOPER])
    photo = f'<img class="avatar" src="{_e(data.profile_photo_url)}" alt="{_e(data.name)}">' if data.profile_photo_url else ""
    resume = f'<a class="button" href="{_e(data.resume_url)}">Resume</a>' if data.resume_url else ""
    links = " ".join(f'<a href="{_e(url)}">{_e(label.replace("_", " ").title())}</a>' for label, url in sorted(data.links.items()) if url)
    projects = "".join(_project_html(project) for project in data.projects)
    experience = "".join(_experience_html(item) for item in data.experiences)
    experience_section = f"<section><h2>Experience</h2><ul>{experience}</ul></section>" if experience else ""

    return (
      "<!DOCTYPE html>"
      f'<html lang="en" data-template="{_e(variant)}"><head><meta charset="utf-8">'
      '<meta name="viewport" content="width=device-width, initial-scale=1">'
      f"<title>{_e(data.name)} | {_e(data.role)}</title>"
      f"<style>:root{{--accent:{accent}}}body{{font-family:system-ui,sans-serif;margin:0 auto;max-width:880px;padding:2rem;color:#111}}"
      "h1,h2{color:var(--accent)}.chip{display:inline-block;border:1px solid var(--accent);border-radius:999px;padding:0 .6rem;margin:.15rem;font-size:.85rem}"
      ".card{border:1px solid #e5e7eb;border-radius:8px;padding:1rem;margin:1rem 0}.avatar{width:96px;height:96px;border-radius:50%}.muted{color:#6b7280}</style></head>"
      f"<body><header>{photo}<h1>{_e(data.name)}</h1><p>{_e(data.role)}</p><p>{links} {resume}</p></header>"
      f"<section><h2>About</h2><p>{_e(data.bio)}</p><div>{_chips(data.tech_stack + data.skills)}</div></section>"
      f"<section><h2>Projects</h2>{projects}</section>{experience_section}"
      f'<footer><a href="mailto:{_e(data.email)}">{_e(data.email)}</a></footer></body></html>'
    )

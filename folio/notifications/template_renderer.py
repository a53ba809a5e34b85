"""Email template rendering.

Templates live on disk next to this module as `<template_id>.html` and
`<template_id>.txt`; `{{placeholders}}` are HTML-escaped in the HTML part only.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")
_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


@dataclass(frozen=True)
class NotificationTemplate:
  template_id: str
  subject_template: str
  required_placeholders: frozenset[str]


def _template(template_id: str, subject: str, *placeholders: str) -> NotificationTemplate:
  return NotificationTemplate(template_id=template_id, subject_template=subject, required_placeholders=frozenset(("greeting", *placeholders)))


TEMPLATES: dict[str, NotificationTemplate] = {
  template.template_id: template
  for template in (
    _template("submission_received_v1", "We received your portfolio submission", "tier_label", "dashboard_url"),
    _template("submission_approved_v1", "Your portfolio has been approved", "site_url"),
    _template("portfolio_live_v1", "Your portfolio is live", "live_url"),
    _template("submission_rejected_v1", "Update on your portfolio submission", "reason", "refund_note"),
    _template("edits_requested_v1", "Edits requested for your portfolio", "edit_items", "dashboard_url"),
    _template("refund_processed_v1", "Your payment has been refunded", "support_email"),
  )
}


def render_email_template(*, template_id: str, placeholders: dict[str, Any]) -> tuple[str, str, str]:
  """Render subject/text/html for a template id."""
  template = TEMPLATES.get(template_id)
  if template is None:
    raise ValueError(f"Unknown notification template: {template_id}")

  missing = sorted(template.required_placeholders - set(placeholders))
  if missing:
    raise ValueError(f"Missing placeholders for template '{template_id}': {', '.join(missing)}")

  subject = _render_text(template.subject_template, placeholders=placeholders, escape_html=False)
  text_body = _render_text(_load_template_file(f"{template_id}.txt"), placeholders=placeholders, escape_html=False)
  html_body = _render_text(_load_template_file(f"{template_id}.html"), placeholders=placeholders, escape_html=True)
  return subject, text_body, html_body


def _render_text(raw_template: str, *, placeholders: dict[str, Any], escape_html: bool) -> str:
  def _replace(match: re.Match[str]) -> str:
    value = placeholders.get(match.group(1))
    rendered = "" if value is None else str(value)
    return html.escape(rendered, quote=True) if escape_html else rendered

  return _PLACEHOLDER_RE.sub(_replace, raw_template)


@lru_cache(maxsize=16)
def _load_template_file(filename: str) -> str:
  return (_TEMPLATE_DIR / filename).read_text(encoding="utf-8")

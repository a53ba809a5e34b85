"""Contracts for publishing rendered portfolios to a static hosting provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class HostingProviderError(Exception):
  """Raised when the hosting provider rejects a call or cannot be reached."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


@dataclass(frozen=True)
class PublishedSite:
  project_id: str
  deployment_id: str
  url: str
  aliases: tuple[str, ...] = ()


class HostingClient(Protocol):
  async def publish(self, *, subdomain: str, html: str, extra_domains: tuple[str, ...] = ()) -> PublishedSite:
    """Create or reuse the project for a subdomain, deploy `index.html` and alias domains."""

  async def delete_project(self, *, subdomain: str) -> bool:
    """Remove the hosting project for a subdomain; False when nothing existed."""

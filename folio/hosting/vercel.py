"""Vercel deployment client built on httpx."""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from folio.config import Settings
from folio.hosting.contracts import HostingClient, HostingProviderError, PublishedSite

logger = logging.getLogger(__name__)


class VercelHostingClient(HostingClient):
  """Publish single-page portfolios as Vercel projects named `<prefix>-<subdomain>`."""

  def __init__(self, *, token: str, site_domain: str, project_prefix: str = "folio", team_id: str | None = None, api_base: str = "https://api.vercel.com", timeout_seconds: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._token = token
    self._site_domain = site_domain
    self._project_prefix = project_prefix
    self._team_id = team_id
    self._api_base = api_base.rstrip("/")
    self._timeout = httpx.Timeout(timeout_seconds)
    self._transport = transport

  def project_name(self, subdomain: str) -> str:
    return f"{self._project_prefix}-{subdomain}"

  def _build_client(self) -> httpx.AsyncClient:
    params = {"teamId": self._team_id} if self._team_id else None
    return httpx.AsyncClient(base_url=self._api_base, headers={"Authorization": f"Bearer {self._token}"}, params=params, timeout=self._timeout, transport=self._transport, trust_env=False)

  async def _call(self, client: httpx.AsyncClient, method: str, path: str, *, json: dict[str, Any] | None = None) -> httpx.Response:
    try:
      return await client.request(method, path, json=json)
    except httpx.RequestError as exc:
      raise HostingProviderError(f"Hosting provider unreachable: {exc}") from exc

  async def _ensure_project(self, client: httpx.AsyncClient, subdomain: str) -> str:
    """Create the project, or look up the existing one when the name is taken."""
    name = self.project_name(subdomain)
    response = await self._call(client, "POST", "/v10/projects", json={"name": name, "framework": None})
    if response.status_code == 409:
      logger.info("Hosting project %s already exists; reusing it", name)
      response = await self._call(client, "GET", f"/v9/projects/{name}")

    _raise_for_status(response, f"ensure project {name}")
    project_id = response.json().get("id")
    if not project_id:
      raise HostingProviderError(f"Project response for {name} missing id")
    return str(project_id)

  async def _deploy(self, client: httpx.AsyncClient, subdomain: str, html: str) -> dict[str, Any]:
    encoded = base64.b64encode(html.encode("utf-8")).decode("ascii")
    payload = {
      "name": self.project_name(subdomain),
      "project": self.project_name(subdomain),
      "target": "production",
      "files": [{"file": "index.html", "data": encoded, "encoding": "base64"}],
      "projectSettings": {"framework": None},
      "routes": [{"src": "/(.*)", "dest": "/index.html"}],
    }
    response = await self._call(client, "POST", "/v13/deployments", json=payload)
    _raise_for_status(response, f"deploy {subdomain}")
    return response.json()

  async def _alias(self, client: httpx.AsyncClient, project_id: str, domain: str) -> bool:
    """Attach a domain to the project; failures are logged and reported as False."""
    try:
      response = await self._call(client, "POST", f"/v10/projects/{project_id}/domains", json={"name": domain})
    except HostingProviderError as exc:
      logger.warning("Domain alias %s failed: %s", domain, exc)
      return False

    # 409 means the domain is already attached to this project.
    if response.status_code in (200, 201, 409):
      return True
    logger.warning("Domain alias %s returned %s: %s", domain, response.status_code, response.text[:300])
    return False

  async def publish(self, *, subdomain: str, html: str, extra_domains: tuple[str, ...] = ()) -> PublishedSite:
    async with self._build_client() as client:
      project_id = await self._ensure_project(client, subdomain)
      deployment = await self._deploy(client, subdomain, html)

      primary_domain = f"{subdomain}.{self._site_domain}"
      aliases = []
      for domain in (primary_domain, *extra_domains):
        if await self._alias(client, project_id, domain):
          aliases.append(domain)

    return PublishedSite(project_id=project_id, deployment_id=str(deployment.get("id") or ""), url=f"https://{primary_domain}", aliases=tuple(aliases))

  async def delete_project(self, *, subdomain: str) -> bool:
    name = self.project_name(subdomain)
    async with self._build_client() as client:
      response = await self._call(client, "DELETE", f"/v9/projects/{name}")
    if response.status_code == 404:
      return False
    _raise_for_status(response, f"delete project {name}")
    return True


def _error_message(response: httpx.Response) -> str:
  try:
    body = response.json()
  except ValueError:
    return f"HTTP {response.status_code}"
  error = body.get("error") if isinstance(body, dict) else None
  if isinstance(error, dict) and error.get("message"):
    return str(error["message"])
  return f"HTTP {response.status_code}"


def _raise_for_status(response: httpx.Response, action: str) -> None:
  if response.status_code < 400:
    return
  message = _error_message(response)
  raise HostingProviderError(f"Failed to {action}: {message}", status_code=response.status_code)


def build_hosting_client(settings: Settings) -> VercelHostingClient:
  if not settings.vercel_token:
    raise RuntimeError("FOLIO_VERCEL_TOKEN is not configured.")
  return VercelHostingClient(
    token=settings.vercel_token, site_domain=settings.site_domain, project_prefix=settings.hosting_project_prefix, team_id=settings.vercel_team_id, api_base=settings.vercel_api_base, timeout_seconds=settings.vercel_timeout_seconds
  )

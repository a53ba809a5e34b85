"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from folio.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Folio service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  email_notifications_enabled: bool
  email_from_address: str | None
  email_from_name: str | None
  mailersend_api_key: str | None
  mailersend_timeout_seconds: int
  mailersend_base_url: str
  support_email: str
  stripe_secret_key: str | None
  stripe_webhook_secret: str | None
  stripe_api_base: str
  stripe_timeout_seconds: float
  stripe_webhook_tolerance_seconds: int
  currency: str
  vercel_token: str | None
  vercel_team_id: str | None
  vercel_api_base: str
  vercel_timeout_seconds: float
  hosting_project_prefix: str
  site_domain: str
  dashboard_url: str | None
  deploy_batch_size: int
  deploy_max_retries: int
  deploy_stale_after_seconds: int
  cron_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("FOLIO_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("FOLIO_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("FOLIO_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("FOLIO_ENV", "development").lower()
  debug = _parse_bool(os.getenv("FOLIO_DEBUG"))

  log_max_bytes = _positive_int("FOLIO_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("FOLIO_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("FOLIO_LOG_BACKUP_COUNT must be zero or a positive integer.")

  email_notifications_enabled = _parse_bool(os.getenv("FOLIO_EMAIL_NOTIFICATIONS_ENABLED"))
  email_from_address = _optional_str(os.getenv("FOLIO_EMAIL_FROM_ADDRESS"))
  mailersend_api_key = _optional_str(os.getenv("FOLIO_MAILERSEND_API_KEY"))
  mailersend_timeout_seconds = _positive_int("FOLIO_MAILERSEND_TIMEOUT_SECONDS", "10")

  # Email credentials are only required once delivery is switched on.
  if email_notifications_enabled:
    if not email_from_address:
      raise ValueError("FOLIO_EMAIL_FROM_ADDRESS must be set when email notifications are enabled.")

    if not mailersend_api_key:
      raise ValueError("FOLIO_MAILERSEND_API_KEY must be set when email notifications are enabled.")

  currency = (os.getenv("FOLIO_CURRENCY") or "myr").strip().lower()
  if len(currency) != 3:
    raise ValueError("FOLIO_CURRENCY must be a three-letter ISO currency code.")

  webhook_tolerance = _positive_int("FOLIO_STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300")
  deploy_batch_size = _positive_int("FOLIO_DEPLOY_BATCH_SIZE", "5")
  deploy_stale_after_seconds = _positive_int("FOLIO_DEPLOY_STALE_AFTER_SECONDS", "900")
  deploy_max_retries = int(os.getenv("FOLIO_DEPLOY_MAX_RETRIES", "2"))
  if deploy_max_retries < 0:
    raise ValueError("FOLIO_DEPLOY_MAX_RETRIES must be zero or a positive integer.")

  site_domain = (os.getenv("FOLIO_SITE_DOMAIN") or "folio.dev").strip().lower().strip(".")
  if not site_domain or "." not in site_domain:
    raise ValueError("FOLIO_SITE_DOMAIN must be a fully qualified domain name.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("FOLIO_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("FOLIO_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("FOLIO_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("FOLIO_PG_CONNECT_TIMEOUT", "5"),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    email_notifications_enabled=email_notifications_enabled,
    email_from_address=email_from_address,
    email_from_name=_optional_str(os.getenv("FOLIO_EMAIL_FROM_NAME")),
    mailersend_api_key=mailersend_api_key,
    mailersend_timeout_seconds=mailersend_timeout_seconds,
    mailersend_base_url=(os.getenv("FOLIO_MAILERSEND_BASE_URL") or "https://api.mailersend.com/v1").strip(),
    support_email=(os.getenv("FOLIO_SUPPORT_EMAIL") or "support@folio.dev").strip(),
    stripe_secret_key=_optional_str(os.getenv("FOLIO_STRIPE_SECRET_KEY")),
    stripe_webhook_secret=_optional_str(os.getenv("FOLIO_STRIPE_WEBHOOK_SECRET")),
    stripe_api_base=(os.getenv("FOLIO_STRIPE_API_BASE") or "https://api.stripe.com/v1").strip().rstrip("/"),
    stripe_timeout_seconds=float(os.getenv("FOLIO_STRIPE_TIMEOUT_SECONDS", "15")),
    stripe_webhook_tolerance_seconds=webhook_tolerance,
    currency=currency,
    vercel_token=_optional_str(os.getenv("FOLIO_VERCEL_TOKEN")),
    vercel_team_id=_optional_str(os.getenv("FOLIO_VERCEL_TEAM_ID")),
    vercel_api_base=(os.getenv("FOLIO_VERCEL_API_BASE") or "https://api.vercel.com").strip().rstrip("/"),
    vercel_timeout_seconds=float(os.getenv("FOLIO_VERCEL_TIMEOUT_SECONDS", "30")),
    hosting_project_prefix=(os.getenv("FOLIO_HOSTING_PROJECT_PREFIX") or "folio").strip(),
    site_domain=site_domain,
    dashboard_url=_optional_str(os.getenv("FOLIO_DASHBOARD_URL")),
    deploy_batch_size=deploy_batch_size,
    deploy_max_retries=deploy_max_retries,
    deploy_stale_after_seconds=deploy_stale_after_seconds,
    cron_secret=_optional_str(os.getenv("FOLIO_CRON_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Migrations and offline scripts should not need unrelated env vars.
  debug = _parse_bool(os.getenv("FOLIO_DEBUG"))
  pg_connect_timeout = _positive_int("FOLIO_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("FOLIO_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)

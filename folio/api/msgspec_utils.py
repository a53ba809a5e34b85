"""Utility helpers for msgspec response encoding on the larger staff listings."""

from __future__ import annotations

import datetime
import uuid
from typing import Any

import msgspec
from starlette.responses import Response


class ListResponse(msgspec.Struct):
  """Serialize list payloads using msgspec to avoid Pydantic conversions."""

  items: list[Any]
  total: int


class StudentRow(msgspec.Struct, rename="camel"):
  id: uuid.UUID
  name: str
  email: str
  tier: str
  status: str
  subdomain: str
  custom_domain: str | None
  rejection_reason: str | None
  refund_id: str | None
  refund_failure_reason: str | None
  payment_required: bool
  error_message: str | None
  created_at: datetime.datetime | None


class QueueRow(msgspec.Struct, rename="camel"):
  id: uuid.UUID
  student_id: uuid.UUID
  student_name: str
  subdomain: str
  status: str
  retry_count: int
  error_message: str | None
  deployment_url: str | None
  created_at: datetime.datetime | None
  completed_at: datetime.datetime | None


def encode_msgspec_response(payload: msgspec.Struct, *, status_code: int = 200) -> Response:
  """Encode a msgspec.Struct value as a JSON HTTP response."""
  encoded = msgspec.json.encode(payload)
  return Response(content=encoded, status_code=status_code, media_type="application/json")

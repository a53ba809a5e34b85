import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger("uvicorn.error")

# Unique constraint names mapped to messages a student can act on.
_INTEGRITY_MESSAGES = {
  "uq_students_email": "A submission with this email already exists.",
  "uq_students_subdomain": "That subdomain is already taken. Please try again.",
  "uq_students_payment_reference": "This payment has already been used for a submission.",
}


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a client-facing error body, tagged with the request id for support lookups."""
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def translate_integrity_error(exc: IntegrityError) -> str:
  """Map a unique-constraint violation to a user-facing message."""
  raw = str(getattr(exc, "orig", exc))
  for constraint, message in _INTEGRITY_MESSAGES.items():
    if constraint in raw:
      return message

  # sqlite reports columns instead of constraint names.
  lowered = raw.lower()
  if "students.email" in lowered:
    return _INTEGRITY_MESSAGES["uq_students_email"]
  if "students.subdomain" in lowered:
    return _INTEGRITY_MESSAGES["uq_students_subdomain"]
  if "students.payment_reference" in lowered:
    return _INTEGRITY_MESSAGES["uq_students_payment_reference"]
  return "This record conflicts with existing data."


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
  """Return 409 with a specific message for duplicate email, subdomain or payment."""
  request_id = getattr(request.state, "request_id", None)
  message = translate_integrity_error(exc)
  logger.warning("Integrity conflict request_id=%s path=%s message=%s", request_id, request.url.path, message)
  return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload(message, request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  from folio.config import get_settings

  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  # 5xx details stay in the logs; callers only see a generic message.
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError

from folio.api.routes import admin, change_requests, deployments, payments, students, submissions, webhooks
from folio.config import get_settings
from folio.core.exceptions import global_exception_handler, http_exception_handler, integrity_exception_handler, request_validation_exception_handler
from folio.core.lifespan import lifespan
from folio.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="folio-engine", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(
  CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length"]
)


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(IntegrityError, integrity_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(payments.router, prefix="/v1/payments", tags=["payments"])
app.include_router(submissions.router, prefix="/v1/submissions", tags=["submissions"])
app.include_router(students.router, prefix="/v1/students", tags=["students"])
app.include_router(change_requests.router, prefix="/v1/change-requests", tags=["change-requests"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(deployments.router, prefix="/internal/deployments", tags=["deployments"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

import datetime
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from folio.api.deps import get_deployment_worker, get_lifecycle
from folio.api.models import ChangeRequestRecord, ChangeRequestStatusUpdate, CustomDomainRequest, RejectRequest, RequestEditsRequest, lifecycle_response, status_for
from folio.api.msgspec_utils import ListResponse, QueueRow, StudentRow, encode_msgspec_response
from folio.core.database import get_db
from folio.core.security import get_current_staff
from folio.deployments.worker import DeploymentWorker
from folio.lifecycle.payment_events import list_recent_events
from folio.lifecycle.transitions import StudentLifecycle
from folio.schema.deployments import DeploymentStatus
from folio.schema.sql import ChangeRequestStatus, Student, StudentStatus
from folio.services import admin as admin_service
from folio.services.change_requests import list_change_requests, list_change_requests_with_students, update_change_request_status
from folio.storage import deployment_queue_repo as queue

router = APIRouter(dependencies=[Depends(get_current_staff)])


class PendingSubmissionRecord(BaseModel):
  id: uuid.UUID
  name: str
  email: str
  tier: str
  status: str
  subdomain: str
  created_at: datetime.datetime | None
  quality_valid: bool
  quality_errors: list[str]


class StaffChangeRequestRecord(ChangeRequestRecord):
  student_name: str
  student_email: str


class StatsResponse(BaseModel):
  total_students: int
  students_by_status: dict[str, int]
  queue_by_status: dict[str, int]
  pending_change_requests: int


class WebhookEventRecord(BaseModel):
  event_id: str
  event_type: str
  payment_reference: str | None
  outcome: str
  received_at: datetime.datetime | None


def _student_row(student: Student) -> StudentRow:
  return StudentRow(
    id=student.id,
    name=student.name,
    email=student.email,
    tier=student.tier.value,
    status=student.status.value,
    subdomain=student.subdomain,
    custom_domain=student.custom_domain,
    rejection_reason=student.rejection_reason,
    refund_id=student.refund_id,
    refund_failure_reason=student.refund_failure_reason,
    payment_required=student.payment_required,
    error_message=student.error_message,
    created_at=student.created_at,
  )


def _student_detail(student: Student) -> dict:
  """Full staff view including payment and refund diagnostics."""
  profile = student.profile
  snapshot = student.tier_snapshot
  return {
    "student": {
      "id": str(student.id),
      "name": student.name,
      "email": student.email,
      "tier": student.tier.value,
      "status": student.status.value,
      "statusVersion": student.status_version,
      "subdomain": student.subdomain,
      "customDomain": student.custom_domain,
      "paymentReference": student.payment_reference,
      "rejectionReason": student.rejection_reason,
      "refundId": student.refund_id,
      "refundFailureReason": student.refund_failure_reason,
      "editInstructions": list(student.edit_instructions or []),
      "paymentRequired": student.payment_required,
      "errorMessage": student.error_message,
      "createdAt": student.created_at.isoformat() if student.created_at else None,
    },
    "profile": {"role": profile.role, "bio": profile.bio, "techStack": list(profile.tech_stack or []), "skills": list(profile.skills or [])} if profile else None,
    "projects": [
      {"title": project.title, "description": project.description, "techStack": list(project.tech_stack or []), "githubUrl": project.github_url, "liveUrl": project.live_url} for project in student.projects
    ],
    "experiences": [
      {"organization": item.organization, "role": item.role, "startDate": item.start_date, "endDate": item.end_date, "description": item.description} for item in student.experiences
    ],
    "socialLinks": (
      {"github": student.social_links.github, "linkedin": student.social_links.linkedin, "existingPortfolio": student.social_links.existing_portfolio} if student.social_links else None
    ),
    "assets": {"profilePhotoUrl": student.assets.profile_photo_url, "resumeUrl": student.assets.resume_url} if student.assets else None,
    "tierSnapshot": (
      {
        "tier": snapshot.tier.value,
        "maxProjects": snapshot.max_projects,
        "customDomainAllowed": snapshot.custom_domain_allowed,
        "analyticsAllowed": snapshot.analytics_allowed,
        "allowedTemplates": list(snapshot.allowed_templates or []),
        "priceMinorUnits": snapshot.price_minor_units,
      }
      if snapshot
      else None
    ),
  }


@router.get("/submissions/pending", response_model=list[PendingSubmissionRecord])
async def list_pending(db: AsyncSession = Depends(get_db)) -> list[PendingSubmissionRecord]:  # noqa: B008
  """Reviewable submissions with advisory quality results."""
  pending = await admin_service.list_pending_submissions(db)
  return [
    PendingSubmissionRecord(
      id=entry.student.id,
      name=entry.student.name,
      email=entry.student.email,
      tier=entry.student.tier.value,
      status=entry.student.status.value,
      subdomain=entry.student.subdomain,
      created_at=entry.student.created_at,
      quality_valid=entry.quality.valid,
      quality_errors=entry.quality.errors,
    )
    for entry in pending
  ]


@router.get("/students")
async def list_all_students(
  status_filter: StudentStatus | None = Query(default=None, alias="status"),
  limit: int = Query(default=200, ge=1, le=1000),
  db: AsyncSession = Depends(get_db),  # noqa: B008
) -> Response:
  students = await admin_service.list_students(db, status=status_filter, limit=limit)
  items = [_student_row(student) for student in students]
  return encode_msgspec_response(ListResponse(items=items, total=len(items)))


@router.get("/students/{student_id}")
async def get_student_detail(student_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> dict:  # noqa: B008
  student = await admin_service.get_student_detail(db, student_id)
  if student is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
  detail = _student_detail(student)
  rows = await queue.list_items(db, student_id=student_id, limit=20)
  detail["deployments"] = [
    {"id": str(item.id), "status": item.status.value, "retryCount": item.retry_count, "errorMessage": item.error_message, "deploymentUrl": item.deployment_url}
    for item, _name, _subdomain in rows
  ]
  requests = await list_change_requests(db, student_id=student_id)
  detail["changeRequests"] = [ChangeRequestRecord.model_validate(request).model_dump(mode="json", by_alias=True) for request in requests]
  return detail


@router.get("/deployments")
async def list_deployments(
  status_filter: DeploymentStatus | None = Query(default=None, alias="status"),
  limit: int = Query(default=100, ge=1, le=500),
  db: AsyncSession = Depends(get_db),  # noqa: B008
) -> Response:
  rows = await queue.list_items(db, status=status_filter, limit=limit)
  items = [
    QueueRow(
      id=item.id,
      student_id=item.student_id,
      student_name=name,
      subdomain=subdomain,
      status=item.status.value,
      retry_count=item.retry_count,
      error_message=item.error_message,
      deployment_url=item.deployment_url,
      created_at=item.created_at,
      completed_at=item.completed_at,
    )
    for item, name, subdomain in rows
  ]
  return encode_msgspec_response(ListResponse(items=items, total=len(items)))


@router.get("/change-requests", response_model=list[StaffChangeRequestRecord], response_model_by_alias=True)
async def list_all_change_requests(
  status_filter: ChangeRequestStatus | None = Query(default=None, alias="status"),
  db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[StaffChangeRequestRecord]:
  rows = await list_change_requests_with_students(db, status=status_filter)
  return [
    StaffChangeRequestRecord.model_validate({**ChangeRequestRecord.model_validate(request).model_dump(), "student_name": name, "student_email": email}) for request, name, email in rows
  ]


@router.patch("/change-requests/{request_id}", response_model=ChangeRequestRecord, response_model_by_alias=True)
async def update_change_request(request_id: uuid.UUID, payload: ChangeRequestStatusUpdate, db: AsyncSession = Depends(get_db)) -> ChangeRequestRecord:  # noqa: B008
  result = await update_change_request_status(db, request_id, status=payload.status, admin_notes=payload.admin_notes)
  if not result.success:
    raise HTTPException(status_code=status_for(result.error_code), detail=result.error)
  return ChangeRequestRecord.model_validate(result.change_request)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(db: AsyncSession = Depends(get_db)) -> StatsResponse:  # noqa: B008
  stats = await admin_service.collect_stats(db)
  return StatsResponse(total_students=stats.total_students, students_by_status=stats.students_by_status, queue_by_status=stats.queue_by_status, pending_change_requests=stats.pending_change_requests)


@router.get("/webhook-events", response_model=list[WebhookEventRecord])
async def get_webhook_events(limit: int = Query(default=50, ge=1, le=500), db: AsyncSession = Depends(get_db)) -> list[WebhookEventRecord]:  # noqa: B008
  events = await list_recent_events(db, limit=limit)
  return [WebhookEventRecord(event_id=event.event_id, event_type=event.event_type, payment_reference=event.payment_reference, outcome=event.outcome, received_at=event.received_at) for event in events]


@router.put("/students/{student_id}/custom-domain")
async def set_custom_domain(student_id: uuid.UUID, payload: CustomDomainRequest, db: AsyncSession = Depends(get_db)) -> JSONResponse:  # noqa: B008
  result = await admin_service.update_custom_domain(db, student_id, custom_domain=payload.custom_domain)
  return lifecycle_response(result)


@router.post("/students/{student_id}/undeploy")
async def undeploy_student(student_id: uuid.UUID, worker: DeploymentWorker = Depends(get_deployment_worker)) -> dict:  # noqa: B008
  """Best-effort removal of the hosted site; never changes the student's status."""
  removed = await worker.undeploy(student_id)
  if not removed:
    return {"success": False, "error": "Hosting cleanup failed; see logs"}
  return {"success": True}


@router.post("/students/{student_id}/approve")
async def approve_student(
  student_id: uuid.UUID,
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  result = await lifecycle.approve(db, student_id)
  return lifecycle_response(result)


@router.post("/students/{student_id}/reject")
async def reject_student(
  student_id: uuid.UUID,
  payload: RejectRequest,
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  result = await lifecycle.reject(db, student_id, reason=payload.reason, should_refund=payload.should_refund)
  return lifecycle_response(result)


@router.post("/students/{student_id}/request-edits")
async def request_student_edits(
  student_id: uuid.UUID,
  payload: RequestEditsRequest,
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  result = await lifecycle.request_edits(db, student_id, items=payload.items)
  return lifecycle_response(result)


@router.post("/students/{student_id}/allow-resubmission")
async def allow_student_resubmission(
  student_id: uuid.UUID,
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  result = await lifecycle.allow_resubmission(db, student_id)
  return lifecycle_response(result)

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from folio.api.deps import get_lifecycle
from folio.api.models import StudentStatusResponse, lifecycle_response
from folio.config import Settings, get_settings
from folio.core.database import get_db
from folio.core.security import get_current_student
from folio.lifecycle.transitions import StudentLifecycle
from folio.schema.sql import Student
from folio.schema.submissions import RepaymentRequest, SubmissionUpdate
from folio.services.submissions import build_status_view
from folio.storage.student_records import get_student_by_email

router = APIRouter()


async def _status_response(db: AsyncSession, student: Student, settings: Settings) -> StudentStatusResponse:
  view = await build_status_view(db, student, site_domain=settings.site_domain)
  return StudentStatusResponse.model_validate(view)


@router.get("/status", response_model=StudentStatusResponse, response_model_by_alias=True)
async def get_status_by_email(
  email: str = Query(..., min_length=3, max_length=320),
  db: AsyncSession = Depends(get_db),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> StudentStatusResponse:
  """Look up a submission by email; only student-safe fields are returned."""
  student = await get_student_by_email(db, email)
  if student is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
  return await _status_response(db, student, settings)


@router.get("/me", response_model=StudentStatusResponse, response_model_by_alias=True)
async def get_my_status(
  student: Student = Depends(get_current_student),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> StudentStatusResponse:
  return await _status_response(db, student, settings)


@router.put("/me/submission")
async def update_my_submission(
  changes: SubmissionUpdate,
  student: Student = Depends(get_current_student),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  """Replace content while edits are requested."""
  result = await lifecycle.update_submission(db, student.id, changes)
  return lifecycle_response(result)


@router.post("/me/resubmit")
async def resubmit_my_submission(
  student: Student = Depends(get_current_student),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  result = await lifecycle.resubmit(db, student.id)
  return lifecycle_response(result)


@router.post("/me/repayment")
async def record_my_repayment(
  payload: RepaymentRequest,
  student: Student = Depends(get_current_student),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
  lifecycle: StudentLifecycle = Depends(get_lifecycle),  # noqa: B008
) -> JSONResponse:
  """Attach a new payment after a refund so the submission can be resubmitted."""
  result = await lifecycle.record_repayment(db, student.id, payment_reference=payload.payment_intent_id)
  return lifecycle_response(result)

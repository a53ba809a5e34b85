import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from folio.api.models import ChangeRequestCreate, ChangeRequestCreateResponse, ChangeRequestListResponse, ChangeRequestRecord, status_for
from folio.core.database import get_db
from folio.services.change_requests import create_change_request, list_change_requests

router = APIRouter()


@router.post("", response_model=ChangeRequestCreateResponse, response_model_by_alias=True)
async def submit_change_request(payload: ChangeRequestCreate, db: AsyncSession = Depends(get_db)) -> ChangeRequestCreateResponse:  # noqa: B008
  result = await create_change_request(db, payload.student_id, change_type=payload.type, description=payload.description)
  if not result.success:
    raise HTTPException(status_code=status_for(result.error_code), detail=result.error)

  record = ChangeRequestRecord.model_validate(result.change_request)
  return ChangeRequestCreateResponse(change_request=record, requires_payment=record.amount > 0, amount=record.amount)


@router.get("", response_model=ChangeRequestListResponse, response_model_by_alias=True)
async def get_change_requests(
  student_id: uuid.UUID = Query(...),
  db: AsyncSession = Depends(get_db),  # noqa: B008
) -> ChangeRequestListResponse:
  requests = await list_change_requests(db, student_id=student_id)
  return ChangeRequestListResponse(requests=[ChangeRequestRecord.model_validate(request) for request in requests])

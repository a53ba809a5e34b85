from __future__ import annotations

import uuid

import pytest

from folio.lifecycle.results import LifecycleErrorCode
from folio.schema.sql import ChangeRequestStatus, ChangeRequestType, StudentStatus
from folio.services.change_requests import change_request_price, create_change_request, list_change_requests, list_change_requests_with_students, update_change_request_status
from tests.helpers import create_student


@pytest.fixture
def anyio_backend():
  return "asyncio"


def test_only_template_swaps_and_redesigns_are_paid() -> None:
  assert change_request_price(ChangeRequestType.CONTENT_EDIT) == 0
  assert change_request_price(ChangeRequestType.LINK_UPDATE) == 0
  assert change_request_price(ChangeRequestType.TEMPLATE_SWAP) == 4900
  assert change_request_price(ChangeRequestType.REDESIGN) == 9900


@pytest.mark.anyio
async def test_create_records_price_and_pending_status(session_factory, db_session):
  student_id = await create_student(session_factory, status=StudentStatus.DEPLOYED)

  result = await create_change_request(db_session, student_id, change_type=ChangeRequestType.REDESIGN, description="  New colour scheme  ")

  assert result.success is True
  request = result.change_request
  assert request.status == ChangeRequestStatus.PENDING
  assert request.description == "New colour scheme"
  assert (request.is_paid, request.amount) == (True, 9900)


@pytest.mark.anyio
async def test_create_validates_input_and_student(session_factory, db_session):
  rejected_id = await create_student(session_factory, status=StudentStatus.REJECTED)

  blank = await create_change_request(db_session, rejected_id, change_type=ChangeRequestType.LINK_UPDATE, description="   ")
  missing = await create_change_request(db_session, uuid.uuid4(), change_type=ChangeRequestType.LINK_UPDATE, description="Fix link")
  closed = await create_change_request(db_session, rejected_id, change_type=ChangeRequestType.LINK_UPDATE, description="Fix link")

  assert blank.error_code == LifecycleErrorCode.INVALID_REQUEST
  assert missing.error_code == LifecycleErrorCode.NOT_FOUND
  assert closed.error_code == LifecycleErrorCode.INVALID_TRANSITION


@pytest.mark.anyio
async def test_status_moves_forward_only(session_factory, db_session):
  student_id = await create_student(session_factory, status=StudentStatus.DEPLOYED)
  created = await create_change_request(db_session, student_id, change_type=ChangeRequestType.CONTENT_EDIT, description="Update bio")
  request_id = created.change_request.id

  approved = await update_change_request_status(db_session, request_id, status=ChangeRequestStatus.APPROVED, admin_notes=" Looks fine ")
  completed = await update_change_request_status(db_session, request_id, status=ChangeRequestStatus.COMPLETED)
  reopened = await update_change_request_status(db_session, request_id, status=ChangeRequestStatus.PENDING)

  assert approved.success is True
  assert approved.change_request.admin_notes == "Looks fine"
  assert completed.change_request.status == ChangeRequestStatus.COMPLETED
  assert reopened.error_code == LifecycleErrorCode.INVALID_TRANSITION
  assert "from 'completed' to 'pending'" in reopened.error


@pytest.mark.anyio
async def test_unknown_request_is_not_found(db_session):
  result = await update_change_request_status(db_session, uuid.uuid4(), status=ChangeRequestStatus.APPROVED)

  assert result.error_code == LifecycleErrorCode.NOT_FOUND


@pytest.mark.anyio
async def test_listing_filters_by_student_and_status(session_factory, db_session):
  first_id = await create_student(session_factory, status=StudentStatus.DEPLOYED, name="Aisha Rahman")
  second_id = await create_student(session_factory, status=StudentStatus.DEPLOYED, name="Ben Lim")
  await create_change_request(db_session, first_id, change_type=ChangeRequestType.CONTENT_EDIT, description="Update bio")
  other = await create_change_request(db_session, second_id, change_type=ChangeRequestType.LINK_UPDATE, description="New GitHub")
  await update_change_request_status(db_session, other.change_request.id, status=ChangeRequestStatus.REJECTED)

  mine = await list_change_requests(db_session, student_id=first_id)
  pending = await list_change_requests_with_students(db_session, status=ChangeRequestStatus.PENDING)

  assert [request.description for request in mine] == ["Update bio"]
  assert [(request.description, name) for request, name, _ in pending] == [("Update bio", "Aisha Rahman")]

from __future__ import annotations

import secrets
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from folio.config import Settings, get_settings
from folio.core.database import get_db
from folio.core.firebase import verify_id_token
from folio.schema.sql import StaffUser, Student
from folio.storage.student_records import get_student_by_email

security_scheme = HTTPBearer()
optional_security_scheme = HTTPBearer(auto_error=False)


async def _decode_claims(id_token: str) -> dict[str, Any]:
  """Verify a Firebase ID token off the event loop and require a uid claim."""
  decoded_claims = await run_in_threadpool(verify_id_token, id_token)
  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})
  if not decoded_claims.get("uid"):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")
  return decoded_claims


async def _active_staff(db: AsyncSession, firebase_uid: str) -> StaffUser | None:
  stmt = select(StaffUser).where(StaffUser.firebase_uid == firebase_uid)
  staff = (await db.execute(stmt)).scalar_one_or_none()
  if staff is None or not staff.is_active:
    return None
  return staff


async def get_current_staff(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)], db: AsyncSession = Depends(get_db)) -> StaffUser:  # noqa: B008
  """Require a verified Firebase session that maps to an active staff row."""
  claims = await _decode_claims(token.credentials)
  staff = await _active_staff(db, str(claims["uid"]))
  if staff is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
  return staff


async def get_current_student(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)], db: AsyncSession = Depends(get_db)) -> Student:  # noqa: B008
  """Resolve the student whose submission email matches the verified token email."""
  claims = await _decode_claims(token.credentials)
  email = claims.get("email")
  if not email:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token missing email")
  # Unverified addresses could claim someone else's submission.
  if claims.get("email_verified") is False:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email address not verified")
  student = await get_student_by_email(db, str(email))
  if student is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No submission found for this account")
  return student


async def authorize_deploy_trigger(
  token: Annotated[HTTPAuthorizationCredentials | None, Depends(optional_security_scheme)],
  settings: Settings = Depends(get_settings),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
) -> str:
  """Accept the cron shared secret or a staff session; returns which one matched."""
  if token is None or not token.credentials:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})

  if settings.cron_secret and secrets.compare_digest(token.credentials.encode("utf-8"), settings.cron_secret.encode("utf-8")):
    return "cron"

  claims = await _decode_claims(token.credentials)
  staff = await _active_staff(db, str(claims["uid"]))
  if staff is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
  return f"staff:{staff.id}"

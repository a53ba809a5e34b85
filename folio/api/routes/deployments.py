import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from folio.api.deps import get_deployment_worker
from folio.api.models import DeploymentErrorRecord, DeploymentRunResponse
from folio.config import Settings, get_settings
from folio.core.database import get_db
from folio.core.security import authorize_deploy_trigger
from folio.deployments.retry import requeue_failed_deployments
from folio.deployments.worker import DeploymentWorker

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/run", response_model=DeploymentRunResponse, response_model_by_alias=True)
async def run_deployments(
  caller: str = Depends(authorize_deploy_trigger),
  worker: DeploymentWorker = Depends(get_deployment_worker),  # noqa: B008
  db: AsyncSession = Depends(get_db),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> DeploymentRunResponse:
  """Drain one batch of the deployment queue, then requeue eligible failures."""
  logger.info("Deployment run triggered by %s", caller)
  batch = await worker.run_batch()
  retry = await requeue_failed_deployments(db, max_retries=settings.deploy_max_retries, stale_after_seconds=settings.deploy_stale_after_seconds)
  return DeploymentRunResponse(
    processed=batch.processed,
    errors=[DeploymentErrorRecord(student_id=failure.student_id, error=failure.error) for failure in batch.errors],
    retried=retry.retried,
  )

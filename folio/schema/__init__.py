"""ORM models and request payloads for portfolio submissions."""

from .deployments import ACTIVE_DEPLOYMENT_STATUSES, DeploymentQueueItem, DeploymentStatus
from .sql import ChangeRequest, ChangeRequestStatus, ChangeRequestType, Student, StudentStatus, Tier

__all__ = ["ACTIVE_DEPLOYMENT_STATUSES", "ChangeRequest", "ChangeRequestStatus", "ChangeRequestType", "DeploymentQueueItem", "DeploymentStatus", "Student", "StudentStatus", "Tier"]

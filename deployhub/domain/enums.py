"""Status and type enums stored on rows and returned by the API."""
from __future__ import annotations

from enum import Enum


class ImageBuildStatus(str, Enum):
    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


class DeploymentStatus(str, Enum):
    UNKNOWN = "unknown"
    NON_DEPLOYED = "non-deployed"
    RUNNING = "running"
    UNHEALTHY = "unhealthy"
    FAILED = "failed"
    DEPLOYING = "deploying"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


class DeploymentRevisionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DeploymentTargetType(str, Enum):
    STABLE = "stable"
    CANARY = "canary"


class ResourceType(str, Enum):
    """Kinds of rows that can carry labels."""
    ORGANIZATION = "organization"
    CLUSTER = "cluster"
    MODEL_REPOSITORY = "model_repository"
    MODEL = "model"
    BENTO_REPOSITORY = "bento_repository"
    BENTO = "bento"
    DEPLOYMENT = "deployment"


class LabelOperator(str, Enum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"

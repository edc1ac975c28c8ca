"""
API Request/Response Schemas using Pydantic.

Structure of HTTP requests and responses for the deployhub API.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from deployhub.domain.consts import S3_CREDENTIAL_KEYS, SECRET_MASK


class OrmSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ListResponse(BaseModel):
    start: int = Field(0, description="Offset of the first item")
    count: int = Field(..., description="Number of items returned")
    total: int = Field(..., description="Number of items matching the query")


# Label schemas
class LabelItemSchema(BaseModel):
    key: str = Field(..., min_length=1, max_length=128)
    value: str = Field("", max_length=256)


# User schemas
class UserSchema(OrmSchema):
    uid: str
    name: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False
    created_at: datetime


class UserCreate(BaseModel):
    name: str = Field(..., description="Login name of the user", min_length=1, max_length=63)
    email: Optional[str] = Field(None, description="Email address")
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False


class SetupRequest(BaseModel):
    name: str = Field(..., description="Name of the first (admin) user", min_length=1, max_length=63)
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    organization_name: str = Field("default", description="Name of the first organization", min_length=1, max_length=63)


class SetupResponse(BaseModel):
    user: UserSchema
    organization_name: str
    api_token: str = Field(..., description="Raw API token, shown only once")


# API token schemas
class ApiTokenSchema(OrmSchema):
    uid: str
    name: str
    description: str = ""
    scopes: List[str] = Field(default_factory=list)
    expired_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    is_expired: bool = False
    created_at: datetime


class ApiTokenCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    scopes: List[str] = Field(default_factory=lambda: ["api"])
    expired_at: Optional[datetime] = None


class ApiTokenCreated(ApiTokenSchema):
    token: str = Field(..., description="Raw API token, shown only once")


class ApiTokenUpdate(BaseModel):
    description: Optional[str] = None
    scopes: Optional[List[str]] = None
    expired_at: Optional[datetime] = None


# Organization schemas
class OrganizationSchema(OrmSchema):
    uid: str
    name: str
    description: str = ""
    created_at: datetime


class OrganizationFullSchema(OrganizationSchema):
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def mask_s3_credentials(cls, config):
        config = dict(config or {})
        s3 = config.get("s3")
        if isinstance(s3, dict):
            config["s3"] = {
                key: SECRET_MASK if key in S3_CREDENTIAL_KEYS and value else value
                for key, value in s3.items()
            }
        return config


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=63)
    description: str = Field("", max_length=1000)
    config: Dict[str, Any] = Field(default_factory=dict, description="May contain an 's3' object")


class OrganizationUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    config: Optional[Dict[str, Any]] = None


class OrganizationList(ListResponse):
    items: List[OrganizationSchema]


# Cluster schemas
class ClusterSchema(OrmSchema):
    uid: str
    name: str
    description: str = ""
    created_at: datetime


class ClusterFullSchema(ClusterSchema):
    kube_config: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)


class ClusterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=63)
    description: str = Field("", max_length=1000)
    kube_config: str = Field("", description="kubeconfig YAML; empty uses the in-cluster config")
    config: Dict[str, Any] = Field(default_factory=dict)


class ClusterUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    kube_config: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class ClusterList(ListResponse):
    items: List[ClusterSchema]


# Repository schemas
class RepositorySchema(OrmSchema):
    uid: str
    name: str
    description: str = ""
    created_at: datetime
    latest_version: Optional[str] = Field(None, description="Newest version in the repository")
    labels: List[LabelItemSchema] = Field(default_factory=list)


class RepositoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=63)
    description: str = Field("", max_length=1000)
    labels: List[LabelItemSchema] = Field(default_factory=list)


class RepositoryUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    labels: Optional[List[LabelItemSchema]] = None


class RepositoryList(ListResponse):
    items: List[RepositorySchema]


# Model and bento schemas
class ArtifactSchema(OrmSchema):
    uid: str
    repository: str = Field(..., description="Name of the owning repository")
    version: str
    description: str = ""
    manifest: Dict[str, Any] = Field(default_factory=dict)
    build_at: datetime
    image_build_status: str
    upload_status: str
    upload_started_at: Optional[datetime] = None
    upload_finished_at: Optional[datetime] = None
    upload_finished_reason: str = ""
    created_at: datetime
    labels: List[LabelItemSchema] = Field(default_factory=list)


class ModelSchema(ArtifactSchema):
    pass


class BentoSchema(ArtifactSchema):
    models: List[str] = Field(default_factory=list, description="Tags of the packaged models")


class ModelCreate(BaseModel):
    version: str = Field(..., min_length=1, max_length=128)
    description: str = Field("", max_length=1000)
    build_at: Optional[datetime] = None
    manifest: Dict[str, Any] = Field(default_factory=dict)
    labels: List[LabelItemSchema] = Field(default_factory=list)


class BentoCreate(ModelCreate):
    models: List[str] = Field(default_factory=list, description="'<repository>:<version>' model tags")


class ArtifactUpdate(BaseModel):
    image_build_status: Optional[str] = None
    labels: Optional[List[LabelItemSchema]] = None


class ModelList(ListResponse):
    items: List[ModelSchema]


class BentoList(ListResponse):
    items: List[BentoSchema]


class FinishUpload(BaseModel):
    status: str = Field(..., description="success or failed")
    reason: str = ""


class PresignedUrl(BaseModel):
    url: str


class MultipartUploadStarted(BaseModel):
    upload_id: str


class PresignMultipartUploadPart(BaseModel):
    upload_id: str = Field(..., min_length=1)
    part_number: int = Field(..., ge=1, le=10000)


class CompletedPart(BaseModel):
    part_number: int = Field(..., ge=1)
    etag: str


class CompleteMultipartUpload(BaseModel):
    upload_id: str = Field(..., min_length=1)
    parts: List[CompletedPart] = Field(..., min_length=1)


class PodSchema(BaseModel):
    name: str
    namespace: Optional[str] = None
    node_name: Optional[str] = None
    phase: Optional[str] = None
    ready: bool = False
    start_time: Optional[datetime] = None
    labels: Dict[str, str] = Field(default_factory=dict)


# Deployment schemas
class EnvItem(BaseModel):
    key: str
    value: str = ""


class RunnerConfig(BaseModel):
    resources: Optional[Dict[str, Any]] = None
    hpa_conf: Optional[Dict[str, Any]] = None
    envs: List[EnvItem] = Field(default_factory=list)


class DeploymentTargetConfig(BaseModel):
    resources: Optional[Dict[str, Any]] = None
    hpa_conf: Optional[Dict[str, Any]] = None
    envs: List[EnvItem] = Field(default_factory=list)
    runners: Dict[str, RunnerConfig] = Field(default_factory=dict)
    enable_ingress: bool = False


class DeploymentTargetCreate(BaseModel):
    bento_repository: str
    bento: str = Field(..., description="Bento version")
    type: str = "stable"
    config: DeploymentTargetConfig = Field(default_factory=DeploymentTargetConfig)


class DeploymentTargetSchema(OrmSchema):
    uid: str
    type: str
    bento: str = Field(..., description="Bento tag")
    config: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class DeploymentRevisionSchema(OrmSchema):
    uid: str
    status: str
    targets: List[DeploymentTargetSchema] = Field(default_factory=list)
    created_at: datetime


class DeploymentSchema(OrmSchema):
    uid: str
    name: str
    cluster: str
    description: str = ""
    kube_namespace: str
    status: str
    status_syncing_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None
    latest_revision: Optional[DeploymentRevisionSchema] = None
    created_at: datetime
    labels: List[LabelItemSchema] = Field(default_factory=list)


class DeploymentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=63)
    description: str = Field("", max_length=1000)
    kube_namespace: str = ""
    targets: List[DeploymentTargetCreate] = Field(..., min_length=1)
    labels: List[LabelItemSchema] = Field(default_factory=list)
    do_not_deploy: bool = Field(False, description="Only record the deployment")


class DeploymentUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    targets: Optional[List[DeploymentTargetCreate]] = None
    labels: Optional[List[LabelItemSchema]] = None
    do_not_deploy: bool = False


class DeploymentList(ListResponse):
    items: List[DeploymentSchema]

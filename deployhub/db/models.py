"""
Database Models using SQLAlchemy.

These define the relational schema for organizations, clusters, model and
bento repositories, the versioned artifacts inside them, deployments and
labels. They are NOT related to:
- API schemas (see deployhub.schemas.api_schemas)
- The artifacts themselves (which live in the organization's S3 buckets)
"""
from sqlalchemy import (
    Column, ForeignKey, Integer, String, DateTime, Text, JSON, Boolean, Table, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
import datetime
import uuid

from deployhub.domain.enums import (
    ImageBuildStatus,
    UploadStatus,
    DeploymentStatus,
    DeploymentRevisionStatus,
    DeploymentTargetType,
)

Base = declarative_base()

def generate_uuid():
    return str(uuid.uuid4())

def utcnow():
    return datetime.datetime.utcnow()


class BaseColumns:
    """Columns every table carries."""

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class User(BaseColumns, Base):
    __tablename__ = "user"

    name = Column(String(128), unique=True, nullable=False)
    email = Column(String(256), nullable=True)
    first_name = Column(String(128), default="")
    last_name = Column(String(128), default="")
    is_admin = Column(Boolean, default=False, nullable=False)

    api_tokens = relationship("ApiToken", back_populates="user", cascade="all, delete-orphan")


class Organization(BaseColumns, Base):
    __tablename__ = "organization"

    name = Column(String(128), unique=True, nullable=False)
    description = Column(Text, default="")
    config = Column(JSON, default=dict)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    creator = relationship("User")
    clusters = relationship("Cluster", back_populates="organization", cascade="all, delete-orphan")
    model_repositories = relationship("ModelRepository", back_populates="organization", cascade="all, delete-orphan")
    bento_repositories = relationship("BentoRepository", back_populates="organization", cascade="all, delete-orphan")


class ApiToken(BaseColumns, Base):
    __tablename__ = "api_token"

    name = Column(String(128), nullable=False)
    description = Column(Text, default="")
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(Integer, ForeignKey("organization.id", ondelete="CASCADE"), nullable=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    scopes = Column(JSON, default=list)
    expired_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("user_id", "name", name="uk_api_token_user_name"),)

    user = relationship("User", back_populates="api_tokens")
    organization = relationship("Organization")

    @property
    def is_expired(self) -> bool:
        return self.expired_at is not None and self.expired_at < utcnow()


class Cluster(BaseColumns, Base):
    __tablename__ = "cluster"

    organization_id = Column(Integer, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text, default="")
    kube_config = Column(Text, default="")
    config = Column(JSON, default=dict)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    __table_args__ = (UniqueConstraint("organization_id", "name", name="uk_cluster_org_name"),)

    organization = relationship("Organization", back_populates="clusters")
    deployments = relationship("Deployment", back_populates="cluster", cascade="all, delete-orphan")


class ModelRepository(BaseColumns, Base):
    __tablename__ = "model_repository"

    organization_id = Column(Integer, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text, default="")
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    __table_args__ = (UniqueConstraint("organization_id", "name", name="uk_model_repository_org_name"),)

    organization = relationship("Organization", back_populates="model_repositories")
    models = relationship("Model", back_populates="model_repository", cascade="all, delete-orphan")


bento_model_rel = Table(
    "bento_model_rel",
    Base.metadata,
    Column("bento_id", Integer, ForeignKey("bento.id", ondelete="CASCADE"), primary_key=True),
    Column("model_id", Integer, ForeignKey("model.id", ondelete="CASCADE"), primary_key=True),
)


class ArtifactColumns(BaseColumns):
    """Build and upload bookkeeping shared by models and bentos."""

    version = Column(String(128), nullable=False)
    description = Column(Text, default="")
    manifest = Column(JSON, default=dict)
    build_at = Column(DateTime, default=utcnow, nullable=False)
    image_build_status = Column(String(32), default=ImageBuildStatus.PENDING.value, nullable=False)
    image_build_status_syncing_at = Column(DateTime, nullable=True)
    image_build_status_updated_at = Column(DateTime, nullable=True)
    upload_status = Column(String(32), default=UploadStatus.PENDING.value, nullable=False)
    upload_started_at = Column(DateTime, nullable=True)
    upload_finished_at = Column(DateTime, nullable=True)
    upload_finished_reason = Column(Text, default="")


class Model(ArtifactColumns, Base):
    __tablename__ = "model"

    model_repository_id = Column(Integer, ForeignKey("model_repository.id", ondelete="CASCADE"), nullable=False)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    __table_args__ = (UniqueConstraint("model_repository_id", "version", name="uk_model_repository_version"),)

    model_repository = relationship("ModelRepository", back_populates="models")
    bentos = relationship("Bento", secondary=bento_model_rel, back_populates="models")


class BentoRepository(BaseColumns, Base):
    __tablename__ = "bento_repository"

    organization_id = Column(Integer, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text, default="")
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    __table_args__ = (UniqueConstraint("organization_id", "name", name="uk_bento_repository_org_name"),)

    organization = relationship("Organization", back_populates="bento_repositories")
    bentos = relationship("Bento", back_populates="bento_repository", cascade="all, delete-orphan")


class Bento(ArtifactColumns, Base):
    __tablename__ = "bento"

    bento_repository_id = Column(Integer, ForeignKey("bento_repository.id", ondelete="CASCADE"), nullable=False)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    __table_args__ = (UniqueConstraint("bento_repository_id", "version", name="uk_bento_repository_version"),)

    bento_repository = relationship("BentoRepository", back_populates="bentos")
    models = relationship("Model", secondary=bento_model_rel, back_populates="bentos")


class Deployment(BaseColumns, Base):
    __tablename__ = "deployment"

    cluster_id = Column(Integer, ForeignKey("cluster.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text, default="")
    kube_namespace = Column(String(128), default="")
    status = Column(String(32), default=DeploymentStatus.NON_DEPLOYED.value, nullable=False)
    status_syncing_at = Column(DateTime, nullable=True)
    status_updated_at = Column(DateTime, nullable=True)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    __table_args__ = (UniqueConstraint("cluster_id", "name", name="uk_deployment_cluster_name"),)

    cluster = relationship("Cluster", back_populates="deployments")
    revisions = relationship(
        "DeploymentRevision", back_populates="deployment", cascade="all, delete-orphan",
        order_by="DeploymentRevision.id",
    )


class DeploymentRevision(BaseColumns, Base):
    __tablename__ = "deployment_revision"

    deployment_id = Column(Integer, ForeignKey("deployment.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(32), default=DeploymentRevisionStatus.ACTIVE.value, nullable=False)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    deployment = relationship("Deployment", back_populates="revisions")
    targets = relationship(
        "DeploymentTarget", back_populates="deployment_revision", cascade="all, delete-orphan",
        order_by="DeploymentTarget.id",
    )


class DeploymentTarget(BaseColumns, Base):
    __tablename__ = "deployment_target"

    deployment_id = Column(Integer, ForeignKey("deployment.id", ondelete="CASCADE"), nullable=False)
    deployment_revision_id = Column(Integer, ForeignKey("deployment_revision.id", ondelete="CASCADE"), nullable=False)
    bento_id = Column(Integer, ForeignKey("bento.id"), nullable=False)
    type = Column(String(32), default=DeploymentTargetType.STABLE.value, nullable=False)
    config = Column(JSON, default=dict)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)

    deployment = relationship("Deployment")
    deployment_revision = relationship("DeploymentRevision", back_populates="targets")
    bento = relationship("Bento")


class Label(BaseColumns, Base):
    __tablename__ = "label"

    organization_id = Column(Integer, ForeignKey("organization.id", ondelete="CASCADE"), nullable=False)
    creator_id = Column(Integer, ForeignKey("user.id"), nullable=True)
    resource_type = Column(String(32), nullable=False)
    resource_id = Column(Integer, nullable=False)
    key = Column(String(128), nullable=False)
    value = Column(String(256), default="")

    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", "key", name="uk_label_resource_key"),
    )

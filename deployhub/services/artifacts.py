"""
Operations shared by the two kinds of versioned artifacts, models and bentos.

Each artifact version is one row plus one ``.tar.gz`` object in the owning
organization's S3 bucket. This module owns the object naming, upload and
download paths (direct, presigned and multipart), the upload/image-build
status bookkeeping and the image builder's Kubernetes names and labels.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, BinaryIO, Callable, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from deployhub.config import settings
from deployhub.db.database import transaction
from deployhub.db.models import Organization, utcnow
from deployhub.domain.enums import ImageBuildStatus, ResourceType, UploadStatus
from deployhub.domain.errors import NotFoundError, ValidationError
from deployhub.domain.events import event_publisher, UploadFinished
from deployhub.kube.client import pod_with_status
from deployhub.services.base import UNSET
from deployhub.services.clusters import ClusterService
from deployhub.services.labels import LabelService
from deployhub.services.organizations import OrganizationService
from deployhub.storage.interface import ObjectStorage
from deployhub.storage.s3 import S3Config, S3Storage

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s_]+")
_DASHES = re.compile(r"-{2,}")


def to_kebab(value: str) -> str:
    value = _CAMEL_BOUNDARY.sub(r"\1-\2", value)
    value = _SEPARATORS.sub("-", value)
    return _DASHES.sub("-", value).strip("-").lower()


@dataclass
class UpdateArtifactOption:
    image_build_status: Any = UNSET
    image_build_status_syncing_at: Any = UNSET
    image_build_status_updated_at: Any = UNSET
    upload_status: Any = UNSET
    upload_started_at: Any = UNSET
    upload_finished_at: Any = UNSET
    upload_finished_reason: Any = UNSET
    labels: Any = UNSET


_UPDATABLE_FIELDS = (
    "image_build_status",
    "image_build_status_syncing_at",
    "image_build_status_updated_at",
    "upload_status",
    "upload_started_at",
    "upload_finished_at",
    "upload_finished_reason",
)


class ArtifactService:
    """Base for ModelService and BentoService."""

    entity = None
    repository_attr = ""
    repository_id_attr = ""
    kind = "Artifact"
    resource_type: ResourceType = None
    bucket_attr = ""
    object_prefix = ""
    kube_label_repository = ""
    kube_label_version = ""

    def __init__(
        self,
        db: Session,
        organizations: Optional[OrganizationService] = None,
        clusters: Optional[ClusterService] = None,
        labels: Optional[LabelService] = None,
        storage_factory: Callable[[S3Config], ObjectStorage] = S3Storage,
    ):
        self.db = db
        self._organizations = organizations or OrganizationService(db)
        self._clusters = clusters or ClusterService(db)
        self._labels = labels or LabelService(db)
        self._storage_factory = storage_factory

    # --------------- Lookups ---------------
    def get(self, artifact_id: int):
        artifact = self.db.query(self.entity).filter(self.entity.id == artifact_id).first()
        if not artifact:
            raise NotFoundError(f"{self.kind} not found: {artifact_id}")
        return artifact

    def get_by_uid(self, uid: str):
        artifact = self.db.query(self.entity).filter(self.entity.uid == uid).first()
        if not artifact:
            raise NotFoundError(f"{self.kind} not found: {uid}")
        return artifact

    def get_by_version(self, repository_id: int, version: str):
        artifact = (
            self.db.query(self.entity)
            .filter(getattr(self.entity, self.repository_id_attr) == repository_id)
            .filter(self.entity.version == version)
            .first()
        )
        if not artifact:
            raise NotFoundError(
                f"failed to get {self.kind.lower()} by repository id {repository_id} and version {version}"
            )
        return artifact

    def list_by_uids(self, uids: List[str]) -> list:
        if not uids:
            return []
        return self.db.query(self.entity).filter(self.entity.uid.in_(uids)).all()

    def list_latest_by_repository_ids(self, repository_ids: List[int]) -> list:
        """The newest version in each of the given repositories."""
        if not repository_ids:
            return []
        repository_id = getattr(self.entity, self.repository_id_attr)
        latest_ids = (
            select(func.max(self.entity.id))
            .where(repository_id.in_(repository_ids))
            .group_by(repository_id)
        )
        return self.db.query(self.entity).filter(self.entity.id.in_(latest_ids)).all()

    def list_image_build_status_unsynced(self) -> list:
        """Versions whose image build is unfinished and not checked in the last minute."""
        threshold = utcnow() - timedelta(minutes=1)
        return (
            self.db.query(self.entity)
            .filter(self.entity.image_build_status != ImageBuildStatus.SUCCESS.value)
            .filter(or_(
                self.entity.image_build_status_syncing_at.is_(None),
                self.entity.image_build_status_syncing_at < threshold,
                self.entity.image_build_status_updated_at.is_(None),
                self.entity.image_build_status_updated_at < threshold,
            ))
            .order_by(self.entity.id.desc())
            .all()
        )

    def get_repository(self, artifact):
        return getattr(artifact, self.repository_attr)

    def get_organization(self, artifact) -> Organization:
        return self.get_repository(artifact).organization

    def get_tag(self, artifact) -> str:
        return f"{self.get_repository(artifact).name}:{artifact.version}"

    def list_labels(self, artifact) -> list:
        return self._labels.list_by_resource(self.resource_type, artifact.id)

    def list_labels_by_artifacts(self, artifacts) -> Dict[int, list]:
        return self._labels.list_by_resources(self.resource_type, [artifact.id for artifact in artifacts])

    # --------------- Updates ---------------
    def update(self, artifact, opt: UpdateArtifactOption, creator_id: Optional[int] = None):
        """Apply only the options that were explicitly passed."""
        with transaction(self.db):
            for name in _UPDATABLE_FIELDS:
                value = getattr(opt, name)
                if value is UNSET:
                    continue
                if isinstance(value, (ImageBuildStatus, UploadStatus)):
                    value = value.value
                setattr(artifact, name, value)
            if opt.labels is not UNSET:
                self._labels.create_or_update_labels(
                    opt.labels or [],
                    creator_id,
                    self.get_repository(artifact).organization_id,
                    self.resource_type,
                    artifact.id,
                )
        return artifact

    def start_upload(self, artifact):
        if artifact.upload_status == UploadStatus.SUCCESS.value:
            raise ValidationError(f"{self.kind} {self.get_tag(artifact)} is already uploaded")
        return self.update(artifact, UpdateArtifactOption(
            upload_status=UploadStatus.UPLOADING,
            upload_started_at=utcnow(),
            upload_finished_at=None,
            upload_finished_reason="",
        ))

    def finish_upload(self, artifact, status: UploadStatus, reason: str = ""):
        if status not in (UploadStatus.SUCCESS, UploadStatus.FAILED):
            raise ValidationError(f"Upload can only finish as success or failed, got '{status.value}'")
        self.update(artifact, UpdateArtifactOption(
            upload_status=status,
            upload_finished_at=utcnow(),
            upload_finished_reason=reason or "",
        ))
        event_publisher.publish(UploadFinished(
            event_id="",
            timestamp=None,
            aggregate_id=artifact.uid,
            kind=self.kind,
            tag=self.get_tag(artifact),
            status=status.value,
            reason=reason or "",
        ))
        return artifact

    # --------------- Object store ---------------
    def get_s3_config(self, artifact) -> S3Config:
        return self._organizations.get_s3_config(self.get_organization(artifact))

    def get_s3_bucket_name(self, artifact) -> str:
        return getattr(self.get_s3_config(artifact), self.bucket_attr)

    def get_s3_object_name(self, artifact) -> str:
        repository = self.get_repository(artifact)
        return f"{self.object_prefix}/{repository.organization.name}/{repository.name}/{artifact.version}.tar.gz"

    def _open_storage(self, artifact):
        """Storage client, bucket and object name for an artifact, bucket guaranteed to exist."""
        s3_config = self.get_s3_config(artifact)
        storage = self._storage_factory(s3_config)
        bucket_name = getattr(s3_config, self.bucket_attr)
        storage.make_sure_bucket(bucket_name)
        return storage, bucket_name, self.get_s3_object_name(artifact)

    def upload(self, artifact, reader: BinaryIO, size: int = -1) -> None:
        storage, bucket_name, object_name = self._open_storage(artifact)
        storage.put_object(bucket_name, object_name, reader, size)

    def download(self, artifact) -> BinaryIO:
        storage, bucket_name, object_name = self._open_storage(artifact)
        return storage.get_object(bucket_name, object_name)

    def presign_upload_url(self, artifact) -> str:
        storage, bucket_name, object_name = self._open_storage(artifact)
        return storage.presigned_put_url(bucket_name, object_name, settings.PRESIGNED_URL_EXPIRES_SECONDS)

    def presign_download_url(self, artifact) -> str:
        storage, bucket_name, object_name = self._open_storage(artifact)
        return storage.presigned_get_url(bucket_name, object_name, settings.PRESIGNED_URL_EXPIRES_SECONDS)

    def start_multipart_upload(self, artifact) -> str:
        storage, bucket_name, object_name = self._open_storage(artifact)
        return storage.create_multipart_upload(bucket_name, object_name)

    def presign_multipart_upload_url(self, artifact, part_number: int, upload_id: str) -> str:
        if part_number < 1:
            raise ValidationError("Part number must be at least 1")
        if not upload_id:
            raise ValidationError("Upload id is required")
        storage, bucket_name, object_name = self._open_storage(artifact)
        return storage.presigned_upload_part_url(
            bucket_name, object_name, upload_id, part_number, settings.PRESIGNED_URL_EXPIRES_SECONDS
        )

    def complete_multipart_upload(self, artifact, upload_id: str, parts: List[Dict]) -> None:
        if not upload_id:
            raise ValidationError("Upload id is required")
        if not parts:
            raise ValidationError("At least one part is required")
        storage, bucket_name, object_name = self._open_storage(artifact)
        storage.complete_multipart_upload(bucket_name, object_name, upload_id, parts)

    # --------------- Image builder ---------------
    def get_image_builder_kube_name(self, artifact) -> str:
        repository = self.get_repository(artifact)
        guid = uuid.uuid4().hex[:20]
        name = (
            f"{settings.KUBE_NAME_PREFIX}-{self.kind.lower()}-image-builder-"
            f"{repository.organization.name}-{repository.name}-{artifact.version}-{guid}"
        )
        return to_kebab(name).replace(".", "-")

    def get_image_builder_kube_labels(self, artifact) -> Dict[str, str]:
        return {
            self.kube_label_repository: self.get_repository(artifact).name,
            self.kube_label_version: artifact.version,
        }

    def list_image_builder_pods(self, artifact) -> List[Dict[str, Any]]:
        cluster = self._organizations.get_major_cluster(self.get_organization(artifact))
        kube = self._clusters.get_kube_client(cluster)
        pods = kube.list_pods(settings.IMAGE_BUILDER_NAMESPACE, self.get_image_builder_kube_labels(artifact))
        return [pod_with_status(pod) for pod in pods]

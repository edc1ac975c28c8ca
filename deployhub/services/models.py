from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from deployhub.application.name_validation import validate_version
from deployhub.db.database import transaction
from deployhub.db.models import Model, ModelRepository, User, bento_model_rel, utcnow
from deployhub.domain.consts import KUBE_LABEL_MODEL, KUBE_LABEL_MODEL_REPOSITORY
from deployhub.domain.enums import ImageBuildStatus, ResourceType, UploadStatus
from deployhub.domain.errors import ConflictError
from deployhub.domain.events import event_publisher, ModelCreated
from deployhub.services.artifacts import ArtifactService
from deployhub.services.base import (
    BaseListOption, apply_keywords, apply_label_selectors, apply_limit, apply_order,
)
from deployhub.services.labels import LabelItem


@dataclass
class CreateModelOption:
    model_repository: ModelRepository
    version: str
    creator: Optional[User] = None
    description: str = ""
    build_at: Optional[datetime] = None
    manifest: Optional[Dict[str, Any]] = None
    labels: List[LabelItem] = field(default_factory=list)


@dataclass
class ListModelOption(BaseListOption):
    model_repository_id: Optional[int] = None
    ids: Optional[List[int]] = None
    versions: Optional[List[str]] = None
    bento_ids: Optional[List[int]] = None
    organization_id: Optional[int] = None
    creator_id: Optional[int] = None
    creator_ids: Optional[List[int]] = None
    names: Optional[List[str]] = None
    modules: Optional[List[str]] = None
    order: Optional[str] = None


ORDERABLE_COLUMNS = ["build_at", "created_at", "updated_at", "version", "id"]


class ModelService(ArtifactService):
    """Versions inside model repositories."""

    entity = Model
    repository_attr = "model_repository"
    repository_id_attr = "model_repository_id"
    kind = "Model"
    resource_type = ResourceType.MODEL
    bucket_attr = "models_bucket_name"
    object_prefix = "models"
    kube_label_repository = KUBE_LABEL_MODEL_REPOSITORY
    kube_label_version = KUBE_LABEL_MODEL

    def create(self, opt: CreateModelOption) -> Model:
        version = validate_version(opt.version)
        repository = opt.model_repository
        exists = (
            self.db.query(Model)
            .filter(Model.model_repository_id == repository.id, Model.version == version)
            .first()
        )
        if exists:
            raise ConflictError(f"Model {repository.name}:{version} already exists")

        creator_id = opt.creator.id if opt.creator else None
        model = Model(
            model_repository_id=repository.id,
            version=version,
            description=opt.description or "",
            manifest=opt.manifest or {},
            build_at=opt.build_at or utcnow(),
            image_build_status=ImageBuildStatus.PENDING.value,
            upload_status=UploadStatus.PENDING.value,
            creator_id=creator_id,
        )
        with transaction(self.db):
            self.db.add(model)
            self.db.flush()
            self._labels.create_or_update_labels(
                opt.labels, creator_id, repository.organization_id, ResourceType.MODEL, model.id
            )

        event_publisher.publish(ModelCreated(
            event_id="",
            timestamp=None,
            aggregate_id=model.uid,
            organization=repository.organization.name,
            repository=repository.name,
            version=version,
        ))
        return model

    def list(self, opt: Optional[ListModelOption] = None) -> Tuple[List[Model], int]:
        opt = opt or ListModelOption()
        query = self.db.query(Model).join(ModelRepository, Model.model_repository_id == ModelRepository.id)
        if opt.bento_ids is not None:
            query = query.join(bento_model_rel, bento_model_rel.c.model_id == Model.id).filter(
                bento_model_rel.c.bento_id.in_(opt.bento_ids)
            )
        if opt.organization_id is not None:
            query = query.filter(ModelRepository.organization_id == opt.organization_id)
        if opt.ids is not None:
            query = query.filter(Model.id.in_(opt.ids))
        if opt.versions is not None:
            query = query.filter(Model.version.in_(opt.versions))
        if opt.model_repository_id is not None:
            query = query.filter(Model.model_repository_id == opt.model_repository_id)
        if opt.creator_id is not None:
            query = query.filter(Model.creator_id == opt.creator_id)
        if opt.names is not None:
            query = query.filter(ModelRepository.name.in_(opt.names))
        if opt.creator_ids is not None:
            query = query.filter(Model.creator_id.in_(opt.creator_ids))
        if opt.modules is not None:
            query = query.filter(Model.manifest["module"].as_string().in_(opt.modules))
        query = apply_keywords(query, opt.search, ModelRepository.name)
        query = apply_label_selectors(query, opt.label_selectors, ResourceType.MODEL, Model.id)
        query = query.distinct()

        total = query.count()
        query = apply_order(query, opt.order, Model, ORDERABLE_COLUMNS, Model.build_at.desc())
        items = apply_limit(query, opt).all()
        return items, total

    def list_all_modules(self, organization_id: int) -> List[str]:
        """Distinct ``manifest.module`` values across an organization's models."""
        module = Model.manifest["module"].as_string()
        rows = (
            self.db.query(module)
            .join(ModelRepository, Model.model_repository_id == ModelRepository.id)
            .filter(ModelRepository.organization_id == organization_id)
            .distinct()
            .all()
        )
        return sorted(row[0] for row in rows if row[0])

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from deployhub.application.name_validation import validate_version
from deployhub.db.database import transaction
from deployhub.db.models import Bento, BentoRepository, Model, ModelRepository, User, bento_model_rel, utcnow
from deployhub.domain.consts import KUBE_LABEL_BENTO, KUBE_LABEL_BENTO_REPOSITORY
from deployhub.domain.enums import ImageBuildStatus, ResourceType, UploadStatus
from deployhub.domain.errors import ConflictError, NotFoundError, ValidationError
from deployhub.domain.events import event_publisher, BentoCreated
from deployhub.services.artifacts import ArtifactService
from deployhub.services.base import (
    BaseListOption, apply_keywords, apply_label_selectors, apply_limit, apply_order,
)
from deployhub.services.labels import LabelItem


@dataclass
class CreateBentoOption:
    bento_repository: BentoRepository
    version: str
    creator: Optional[User] = None
    description: str = ""
    build_at: Optional[datetime] = None
    manifest: Optional[Dict[str, Any]] = None
    labels: List[LabelItem] = field(default_factory=list)
    # "<repository>:<version>" tags of models packaged in the bento
    model_tags: List[str] = field(default_factory=list)


@dataclass
class ListBentoOption(BaseListOption):
    bento_repository_id: Optional[int] = None
    ids: Optional[List[int]] = None
    versions: Optional[List[str]] = None
    model_ids: Optional[List[int]] = None
    organization_id: Optional[int] = None
    creator_id: Optional[int] = None
    names: Optional[List[str]] = None
    order: Optional[str] = None


ORDERABLE_COLUMNS = ["build_at", "created_at", "updated_at", "version", "id"]


class BentoService(ArtifactService):
    """Versions inside bento repositories."""

    entity = Bento
    repository_attr = "bento_repository"
    repository_id_attr = "bento_repository_id"
    kind = "Bento"
    resource_type = ResourceType.BENTO
    bucket_attr = "bentos_bucket_name"
    object_prefix = "bentos"
    kube_label_repository = KUBE_LABEL_BENTO_REPOSITORY
    kube_label_version = KUBE_LABEL_BENTO

    def create(self, opt: CreateBentoOption) -> Bento:
        version = validate_version(opt.version)
        repository = opt.bento_repository
        exists = (
            self.db.query(Bento)
            .filter(Bento.bento_repository_id == repository.id, Bento.version == version)
            .first()
        )
        if exists:
            raise ConflictError(f"Bento {repository.name}:{version} already exists")
        models = self._resolve_model_tags(repository.organization_id, opt.model_tags)

        creator_id = opt.creator.id if opt.creator else None
        bento = Bento(
            bento_repository_id=repository.id,
            version=version,
            description=opt.description or "",
            manifest=opt.manifest or {},
            build_at=opt.build_at or utcnow(),
            image_build_status=ImageBuildStatus.PENDING.value,
            upload_status=UploadStatus.PENDING.value,
            creator_id=creator_id,
        )
        bento.models = models
        with transaction(self.db):
            self.db.add(bento)
            self.db.flush()
            self._labels.create_or_update_labels(
                opt.labels, creator_id, repository.organization_id, ResourceType.BENTO, bento.id
            )

        event_publisher.publish(BentoCreated(
            event_id="",
            timestamp=None,
            aggregate_id=bento.uid,
            organization=repository.organization.name,
            repository=repository.name,
            version=version,
        ))
        return bento

    def _resolve_model_tags(self, organization_id: int, tags: List[str]) -> List[Model]:
        models = []
        for tag in tags:
            repository_name, sep, version = tag.partition(":")
            if not sep or not repository_name or not version:
                raise ValidationError(f"Invalid model tag '{tag}', expected '<repository>:<version>'")
            model = (
                self.db.query(Model)
                .join(ModelRepository, Model.model_repository_id == ModelRepository.id)
                .filter(
                    ModelRepository.organization_id == organization_id,
                    ModelRepository.name == repository_name,
                    Model.version == version,
                )
                .first()
            )
            if not model:
                raise NotFoundError(f"Model not found: {tag}")
            models.append(model)
        return models

    def list(self, opt: Optional[ListBentoOption] = None) -> Tuple[List[Bento], int]:
        opt = opt or ListBentoOption()
        query = self.db.query(Bento).join(BentoRepository, Bento.bento_repository_id == BentoRepository.id)
        if opt.model_ids is not None:
            query = query.join(bento_model_rel, bento_model_rel.c.bento_id == Bento.id).filter(
                bento_model_rel.c.model_id.in_(opt.model_ids)
            )
        if opt.organization_id is not None:
            query = query.filter(BentoRepository.organization_id == opt.organization_id)
        if opt.ids is not None:
            query = query.filter(Bento.id.in_(opt.ids))
        if opt.versions is not None:
            query = query.filter(Bento.version.in_(opt.versions))
        if opt.bento_repository_id is not None:
            query = query.filter(Bento.bento_repository_id == opt.bento_repository_id)
        if opt.creator_id is not None:
            query = query.filter(Bento.creator_id == opt.creator_id)
        if opt.names is not None:
            query = query.filter(BentoRepository.name.in_(opt.names))
        query = apply_keywords(query, opt.search, BentoRepository.name)
        query = apply_label_selectors(query, opt.label_selectors, ResourceType.BENTO, Bento.id)
        query = query.distinct()

        total = query.count()
        query = apply_order(query, opt.order, Bento, ORDERABLE_COLUMNS, Bento.build_at.desc())
        items = apply_limit(query, opt).all()
        return items, total

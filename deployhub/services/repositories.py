"""Model and bento repositories: named, per-organization containers of versions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from deployhub.application.name_validation import validate_name
from deployhub.db.database import transaction
from deployhub.db.models import BentoRepository, ModelRepository, Organization, User
from deployhub.domain.enums import ResourceType
from deployhub.domain.errors import ConflictError, NotFoundError
from deployhub.services.base import (
    UNSET, BaseListOption, apply_keywords, apply_label_selectors, apply_limit,
)
from deployhub.services.labels import LabelItem, LabelService


@dataclass
class ListRepositoryOption(BaseListOption):
    organization_id: Optional[int] = None
    names: Optional[List[str]] = None


class RepositoryService:
    """CRUD shared by model and bento repositories."""

    entity = None
    kind = "Repository"
    resource_type: ResourceType = None

    def __init__(self, db: Session, labels: Optional[LabelService] = None):
        self.db = db
        self._labels = labels or LabelService(db)

    def create(
        self,
        organization: Organization,
        name: str,
        description: str = "",
        creator: Optional[User] = None,
        labels: Optional[List[LabelItem]] = None,
    ):
        name = validate_name(name, self.kind)
        exists = (
            self.db.query(self.entity)
            .filter(self.entity.organization_id == organization.id, self.entity.name == name)
            .first()
        )
        if exists:
            raise ConflictError(f"{self.kind} with name '{name}' already exists")

        repository = self.entity(
            organization_id=organization.id,
            name=name,
            description=description or "",
            creator_id=creator.id if creator else None,
        )
        with transaction(self.db):
            self.db.add(repository)
            self.db.flush()
            self._labels.create_or_update_labels(
                labels or [], repository.creator_id, organization.id, self.resource_type, repository.id
            )
        return repository

    def get(self, repository_id: int):
        repository = self.db.query(self.entity).filter(self.entity.id == repository_id).first()
        if not repository:
            raise NotFoundError(f"{self.kind} not found: {repository_id}")
        return repository

    def get_by_uid(self, uid: str):
        repository = self.db.query(self.entity).filter(self.entity.uid == uid).first()
        if not repository:
            raise NotFoundError(f"{self.kind} not found: {uid}")
        return repository

    def get_by_name(self, organization: Organization, name: str):
        repository = (
            self.db.query(self.entity)
            .filter(self.entity.organization_id == organization.id, self.entity.name == name)
            .first()
        )
        if not repository:
            raise NotFoundError(f"{self.kind} not found: {name}")
        return repository

    def list(self, opt: Optional[ListRepositoryOption] = None) -> Tuple[list, int]:
        opt = opt or ListRepositoryOption()
        query = self.db.query(self.entity)
        if opt.organization_id is not None:
            query = query.filter(self.entity.organization_id == opt.organization_id)
        if opt.names is not None:
            query = query.filter(self.entity.name.in_(opt.names))
        query = apply_keywords(query, opt.search, self.entity.name)
        query = apply_label_selectors(query, opt.label_selectors, self.resource_type, self.entity.id)
        total = query.count()
        items = apply_limit(query.order_by(self.entity.id.desc()), opt).all()
        return items, total

    def update(self, repository, description=UNSET, labels=UNSET, creator_id: Optional[int] = None):
        with transaction(self.db):
            if description is not UNSET:
                repository.description = description or ""
            if labels is not UNSET:
                self._labels.create_or_update_labels(
                    labels or [], creator_id, repository.organization_id, self.resource_type, repository.id
                )
        return repository

    def list_labels(self, repository) -> list:
        return self._labels.list_by_resource(self.resource_type, repository.id)


class ModelRepositoryService(RepositoryService):
    entity = ModelRepository
    kind = "Model repository"
    resource_type = ResourceType.MODEL_REPOSITORY


class BentoRepositoryService(RepositoryService):
    entity = BentoRepository
    kind = "Bento repository"
    resource_type = ResourceType.BENTO_REPOSITORY

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from deployhub.db.database import transaction
from deployhub.db.models import Label
from deployhub.domain.enums import ResourceType
from deployhub.domain.errors import ValidationError


@dataclass
class LabelItem:
    key: str
    value: str = ""


class LabelService:
    """Key/value labels attached to any labelled resource."""

    def __init__(self, db: Session):
        self.db = db

    def create_or_update_labels(
        self,
        items: Iterable[LabelItem],
        creator_id: Optional[int],
        organization_id: int,
        resource_type: ResourceType,
        resource_id: int,
    ) -> List[Label]:
        """
        Make the resource's labels equal to ``items``.

        Existing keys are updated in place, new keys inserted and keys
        missing from ``items`` deleted.
        """
        wanted: Dict[str, str] = {}
        for item in items:
            key = (item.key or "").strip()
            if not key:
                raise ValidationError("Label key is required")
            wanted[key] = item.value or ""

        with transaction(self.db):
            existing = {label.key: label for label in self.list_by_resource(resource_type, resource_id)}
            for key, label in existing.items():
                if key not in wanted:
                    self.db.delete(label)
            for key, value in wanted.items():
                label = existing.get(key)
                if label is None:
                    self.db.add(Label(
                        organization_id=organization_id,
                        creator_id=creator_id,
                        resource_type=resource_type.value,
                        resource_id=resource_id,
                        key=key,
                        value=value,
                    ))
                elif label.value != value:
                    label.value = value
        return self.list_by_resource(resource_type, resource_id)

    def list_by_resource(self, resource_type: ResourceType, resource_id: int) -> List[Label]:
        return (
            self.db.query(Label)
            .filter(Label.resource_type == resource_type.value, Label.resource_id == resource_id)
            .order_by(Label.key)
            .all()
        )

    def list_by_resources(self, resource_type: ResourceType, resource_ids: List[int]) -> Dict[int, List[Label]]:
        result: Dict[int, List[Label]] = defaultdict(list)
        if not resource_ids:
            return result
        labels = (
            self.db.query(Label)
            .filter(Label.resource_type == resource_type.value, Label.resource_id.in_(resource_ids))
            .order_by(Label.resource_id, Label.key)
            .all()
        )
        for label in labels:
            result[label.resource_id].append(label)
        return result

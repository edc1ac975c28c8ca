from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from sqlalchemy.orm import Session

from deployhub.application.name_validation import validate_name
from deployhub.config import settings
from deployhub.db.database import transaction
from deployhub.db.models import Cluster, Organization, User
from deployhub.domain.errors import ConflictError, DomainError, ExternalServiceError, NotFoundError, ValidationError
from deployhub.kube.client import KubeClient, load_api_client
from deployhub.services.base import UNSET, BaseListOption, apply_keywords, apply_limit

logger = logging.getLogger(__name__)


def build_kube_client(cluster: Cluster) -> KubeClient:
    return KubeClient(load_api_client(cluster.kube_config))


class ClusterService:
    """Kubernetes clusters registered to an organization."""

    def __init__(self, db: Session, kube_client_factory: Callable[[Cluster], KubeClient] = build_kube_client):
        self.db = db
        self._kube_client_factory = kube_client_factory

    def create(
        self,
        organization: Organization,
        name: str,
        description: str = "",
        kube_config: str = "",
        config: Optional[Dict[str, Any]] = None,
        creator: Optional[User] = None,
    ) -> Cluster:
        name = validate_name(name, "Cluster")
        exists = (
            self.db.query(Cluster)
            .filter(Cluster.organization_id == organization.id, Cluster.name == name)
            .first()
        )
        if exists:
            raise ConflictError(f"Cluster with name '{name}' already exists")
        _check_kube_config(kube_config)

        cluster = Cluster(
            organization_id=organization.id,
            name=name,
            description=description or "",
            kube_config=kube_config or "",
            config=config or {},
            creator_id=creator.id if creator else None,
        )
        with transaction(self.db):
            self.db.add(cluster)
        return cluster

    def get(self, cluster_id: int) -> Cluster:
        cluster = self.db.query(Cluster).filter(Cluster.id == cluster_id).first()
        if not cluster:
            raise NotFoundError(f"Cluster not found: {cluster_id}")
        return cluster

    def get_by_name(self, organization: Organization, name: str) -> Cluster:
        cluster = (
            self.db.query(Cluster)
            .filter(Cluster.organization_id == organization.id, Cluster.name == name)
            .first()
        )
        if not cluster:
            raise NotFoundError(f"Cluster not found: {name}")
        return cluster

    def list(self, organization: Organization, opt: Optional[BaseListOption] = None) -> Tuple[List[Cluster], int]:
        opt = opt or BaseListOption()
        query = self.db.query(Cluster).filter(Cluster.organization_id == organization.id)
        query = apply_keywords(query, opt.search, Cluster.name)
        total = query.count()
        items = apply_limit(query.order_by(Cluster.id), opt).all()
        return items, total

    def update(self, cluster: Cluster, description=UNSET, kube_config=UNSET, config=UNSET) -> Cluster:
        with transaction(self.db):
            if description is not UNSET:
                cluster.description = description or ""
            if kube_config is not UNSET:
                _check_kube_config(kube_config)
                cluster.kube_config = kube_config or ""
            if config is not UNSET:
                cluster.config = dict(config or {})
        return cluster

    def get_default_kube_namespace(self, cluster: Cluster) -> str:
        return (cluster.config or {}).get("default_deployment_kube_namespace") or settings.DEFAULT_KUBE_NAMESPACE

    def get_kube_client(self, cluster: Cluster) -> KubeClient:
        try:
            return self._kube_client_factory(cluster)
        except DomainError:
            raise
        except Exception as e:
            logger.error(f"Failed to build kube client for cluster {cluster.name}: {e}", exc_info=True)
            raise ExternalServiceError(f"failed to get kube client of cluster {cluster.name}: {e}") from e


def _check_kube_config(kube_config: Optional[str]) -> None:
    if not kube_config:
        return
    try:
        parsed = yaml.safe_load(kube_config)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid kubeconfig: {e}") from e
    if not isinstance(parsed, dict) or "clusters" not in parsed:
        raise ValidationError("Invalid kubeconfig: missing 'clusters'")

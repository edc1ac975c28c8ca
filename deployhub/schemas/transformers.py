"""Convert ORM rows into API schemas."""
from typing import Dict, List, Optional

from deployhub.db.models import Bento, Deployment, DeploymentRevision, Label, Model
from deployhub.schemas.api_schemas import (
    BentoSchema,
    DeploymentRevisionSchema,
    DeploymentSchema,
    DeploymentTargetSchema,
    LabelItemSchema,
    ModelSchema,
    RepositorySchema,
)


def to_label_schemas(labels: Optional[List[Label]]) -> List[LabelItemSchema]:
    return [LabelItemSchema(key=label.key, value=label.value or "") for label in labels or []]


def to_repository_schema(repository, labels: Optional[List[Label]] = None, latest=None) -> RepositorySchema:
    return RepositorySchema(
        latest_version=latest.version if latest is not None else None,
        uid=repository.uid,
        name=repository.name,
        description=repository.description or "",
        created_at=repository.created_at,
        labels=to_label_schemas(labels),
    )


def _artifact_fields(artifact, repository_name: str, labels: Optional[List[Label]]) -> Dict:
    return {
        "uid": artifact.uid,
        "repository": repository_name,
        "version": artifact.version,
        "description": artifact.description or "",
        "manifest": artifact.manifest or {},
        "build_at": artifact.build_at,
        "image_build_status": artifact.image_build_status,
        "upload_status": artifact.upload_status,
        "upload_started_at": artifact.upload_started_at,
        "upload_finished_at": artifact.upload_finished_at,
        "upload_finished_reason": artifact.upload_finished_reason or "",
        "created_at": artifact.created_at,
        "labels": to_label_schemas(labels),
    }


def to_model_schema(model: Model, labels: Optional[List[Label]] = None) -> ModelSchema:
    return ModelSchema(**_artifact_fields(model, model.model_repository.name, labels))


def to_bento_schema(bento: Bento, labels: Optional[List[Label]] = None) -> BentoSchema:
    return BentoSchema(
        **_artifact_fields(bento, bento.bento_repository.name, labels),
        models=[f"{model.model_repository.name}:{model.version}" for model in bento.models],
    )


def to_revision_schema(revision: DeploymentRevision) -> DeploymentRevisionSchema:
    return DeploymentRevisionSchema(
        uid=revision.uid,
        status=revision.status,
        created_at=revision.created_at,
        targets=[
            DeploymentTargetSchema(
                uid=target.uid,
                type=target.type,
                bento=f"{target.bento.bento_repository.name}:{target.bento.version}",
                config=target.config or {},
                created_at=target.created_at,
            )
            for target in revision.targets
        ],
    )


def to_deployment_schema(
    deployment: Deployment,
    kube_namespace: str,
    labels: Optional[List[Label]] = None,
) -> DeploymentSchema:
    latest = deployment.revisions[-1] if deployment.revisions else None
    return DeploymentSchema(
        uid=deployment.uid,
        name=deployment.name,
        cluster=deployment.cluster.name,
        description=deployment.description or "",
        kube_namespace=kube_namespace,
        status=deployment.status,
        status_syncing_at=deployment.status_syncing_at,
        status_updated_at=deployment.status_updated_at,
        latest_revision=to_revision_schema(latest) if latest else None,
        created_at=deployment.created_at,
        labels=to_label_schemas(labels),
    )

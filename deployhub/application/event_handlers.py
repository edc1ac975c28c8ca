"""Event handlers for domain events."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deployhub.domain.events import (
        ModelCreated,
        UploadFinished,
        BentoCreated,
        DeploymentCreated,
        DeploymentDeployed,
        DeploymentStatusChanged,
        ApiTokenCreated,
    )

logger = logging.getLogger(__name__)


class AuditLogHandler:
    """Logs all domain events for audit trail."""

    def handle_model_created(self, event: ModelCreated) -> None:
        logger.info(f"[AUDIT] Model created: {event.organization}/{event.repository}:{event.version}")

    def handle_upload_finished(self, event: UploadFinished) -> None:
        logger.info(f"[AUDIT] {event.kind} upload finished: {event.tag} ({event.status})")

    def handle_bento_created(self, event: BentoCreated) -> None:
        logger.info(f"[AUDIT] Bento created: {event.organization}/{event.repository}:{event.version}")

    def handle_deployment_created(self, event: DeploymentCreated) -> None:
        logger.info(f"[AUDIT] Deployment created: {event.name} in cluster {event.cluster}")

    def handle_deployment_deployed(self, event: DeploymentDeployed) -> None:
        logger.info(
            f"[AUDIT] Deployment deployed: {event.namespace}/{event.name} "
            f"bento={event.bento_tag} resourceVersion={event.resource_version}"
        )

    def handle_api_token_created(self, event: ApiTokenCreated) -> None:
        logger.info(f"[AUDIT] API token created: {event.name} for user {event.user}")


class DeploymentStatusHandler:
    """Surfaces deployments that went bad."""

    def handle_status_changed(self, event: DeploymentStatusChanged) -> None:
        if event.new_status in ("failed", "unhealthy"):
            logger.warning(f"[DEPLOYMENT] {event.name}: {event.old_status} -> {event.new_status}")
        else:
            logger.info(f"[DEPLOYMENT] {event.name}: {event.old_status} -> {event.new_status}")


def register_event_handlers():
    """Register all event handlers with the publisher."""
    from deployhub.domain.events import (
        event_publisher,
        ModelCreated,
        UploadFinished,
        BentoCreated,
        DeploymentCreated,
        DeploymentDeployed,
        DeploymentStatusChanged,
        ApiTokenCreated,
    )

    audit = AuditLogHandler()
    status = DeploymentStatusHandler()

    # Audit handlers
    event_publisher.subscribe(ModelCreated, audit.handle_model_created)
    event_publisher.subscribe(UploadFinished, audit.handle_upload_finished)
    event_publisher.subscribe(BentoCreated, audit.handle_bento_created)
    event_publisher.subscribe(DeploymentCreated, audit.handle_deployment_created)
    event_publisher.subscribe(DeploymentDeployed, audit.handle_deployment_deployed)
    event_publisher.subscribe(ApiTokenCreated, audit.handle_api_token_created)

    # Status transitions
    event_publisher.subscribe(DeploymentStatusChanged, status.handle_status_changed)

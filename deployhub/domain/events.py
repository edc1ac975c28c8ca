"""Domain events for decoupled side effects and integrations."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for all domain events."""
    event_id: str
    timestamp: Optional[datetime]
    aggregate_id: str

    def __post_init__(self):
        if not self.event_id:
            self.event_id = str(uuid4())
        if not self.timestamp:
            self.timestamp = datetime.now()


@dataclass
class ModelCreated(DomainEvent):
    """Raised when a new model version is registered."""
    organization: str
    repository: str
    version: str


@dataclass
class UploadFinished(DomainEvent):
    """Raised when a model or bento upload reaches a final status."""
    kind: str
    tag: str
    status: str
    reason: str


@dataclass
class BentoCreated(DomainEvent):
    """Raised when a new bento version is registered."""
    organization: str
    repository: str
    version: str


@dataclass
class DeploymentCreated(DomainEvent):
    """Raised when a deployment row is created."""
    cluster: str
    name: str


@dataclass
class DeploymentDeployed(DomainEvent):
    """Raised when a BentoDeployment resource was created or updated."""
    namespace: str
    name: str
    bento_tag: str
    resource_version: str


@dataclass
class DeploymentStatusChanged(DomainEvent):
    """Raised when a deployment's status column changes."""
    name: str
    old_status: str
    new_status: str


@dataclass
class ApiTokenCreated(DomainEvent):
    """Raised when an API token is issued."""
    user: str
    name: str


class DomainEventPublisher:
    """Singleton publisher for domain events."""

    _instance: DomainEventPublisher | None = None
    _subscribers: Dict[type, List[Callable[[DomainEvent], None]]]

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._subscribers = {}
        return cls._instance

    def subscribe(self, event_type: type[DomainEvent], handler: Callable[[DomainEvent], None]) -> None:
        """Subscribe a handler to an event type."""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers."""
        for handler in self._subscribers.get(type(event), []):
            try:
                handler(event)
            except Exception:
                # A failing handler must not fail the operation that raised the event
                logger.exception(f"Event handler error for {type(event).__name__}")

    def clear_subscribers(self) -> None:
        """Clear all subscribers (useful for testing)."""
        self._subscribers = {}


# Singleton instance
event_publisher = DomainEventPublisher()

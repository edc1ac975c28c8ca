"""Domain error hierarchy for clean exception handling."""
from __future__ import annotations


class DomainError(Exception):
    """Base for all domain errors."""


class NotFoundError(DomainError):
    """Resource not found."""


class ValidationError(DomainError):
    """Invalid input or state."""


class ConflictError(DomainError):
    """Resource conflict (e.g., duplicate name)."""


class UnauthorizedError(DomainError):
    """Missing or invalid credentials."""


class ForbiddenError(DomainError):
    """Authenticated, but not allowed to touch the resource."""


class ExternalServiceError(DomainError):
    """Object store or Kubernetes API call failed."""

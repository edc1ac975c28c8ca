"""Service for resource name validation logic."""
from __future__ import annotations

import re

from deployhub.domain.errors import ValidationError

# Names end up in Kubernetes object names and S3 keys, so they follow DNS-1123 label rules
_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_VERSION_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")
MAX_NAME_LENGTH = 63


def validate_name(name: str, kind: str = "Resource") -> str:
    """Validate and normalize a resource name."""
    if not name or not name.strip():
        raise ValidationError(f"{kind} name is required and cannot be empty")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"{kind} name must be at most {MAX_NAME_LENGTH} characters")
    if not _NAME_RE.match(name):
        raise ValidationError(
            f"{kind} name '{name}' must consist of lower case alphanumeric characters or '-', "
            "and must start and end with an alphanumeric character"
        )
    return name


def validate_version(version: str) -> str:
    """Validate an artifact version string."""
    if not version or not version.strip():
        raise ValidationError("Version is required and cannot be empty")
    version = version.strip()
    if not _VERSION_RE.match(version):
        raise ValidationError(f"Invalid version '{version}'")
    return version

"""Policy package for gcp-emulator-control-plane.

Exports the policy document model, the YAML/JSON codec, and the
structural validator used by the CLI and service bootstrap.
"""
from __future__ import annotations

from gcp_emulator_control_plane.policy.codec import (
    PolicyCodec,
    dumps,
    load,
    loads,
    save,
)
from gcp_emulator_control_plane.policy.model import (
    Binding,
    Condition,
    Group,
    ParseError,
    PolicyDocument,
    Project,
    Role,
)
from gcp_emulator_control_plane.policy.validator import (
    PolicyValidator,
    ValidationResult,
    validate,
    validate_permission,
    validate_role_name,
)

__all__ = [
    "Binding",
    "Condition",
    "Group",
    "ParseError",
    "PolicyCodec",
    "PolicyDocument",
    "PolicyValidator",
    "Project",
    "Role",
    "ValidationResult",
    "dumps",
    "load",
    "loads",
    "save",
    "validate",
    "validate_permission",
    "validate_role_name",
]

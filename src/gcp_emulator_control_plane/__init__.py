"""gcp-emulator-control-plane: shared IAM policy and authorization mediation.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import gcp_emulator_control_plane as cp
>>> doc = cp.load_policy("policy.yaml")
>>> cp.PolicyValidator().validate(doc).valid
True
>>> mediator = cp.PermissionMediator("strict", cp.HttpAuthorityClient("http://localhost:8080"))
>>> mediator.check("user:alice@example.com", "projects/p/secrets/s", "secretmanager.secrets.get").allowed
True
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------
from gcp_emulator_control_plane.principal.codec import (
    PRINCIPAL_HEADER_KEY,
    PRINCIPAL_METADATA_KEY,
    Principal,
    PrincipalKind,
    extract as extract_principal,
    inject as inject_principal,
    validate_format as validate_principal,
)

# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------
from gcp_emulator_control_plane.policy.model import (
    Binding,
    Condition,
    Group,
    ParseError,
    PolicyDocument,
    Project,
    Role,
)
from gcp_emulator_control_plane.policy.codec import (
    PolicyCodec,
    load as load_policy,
    save as save_policy,
)
from gcp_emulator_control_plane.policy.validator import PolicyValidator, ValidationResult

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
from gcp_emulator_control_plane.config.settings import (
    ConfigError,
    IamMode,
    Settings,
    SettingsLoader,
)

# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
from gcp_emulator_control_plane.authz.authority import (
    AuthorityClient,
    ConnectivityError,
    HttpAuthorityClient,
    StaticAuthorityClient,
)
from gcp_emulator_control_plane.authz.mediator import (
    AuthorityUnavailableError,
    AuthorizationError,
    Decision,
    Outcome,
    PermissionDeniedError,
    PermissionMediator,
)

__all__ = [
    "__version__",
    # Principals
    "PRINCIPAL_HEADER_KEY",
    "PRINCIPAL_METADATA_KEY",
    "Principal",
    "PrincipalKind",
    "extract_principal",
    "inject_principal",
    "validate_principal",
    # Policy
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
    "load_policy",
    "save_policy",
    # Settings
    "ConfigError",
    "IamMode",
    "Settings",
    "SettingsLoader",
    # Authorization
    "AuthorityClient",
    "AuthorityUnavailableError",
    "AuthorizationError",
    "ConnectivityError",
    "Decision",
    "HttpAuthorityClient",
    "Outcome",
    "PermissionDeniedError",
    "PermissionMediator",
    "StaticAuthorityClient",
]

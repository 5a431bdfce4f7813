"""Authorization mediation for the emulator stack.

Exports the permission mediator, its decision types, and the authority
clients it consults.
"""
from __future__ import annotations

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

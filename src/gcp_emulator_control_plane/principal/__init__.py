"""Principal grammar and propagation shared by every emulator.

Exports the carrier key names, the grammar check used by both the policy
validator and the permission mediator, and the extract/inject helpers used
to forward identity across process boundaries.
"""
from __future__ import annotations

from gcp_emulator_control_plane.principal.codec import (
    ALL_AUTHENTICATED_USERS,
    ALL_USERS,
    PRINCIPAL_HEADER_KEY,
    PRINCIPAL_METADATA_KEY,
    Principal,
    PrincipalKind,
    extract,
    group_name,
    inject,
    parse,
    validate_format,
)

__all__ = [
    "ALL_AUTHENTICATED_USERS",
    "ALL_USERS",
    "PRINCIPAL_HEADER_KEY",
    "PRINCIPAL_METADATA_KEY",
    "Principal",
    "PrincipalKind",
    "extract",
    "group_name",
    "inject",
    "parse",
    "validate_format",
]

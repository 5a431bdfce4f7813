#!/usr/bin/env python3
"""Example: IAM modes and an unreachable authority

Shows how off, permissive and strict modes answer the same request when
the IAM emulator cannot be reached, and how to inject the principal into
outgoing headers and gRPC metadata.

Usage:
    python examples/02_iam_modes.py

Requirements:
    pip install gcp-emulator-control-plane
"""
from __future__ import annotations

import gcp_emulator_control_plane as cp

PRINCIPAL = "serviceAccount:ci@test-project.iam.gserviceaccount.com"
SECRET = "projects/test-project/secrets/prod-api-key"
PERMISSION = "secretmanager.versions.access"


def main() -> None:
    # Port 9 (discard) is not listening, so every call fails to connect.
    authority = cp.HttpAuthorityClient("http://127.0.0.1:9", timeout_seconds=0.2)

    print("Authority unreachable:")
    for mode in cp.IamMode:
        decision = cp.PermissionMediator(mode, authority).check(PRINCIPAL, SECRET, PERMISSION)
        print(
            f"  {mode.value:<10} {decision.outcome.value:<22} "
            f"grpc={decision.outcome.grpc_code:<18} {decision.reason}"
        )

    # Enforce raises a typed error for callers that prefer exceptions
    try:
        cp.PermissionMediator("strict", authority).enforce(PRINCIPAL, SECRET, PERMISSION)
    except cp.AuthorityUnavailableError as exc:
        print(f"\nenforce() raised {type(exc).__name__}: {exc}")

    # Principal propagation on outgoing calls
    headers: dict[str, str] = {"Content-Type": "application/json"}
    cp.inject_principal(headers, PRINCIPAL)
    metadata: list[tuple[str, str]] = []
    cp.inject_principal(metadata, PRINCIPAL, metadata=True)
    print(f"\nHTTP headers:  {headers}")
    print(f"gRPC metadata: {metadata}")
    print(f"Round trip:    {cp.extract_principal(metadata)}")


if __name__ == "__main__":
    main()

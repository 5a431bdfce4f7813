#!/usr/bin/env python3
"""Example: Quickstart: gcp-emulator-control-plane

Minimal working example: load and validate a policy file, then run a few
permission checks through the mediator against an in-memory authority.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install gcp-emulator-control-plane
"""
from __future__ import annotations

from pathlib import Path

import gcp_emulator_control_plane as cp

POLICY_FILE = Path(__file__).with_name("policy.yaml")
SECRET = "projects/test-project/secrets/db-password"


def main() -> None:
    print(f"gcp-emulator-control-plane version: {cp.__version__}")

    # Step 1: Load and validate the policy
    doc = cp.load_policy(POLICY_FILE)
    result = cp.PolicyValidator().validate(doc)
    print(f"Policy {POLICY_FILE.name}: {doc.summary()}")
    print(f"  valid={result.valid} errors={result.error_count}")

    # Step 2: Stand in for the IAM emulator with a static authority
    authority = cp.StaticAuthorityClient(
        [
            ("user:alice@example.com", SECRET, "secretmanager.secrets.get"),
            ("user:bob@example.com", "*", "secretmanager.secrets.list"),
        ]
    )
    mediator = cp.PermissionMediator("strict", authority)

    # Step 3: Check requests carrying the principal header
    requests = [
        ({"X-Emulator-Principal": "user:alice@example.com"}, "secretmanager.secrets.get"),
        ({"x-emulator-principal": "user:bob@example.com"}, "secretmanager.secrets.get"),
        ({"Accept": "application/json"}, "secretmanager.secrets.get"),
    ]

    print("\nPermission checks (strict):")
    for headers, permission in requests:
        decision = mediator.check_carrier(headers, SECRET, permission)
        icon = "ALLOW" if decision.allowed else "DENY"
        print(f"  [{icon}] {decision.principal or '(none)'} {permission}")
        print(f"    {decision.reason} -> HTTP {decision.outcome.http_status}")


if __name__ == "__main__":
    main()

"""Benchmark: Policy validation throughput: documents per second.

Builds a policy with many projects, groups and custom roles and measures how
many PolicyValidator.validate() passes complete per second.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gcp_emulator_control_plane.policy.model import PolicyDocument
from gcp_emulator_control_plane.policy.validator import PolicyValidator

_ITERATIONS: int = 500
_PROJECTS: int = 20
_GROUPS: int = 10


def _make_document() -> PolicyDocument:
    raw: dict[str, object] = {
        "roles": {
            f"roles/custom.role{i}": {
                "permissions": [
                    "secretmanager.secrets.get",
                    "secretmanager.versions.access",
                    "cloudkms.cryptoKeyVersions.useToDecrypt",
                ]
            }
            for i in range(_GROUPS)
        },
        "groups": {
            f"team{i}": {"members": [f"user:member{j}@example.com" for j in range(10)]}
            for i in range(_GROUPS)
        },
        "projects": {
            f"project-{p}": {
                "bindings": [
                    {
                        "role": f"roles/custom.role{g}",
                        "members": [f"group:team{g}", "allAuthenticatedUsers"],
                        "condition": {"expression": "request.time < timestamp('2030-01-01T00:00:00Z')"},
                    }
                    for g in range(_GROUPS)
                ]
            }
            for p in range(_PROJECTS)
        },
    }
    return PolicyDocument.from_dict(raw)


def bench_policy_validation_throughput() -> dict[str, object]:
    """Benchmark PolicyValidator.validate() throughput.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, bindings.
    """
    doc = _make_document()
    validator = PolicyValidator()

    start = time.perf_counter()
    for _ in range(_ITERATIONS):
        validator.validate(doc)
    total = time.perf_counter() - start

    result: dict[str, object] = {
        "operation": "policy_validation_throughput",
        "iterations": _ITERATIONS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(total / _ITERATIONS * 1000, 4),
        "bindings": doc.summary()["bindings"],
    }
    print(
        f"[bench_policy_validation] {result['operation']}: "
        f"{result['ops_per_second']:,.0f} ops/sec  "
        f"bindings={result['bindings']}"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_policy_validation_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "validation_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")

"""Benchmark: Mediator check latency: per-check p50/p99.

Measures the per-call latency of PermissionMediator.check() in strict mode
against an in-memory authority, so the number reflects mediation overhead
only (no network).
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gcp_emulator_control_plane.authz.authority import StaticAuthorityClient
from gcp_emulator_control_plane.authz.mediator import PermissionMediator

_WARMUP: int = 100
_ITERATIONS: int = 10_000
_PRINCIPALS: int = 50

_RESOURCE = "projects/bench/secrets/db-password"
_PERMISSION = "secretmanager.versions.access"


def _make_authority(count: int) -> StaticAuthorityClient:
    """Grant every other principal access to the benchmark secret."""
    grants = [
        (f"user:user{i}@example.com", _RESOURCE, _PERMISSION)
        for i in range(count)
        if i % 2 == 0
    ]
    return StaticAuthorityClient(grants)


def bench_mediator_check_latency() -> dict[str, object]:
    """Benchmark PermissionMediator.check() per-call latency.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, p50_latency_ms, p99_latency_ms.
    """
    mediator = PermissionMediator("strict", _make_authority(_PRINCIPALS))
    principals = [f"user:user{i}@example.com" for i in range(_PRINCIPALS)]

    for i in range(_WARMUP):
        mediator.check(principals[i % _PRINCIPALS], _RESOURCE, _PERMISSION)

    latencies_ms: list[float] = []
    for i in range(_ITERATIONS):
        principal = principals[i % _PRINCIPALS]
        t0 = time.perf_counter()
        mediator.check(principal, _RESOURCE, _PERMISSION)
        latencies_ms.append((time.perf_counter() - t0) * 1000)

    sorted_lats = sorted(latencies_ms)
    n = len(sorted_lats)
    total = sum(latencies_ms) / 1000

    result: dict[str, object] = {
        "operation": "mediator_check_latency",
        "iterations": _ITERATIONS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(sum(latencies_ms) / n, 4),
        "p50_latency_ms": round(sorted_lats[n // 2], 4),
        "p99_latency_ms": round(sorted_lats[min(int(n * 0.99), n - 1)], 4),
    }
    print(
        f"[bench_mediator_latency] {result['operation']}: "
        f"p99={result['p99_latency_ms']:.4f}ms  "
        f"mean={result['avg_latency_ms']:.4f}ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_mediator_check_latency()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "mediator_latency_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")

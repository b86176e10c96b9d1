"""Prometheus metrics for hashsig-keygen.

Metrics live on a dedicated registry (a keygen run is a short-lived batch
job, not a server), and can be dumped for the node-exporter textfile
collector with write_metrics_textfile().

Metrics goals:
- low-cardinality labels (never key material, indices or file names)
- per-key and per-file observability of a provisioning run
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from prometheus_client import CollectorRegistry, Counter, Histogram, write_to_textfile

REGISTRY = CollectorRegistry(auto_describe=True)

KEYS_GENERATED_TOTAL = Counter(
    "hashsig_keys_generated_total",
    "Total key pairs produced by the signature scheme",
    registry=REGISTRY,
)
FILES_WRITTEN_TOTAL = Counter(
    "hashsig_files_written_total",
    "Total files written by the exporter and manifest writer",
    ["kind"],
    registry=REGISTRY,
)
KEY_GENERATION_SECONDS = Histogram(
    "hashsig_key_generation_seconds",
    "Wall-clock time of one key_gen call",
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
    registry=REGISTRY,
)
PROVISION_FAILURES_TOTAL = Counter(
    "hashsig_provision_failures_total",
    "Total aborted provisioning runs",
    ["error"],
    registry=REGISTRY,
)


_ENABLED: Optional[bool] = None


def set_metrics_enabled(enabled: Optional[bool]) -> None:
    """Force metrics on or off; None falls back to HASHSIG_METRICS_ENABLED."""
    global _ENABLED
    _ENABLED = None if enabled is None else bool(enabled)


def _enabled() -> bool:
    if _ENABLED is not None:
        return _ENABLED
    v = (os.getenv("HASHSIG_METRICS_ENABLED", "") or "").strip().lower()
    if not v:
        return True
    return v in ("1", "true", "yes", "on")


def record_key_generated(seconds: float) -> None:
    if _enabled():
        KEYS_GENERATED_TOTAL.inc()
        KEY_GENERATION_SECONDS.observe(max(0.0, float(seconds)))


def record_file_written(kind: str) -> None:
    if _enabled():
        FILES_WRITTEN_TOTAL.labels(kind=str(kind)).inc()


def record_failure(error: str) -> None:
    if _enabled():
        PROVISION_FAILURES_TOTAL.labels(error=str(error)).inc()


def write_metrics_textfile(path: Union[str, Path]) -> None:
    """Write the registry in Prometheus text format (atomic replace)."""
    write_to_textfile(str(path), REGISTRY)

"""Prometheus metrics for keyset-core.

Metrics goals:
- low-cardinality labels (primitive names, outcomes; never key ids or
  type urls supplied by callers)
- visibility into registrations, primitive construction and consume-side
  failures without exposing which key matched
"""
from __future__ import annotations

from prometheus_client import Counter, generate_latest

from .settings import Settings

_ENABLED = Settings.from_env().metrics_enabled


REGISTRATIONS_TOTAL = Counter(
    "keyset_registrations_total",
    "Total registry registration attempts",
    ["kind", "outcome"],
)
PRIMITIVES_CREATED_TOTAL = Counter(
    "keyset_primitives_created_total",
    "Total keyset-level primitives created",
    ["primitive"],
)
CONSUME_TOTAL = Counter(
    "keyset_consume_total",
    "Total decrypt/verify calls through keyset primitives",
    ["primitive", "outcome"],
)


def set_enabled(enabled: bool) -> None:
    global _ENABLED
    _ENABLED = bool(enabled)


def record_registration(kind: str, outcome: str) -> None:
    if _ENABLED:
        REGISTRATIONS_TOTAL.labels(kind=str(kind), outcome=str(outcome)).inc()


def record_primitive_created(primitive: str) -> None:
    if _ENABLED:
        PRIMITIVES_CREATED_TOTAL.labels(primitive=str(primitive)).inc()


def record_consume(primitive: str, outcome: str) -> None:
    if _ENABLED:
        CONSUME_TOTAL.labels(primitive=str(primitive), outcome=str(outcome)).inc()


def render_latest() -> bytes:
    return generate_latest()

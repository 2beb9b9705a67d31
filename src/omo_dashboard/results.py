"""Tagged success/failure values returned by storage reads and derivations.

Storage reads never raise for unavailable storage; they return a failed
result carrying one of FAILURE_REASONS so callers can fall back to the
other backend or render an empty state.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

FAILURE_REASONS = (
    "db_busy",
    "db_corrupt",
    "db_unopenable",
    "db_query_failed",
    "storage_missing",
)


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """Outcome of one storage query."""
    ok: bool
    rows: list[T] = field(default_factory=list)
    reason: str | None = None


@dataclass(frozen=True)
class DeriveResult(Generic[T]):
    """Outcome of one derivation over storage reads."""
    ok: bool
    value: Any = None
    reason: str | None = None


def read_ok(rows: list) -> ReadResult:
    return ReadResult(ok=True, rows=rows)


def read_failed(reason: str) -> ReadResult:
    return ReadResult(ok=False, reason=reason)


def derive_ok(value) -> DeriveResult:
    return DeriveResult(ok=True, value=value)


def derive_failed(reason: str | None) -> DeriveResult:
    return DeriveResult(ok=False, reason=reason)

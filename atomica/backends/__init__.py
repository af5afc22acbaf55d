"""Verifier backends that check translated IVL programs."""

from __future__ import annotations

from atomica.backends.base import NullBackend, VerifierBackend
from atomica.backends.z3_backend import Z3Backend

BACKENDS = {
    "z3": Z3Backend,
    "none": NullBackend,
}


def create_backend(name: str, timeout_ms: int = 10000) -> VerifierBackend:
    """Instantiate a backend by name. Raises ValueError for unknown names."""
    if name not in BACKENDS:
        raise ValueError(f"Unknown backend '{name}'. Available: {', '.join(sorted(BACKENDS))}")
    if name == "z3":
        return Z3Backend(timeout_ms=timeout_ms)
    return BACKENDS[name]()


__all__ = ["BACKENDS", "NullBackend", "VerifierBackend", "Z3Backend", "create_backend"]

"""Verifier backend protocol.

A backend is started once, asked to verify any number of IVL programs and
stopped. Each ``verify`` call returns the verification failures in the order
the backend found them; an empty list means the program verified.

    with Z3Backend(timeout_ms=5000) as backend:
        failures = backend.verify(program)
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from atomica import ivl
from atomica.failures import VerificationFailure


class VerifierBackend(ABC):
    """Abstract base for all verifier backends."""

    def __init__(self):
        self._running = False

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True

    @abstractmethod
    def verify(self, program: ivl.Program) -> list[VerificationFailure]:
        ...

    def stop(self) -> None:
        self._running = False

    def __enter__(self) -> VerifierBackend:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


class NullBackend(VerifierBackend):
    """Accepts every program. Used when only the translation is of interest."""

    @property
    def name(self) -> str:
        return "none"

    def verify(self, program: ivl.Program) -> list[VerificationFailure]:
        return []

"""Verification failures reported by a backend.

Each failure names the IVL node the backend could not verify and a reason
naming the sub-node responsible. Both nodes are the very objects the
translator created, so ``caused_by`` is an identity check.
"""

from __future__ import annotations

from dataclasses import dataclass

from atomica.ivl import IvlNode, render


# ---------------------------------------------------------------------------
# Reasons
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class FailureReason:
    offending_node: IvlNode

    def caused_by(self, node: IvlNode) -> bool:
        return self.offending_node is node

    @property
    def readable_message(self) -> str:
        return f"Verification failed at {render(self.offending_node)}"


@dataclass(eq=False)
class InsufficientPermission(FailureReason):
    @property
    def readable_message(self) -> str:
        return f"There might be insufficient permission to access {render(self.offending_node)}"


@dataclass(eq=False)
class AssertionFalse(FailureReason):
    @property
    def readable_message(self) -> str:
        return f"Assertion {render(self.offending_node)} might not hold"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class VerificationFailure:
    offending_node: IvlNode
    reason: FailureReason

    def caused_by(self, node: IvlNode) -> bool:
        return self.offending_node is node

    @property
    def readable_message(self) -> str:
        return f"{type(self).__name__}: {self.reason.readable_message}"


@dataclass(eq=False)
class AssignmentFailed(VerificationFailure):
    pass


@dataclass(eq=False)
class PostconditionViolated(VerificationFailure):
    pass


@dataclass(eq=False)
class PreconditionInCallFalse(VerificationFailure):
    pass


@dataclass(eq=False)
class AssertFailed(VerificationFailure):
    pass


@dataclass(eq=False)
class ExhaleFailed(VerificationFailure):
    pass


@dataclass(eq=False)
class InhaleFailed(VerificationFailure):
    pass


@dataclass(eq=False)
class FoldFailed(VerificationFailure):
    pass


@dataclass(eq=False)
class UnfoldFailed(VerificationFailure):
    pass

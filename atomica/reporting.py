"""Source-level verification diagnostics.

A ``VerificationError`` names the program node whose proof obligation failed
and carries an ordered list of clarifications explaining why, e.g.

    MakeAtomicError(stmt).due_to(IllegalRegionStateChangeError(stmt.body))
                         .due_to(AdditionalErrorClarification("...", region_id))

Clarifications are either plain text (typically a translated backend reason)
or one of the structured clarification classes below.
"""

from __future__ import annotations

from typing import Optional, Union

from atomica.ast_nodes import (
    Node, GuardExp, IdnNode, MakeAtomic, OpenRegion, PredicateExp, UpdateRegion, UseAtomic,
)
from atomica.errors import AtomicaError, ErrorKind, SourceLocation


# ---------------------------------------------------------------------------
# Clarifications
# ---------------------------------------------------------------------------

class ErrorClarification:
    def __init__(self, message: str, node: Optional[Node] = None):
        self.message = message
        self.node = node

    @property
    def location(self) -> Optional[SourceLocation]:
        return self.node.location if self.node is not None else None

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class InsufficientGuardPermissionError(ErrorClarification):
    def __init__(self, guard: GuardExp):
        super().__init__(f"There might be insufficient permission to guard {guard}", guard)


class InsufficientTrackingResourcePermissionError(ErrorClarification):
    def __init__(self, region_predicate: PredicateExp, region_id: IdnNode):
        super().__init__(
            f"There might be insufficient permission to the tracking resource "
            f"{region_id.name} |=> (_, _) of {region_predicate}",
            region_predicate)


class InsufficientRegionPermissionError(ErrorClarification):
    def __init__(self, region_predicate: PredicateExp):
        super().__init__(f"There might be insufficient permission to region {region_predicate}",
                         region_predicate)


class InsufficientDiamondResourcePermissionError(ErrorClarification):
    def __init__(self, region_predicate: PredicateExp, region_id: IdnNode):
        super().__init__(
            f"There might be insufficient permission to the diamond resource "
            f"{region_id.name} |=> <D> of {region_predicate}",
            region_predicate)


class IllegalRegionStateChangeError(ErrorClarification):
    def __init__(self, node: Node):
        super().__init__("The region state might have been changed in an illegal way", node)


class AdditionalErrorClarification(ErrorClarification):
    pass


Clarification = Union[str, ErrorClarification]


# ---------------------------------------------------------------------------
# Verification errors
# ---------------------------------------------------------------------------

class VerificationError(AtomicaError):
    """A proof obligation of the program could not be discharged."""

    headline = "Verification might fail"

    def __init__(self, node: Node, reason: Optional[Clarification] = None):
        super().__init__(
            kind=ErrorKind.VERIFICATION_ERROR,
            message=self.headline,
            location=node.location,
            details={"error": type(self).__name__, "reasons": []},
        )
        self.node = node
        self.reasons: list[Clarification] = []
        if reason is not None:
            self.due_to(reason)

    def due_to(self, reason: Clarification) -> VerificationError:
        self.reasons.append(reason)
        self.details["reasons"].append(str(reason))
        self.message = ". ".join([self.headline, *(str(r) for r in self.reasons)])
        return self


class AssignmentError(VerificationError):
    headline = "Assignment might fail"


class PostconditionError(VerificationError):
    headline = "Postcondition might not hold"


class PreconditionError(VerificationError):
    headline = "Precondition of call might not hold"


class AssertionViolationError(VerificationError):
    headline = "Assertion might not hold"


class MakeAtomicError(VerificationError):
    headline = "make-atomic might fail"

    def __init__(self, statement: MakeAtomic, reason: Optional[Clarification] = None):
        super().__init__(statement, reason)


class UpdateRegionError(VerificationError):
    headline = "update-region might fail"

    def __init__(self, statement: UpdateRegion, reason: Optional[Clarification] = None):
        super().__init__(statement, reason)


class UseAtomicError(VerificationError):
    headline = "use-atomic might fail"

    def __init__(self, statement: UseAtomic, reason: Optional[Clarification] = None):
        super().__init__(statement, reason)


class OpenRegionError(VerificationError):
    headline = "open-region might fail"

    def __init__(self, statement: OpenRegion, reason: Optional[Clarification] = None):
        super().__init__(statement, reason)

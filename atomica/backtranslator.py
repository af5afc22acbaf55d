"""Error backtranslation — map backend failures to source diagnostics.

Two run-scoped registries of ``(matches, build)`` pairs, one for failures and
one for failure reasons. Registries are tried head first and new entries are
inserted at the head, so the most recently registered transformer wins over
everything registered before it, including the defaults.

A failure that no transformer matches is dropped: ``translate`` returns None.
A reason that no transformer matches falls back to its readable message.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from atomica.ast_nodes import Assign, HeapRead, HeapWrite
from atomica.failures import (
    AssertFailed, AssertionFalse, AssignmentFailed, FailureReason, InsufficientPermission,
    PostconditionViolated, PreconditionInCallFalse, VerificationFailure,
)
from atomica.ivl import IvlNode, render
from atomica.reporting import (
    AssertionViolationError, AssignmentError, PostconditionError, PreconditionError,
    VerificationError,
)

logger = logging.getLogger(__name__)

FailureMatcher = Callable[[VerificationFailure], bool]
FailureBuilder = Callable[[VerificationFailure], VerificationError]
ReasonMatcher = Callable[[FailureReason], bool]
ReasonBuilder = Callable[[FailureReason], str]


def describe_source(node: IvlNode) -> str:
    """Render the program node an IVL node stems from, else the IVL node itself."""
    source = node.source
    if source is not None and type(source).__str__ is not object.__str__:
        return str(source)
    return render(node)


class ErrorBacktranslator:
    def __init__(self) -> None:
        self._error_transformers: list[tuple[FailureMatcher, FailureBuilder]] = []
        self._reason_transformers: list[tuple[ReasonMatcher, ReasonBuilder]] = []
        self._install_defaults()

    def _install_defaults(self) -> None:
        def failed_at(kind, *source_kinds):
            def matches(failure: VerificationFailure) -> bool:
                source = failure.offending_node.source
                if not isinstance(failure, kind) or source is None:
                    return False
                return not source_kinds or isinstance(source, source_kinds)
            return matches

        defaults: list[tuple[FailureMatcher, FailureBuilder]] = [
            (failed_at(AssignmentFailed, HeapRead, HeapWrite, Assign),
             lambda f: AssignmentError(f.offending_node.source, self.translate_reason(f.reason))),
            (failed_at(PostconditionViolated),
             lambda f: PostconditionError(f.offending_node.source, self.translate_reason(f.reason))),
            (failed_at(PreconditionInCallFalse),
             lambda f: PreconditionError(f.offending_node.source, self.translate_reason(f.reason))),
            (failed_at(AssertFailed),
             lambda f: AssertionViolationError(f.offending_node.source, self.translate_reason(f.reason))),
        ]
        # Registered in reverse so that the first default is tried first
        for matches, build in reversed(defaults):
            self.add_error_transformer(matches, build)

        self.add_reason_transformer(
            lambda r: isinstance(r, AssertionFalse),
            lambda r: f'Assertion "{describe_source(r.offending_node)}" might not hold')
        self.add_reason_transformer(
            lambda r: isinstance(r, InsufficientPermission),
            lambda r: f"There might be insufficient permission to {describe_source(r.offending_node)}")

    # -- registration ------------------------------------------------------

    def add_error_transformer(self, matches: FailureMatcher, build: FailureBuilder) -> None:
        self._error_transformers.insert(0, (matches, build))

    def add_reason_transformer(self, matches: ReasonMatcher, build: ReasonBuilder) -> None:
        self._reason_transformers.insert(0, (matches, build))

    @property
    def error_transformer_count(self) -> int:
        return len(self._error_transformers)

    # -- translation -------------------------------------------------------

    def translate(self, failure: VerificationFailure) -> Optional[VerificationError]:
        for matches, build in self._error_transformers:
            if matches(failure):
                return build(failure)
        logger.debug("No transformer for %s; dropping it", failure.readable_message)
        return None

    def translate_reason(self, reason: FailureReason) -> str:
        for matches, build in self._reason_transformers:
            if matches(reason):
                return build(reason)
        return reason.readable_message

    def translate_all(self, failures: list[VerificationFailure]) -> list[VerificationError]:
        translated = [self.translate(f) for f in failures]
        return [e for e in translated if e is not None]

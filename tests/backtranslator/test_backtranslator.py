"""atomica Error Backtranslation Tests — BT-001 through BT-005."""

from atomica import ivl
from atomica.ast_nodes import (
    Assert, Assign, BinaryOp, FalseLit, HeapWrite, IdnExp, IdnUse, IntLit, Location, PostconditionClause,
)
from atomica.backtranslator import ErrorBacktranslator, describe_source
from atomica.failures import (
    AssertFailed, AssertionFalse, AssignmentFailed, ExhaleFailed, FailureReason, InsufficientPermission,
    PostconditionViolated,
)
from atomica.reporting import (
    AssertionViolationError, AssignmentError, PostconditionError, UseAtomicError, VerificationError,
)


def false_assertion():
    """An `assert false` statement and the failure a backend reports for it."""
    condition = FalseLit()
    statement = Assert(condition)
    exp = ivl.BoolLit(False).with_source(condition)
    stmt = ivl.Assert(exp).with_source(statement)
    return statement, AssertFailed(stmt, AssertionFalse(exp))


# ===========================================================================
# BT-001: Default transformers
# ===========================================================================

class TestBT001:
    """BT-001: Backend failures map to the matching source-level error."""

    def test_assert_failure(self):
        statement, failure = false_assertion()
        error = ErrorBacktranslator().translate(failure)
        assert isinstance(error, AssertionViolationError)
        assert error.node is statement
        assert error.reasons == ['Assertion "false" might not hold']
        assert error.message == 'Assertion might not hold. Assertion "false" might not hold'

    def test_postcondition_failure(self):
        condition = BinaryOp("==", IdnExp(IdnUse("v")), IntLit(1))
        clause = PostconditionClause(condition)
        post = ivl.BinExp("==", ivl.LocalVar("v"), ivl.IntLit(1)).with_source(clause)
        conjunct = ivl.BinExp("==", ivl.LocalVar("v"), ivl.IntLit(1)).with_source(condition)
        error = ErrorBacktranslator().translate(PostconditionViolated(post, AssertionFalse(conjunct)))
        assert isinstance(error, PostconditionError)
        assert error.node is clause
        assert error.reasons == ['Assertion "v == 1" might not hold']

    def test_heap_write_permission_failure(self):
        location = Location(IdnUse("x"), "val")
        statement = HeapWrite(location, IntLit(1))
        access = ivl.FieldAccess(ivl.LocalVar("x", ivl.REF), "val").with_source(location)
        stmt = ivl.FieldAssign(access, ivl.IntLit(1)).with_source(statement)
        error = ErrorBacktranslator().translate(AssignmentFailed(stmt, InsufficientPermission(access)))
        assert isinstance(error, AssignmentError)
        assert error.reasons == ["There might be insufficient permission to x.val"]

    def test_assignment_failure_needs_an_assignment_source(self):
        statement = Assert(FalseLit())
        stmt = ivl.LocalVarAssign(ivl.LocalVar("v"), ivl.IntLit(0)).with_source(statement)
        failure = AssignmentFailed(stmt, FailureReason(stmt))
        assert ErrorBacktranslator().translate(failure) is None

    def test_local_assignment_failure(self):
        statement = Assign(IdnUse("v"), IntLit(0))
        stmt = ivl.LocalVarAssign(ivl.LocalVar("v"), ivl.IntLit(0)).with_source(statement)
        error = ErrorBacktranslator().translate(AssignmentFailed(stmt, FailureReason(stmt)))
        assert isinstance(error, AssignmentError)
        assert error.reasons == ["Verification failed at v := 0"]


# ===========================================================================
# BT-002: Unmatched failures
# ===========================================================================

class TestBT002:
    """BT-002: Failures no transformer claims are dropped."""

    def test_failure_without_source(self):
        stmt = ivl.Assert(ivl.BoolLit(False))
        failure = AssertFailed(stmt, AssertionFalse(stmt.exp))
        assert ErrorBacktranslator().translate(failure) is None

    def test_unhandled_failure_kind(self):
        _, failure = false_assertion()
        exhale = ExhaleFailed(failure.offending_node, failure.reason)
        assert ErrorBacktranslator().translate(exhale) is None

    def test_translate_all_skips_dropped(self):
        statement, failure = false_assertion()
        orphan = AssertFailed(ivl.Assert(ivl.BoolLit(False)), AssertionFalse(ivl.BoolLit(False)))
        errors = ErrorBacktranslator().translate_all([orphan, failure])
        assert len(errors) == 1
        assert errors[0].node is statement


# ===========================================================================
# BT-003: Precedence
# ===========================================================================

class TestBT003:
    """BT-003: The most recently registered transformer wins."""

    def test_later_registration_overrides_default(self):
        statement, failure = false_assertion()
        backtranslator = ErrorBacktranslator()
        backtranslator.add_error_transformer(
            lambda f: f.caused_by(failure.offending_node),
            lambda f: UseAtomicError(statement, "custom"))
        error = backtranslator.translate(failure)
        assert isinstance(error, UseAtomicError)
        assert error.reasons == ["custom"]

    def test_later_of_two_custom_transformers(self):
        statement, failure = false_assertion()
        backtranslator = ErrorBacktranslator()
        backtranslator.add_error_transformer(lambda f: True, lambda f: VerificationError(statement, "first"))
        backtranslator.add_error_transformer(lambda f: True, lambda f: VerificationError(statement, "second"))
        assert backtranslator.translate(failure).reasons == ["second"]

    def test_non_matching_transformer_is_skipped(self):
        _, failure = false_assertion()
        backtranslator = ErrorBacktranslator()
        backtranslator.add_error_transformer(lambda f: False, lambda f: None)
        assert isinstance(backtranslator.translate(failure), AssertionViolationError)

    def test_registration_count(self):
        backtranslator = ErrorBacktranslator()
        before = backtranslator.error_transformer_count
        backtranslator.add_error_transformer(lambda f: False, lambda f: None)
        assert backtranslator.error_transformer_count == before + 1


# ===========================================================================
# BT-004: Reasons
# ===========================================================================

class TestBT004:
    """BT-004: Reason transformers and their fallback."""

    def test_unknown_reason_uses_readable_message(self):
        exp = ivl.BoolLit(True)
        assert ErrorBacktranslator().translate_reason(FailureReason(exp)) == "Verification failed at true"

    def test_custom_reason_transformer(self):
        exp = ivl.BoolLit(False)
        backtranslator = ErrorBacktranslator()
        backtranslator.add_reason_transformer(lambda r: r.caused_by(exp), lambda r: "the state changed")
        assert backtranslator.translate_reason(AssertionFalse(exp)) == "the state changed"

    def test_caused_by_is_identity(self):
        exp = ivl.BoolLit(False)
        assert AssertionFalse(exp).caused_by(exp)
        assert not AssertionFalse(exp).caused_by(ivl.BoolLit(False))


# ===========================================================================
# BT-005: Source descriptions
# ===========================================================================

class TestBT005:
    """BT-005: describe_source prefers the printable program node."""

    def test_printable_source(self):
        exp = ivl.BinExp("+", ivl.LocalVar("v"), ivl.IntLit(1))
        exp.with_source(BinaryOp("+", IdnExp(IdnUse("v")), IntLit(1)))
        assert describe_source(exp) == "v + 1"

    def test_missing_source_renders_ivl(self):
        assert describe_source(ivl.BinExp("+", ivl.LocalVar("v"), ivl.IntLit(1))) == "(v + 1)"

    def test_unprintable_source_renders_ivl(self):
        stmt = ivl.Assert(ivl.BoolLit(True)).with_source(Assert(FalseLit()))
        assert describe_source(stmt) == "assert true"

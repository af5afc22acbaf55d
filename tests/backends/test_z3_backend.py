"""atomica Backend Tests — BE-001 through BE-006.

Tests for:
  - Backend construction and lifecycle
  - Pure obligations checked by the Z3 backend: asserts, postconditions,
    callee preconditions and loop invariants
  - Heap, old-state and function modelling
"""

import pytest

from atomica import ivl
from atomica.backends import BACKENDS, NullBackend, Z3Backend, create_backend
from atomica.failures import (
    AssertFailed, AssertionFalse, ExhaleFailed, PostconditionViolated, PreconditionInCallFalse,
)


def local(name, typ=ivl.INT):
    return ivl.LocalVar(name, typ)


def decl(name, typ=ivl.INT):
    return ivl.LocalVarDecl(name, typ)


def binary(op, left, right):
    return ivl.BinExp(op, left, right)


def num(value):
    return ivl.IntLit(value)


def method(name="m", body=(), **kwargs):
    return ivl.Method(name, body=ivl.Seqn(list(body)), **kwargs)


def run(*methods, fields=(), functions=()):
    program = ivl.Program(fields=list(fields), functions=list(functions), methods=list(methods))
    with Z3Backend(timeout_ms=5000) as backend:
        return backend.verify(program)


# ===========================================================================
# BE-001: Construction and lifecycle
# ===========================================================================

class TestBE001:
    """BE-001: Backends by name, start and stop."""

    def test_registry(self):
        assert set(BACKENDS) == {"z3", "none"}

    def test_create_z3(self):
        backend = create_backend("z3", timeout_ms=250)
        assert isinstance(backend, Z3Backend)
        assert backend.timeout_ms == 250
        assert backend.name == "z3"

    def test_create_unknown(self):
        with pytest.raises(ValueError, match="Unknown backend 'boogie'"):
            create_backend("boogie")

    def test_context_manager(self):
        backend = NullBackend()
        assert not backend.running
        with backend as running:
            assert running is backend
            assert backend.running
        assert not backend.running

    def test_null_backend_accepts_everything(self):
        program = ivl.Program(methods=[method(body=[ivl.Assert(ivl.BoolLit(False))])])
        assert create_backend("none").verify(program) == []

    def test_verify_starts_backend(self):
        backend = Z3Backend()
        backend.verify(ivl.Program())
        assert backend.running


# ===========================================================================
# BE-002: Assertions
# ===========================================================================

class TestBE002:
    """BE-002: assert and exhale obligations."""

    def test_assert_true(self):
        assert run(method(body=[ivl.Assert(ivl.BoolLit(True))])) == []

    def test_assert_false(self):
        stmt = ivl.Assert(ivl.BoolLit(False))
        failures = run(method(body=[stmt]))
        assert len(failures) == 1
        assert isinstance(failures[0], AssertFailed)
        assert failures[0].caused_by(stmt)
        assert isinstance(failures[0].reason, AssertionFalse)
        assert failures[0].reason.caused_by(stmt.exp)

    def test_first_failing_conjunct_is_the_reason(self):
        second = binary("==", local("v"), num(2))
        stmt = ivl.Assert(binary("&&", binary("==", local("v"), num(1)), second))
        failures = run(method(locals=[decl("v")], body=[ivl.LocalVarAssign(local("v"), num(1)), stmt]))
        assert len(failures) == 1
        assert failures[0].reason.caused_by(second)

    def test_assignment_is_tracked(self):
        body = [
            ivl.LocalVarAssign(local("v"), num(1)),
            ivl.LocalVarAssign(local("v"), binary("+", local("v"), num(1))),
            ivl.Assert(binary("==", local("v"), num(2))),
        ]
        assert run(method(locals=[decl("v")], body=body)) == []

    def test_inhale_then_assert(self):
        condition = binary(">", local("v"), num(0))
        body = [ivl.Inhale(condition), ivl.Assert(binary(">=", local("v"), num(1)))]
        assert run(method(locals=[decl("v")], body=body)) == []

    def test_exhale_failure(self):
        stmt = ivl.Exhale(binary(">", local("v"), num(0)))
        failures = run(method(locals=[decl("v")], body=[stmt]))
        assert [type(f) for f in failures] == [ExhaleFailed]

    def test_failure_is_assumed_afterwards(self):
        body = [
            ivl.Assert(binary(">", local("v"), num(0))),
            ivl.Assert(binary(">", local("v"), num(0))),
        ]
        failures = run(method(locals=[decl("v")], body=body))
        assert len(failures) == 1

    def test_permissions_are_not_checked(self):
        access = ivl.FieldAccessPredicate(ivl.FieldAccess(local("x", ivl.REF), "val"))
        failures = run(
            method(formal_args=[decl("x", ivl.REF)], body=[ivl.Exhale(access)]),
            fields=[ivl.Field("val", ivl.INT)])
        assert failures == []


# ===========================================================================
# BE-003: Postconditions and branches
# ===========================================================================

class TestBE003:
    """BE-003: Postconditions are checked on every path."""

    def test_postcondition_holds(self):
        m = method(
            formal_returns=[decl("res")],
            posts=[binary("==", local("res"), num(1))],
            body=[ivl.LocalVarAssign(local("res"), num(1))])
        assert run(m) == []

    def test_postcondition_violated(self):
        post = binary("==", local("res"), num(2))
        m = method(formal_returns=[decl("res")], posts=[post], body=[ivl.LocalVarAssign(local("res"), num(1))])
        failures = run(m)
        assert len(failures) == 1
        assert isinstance(failures[0], PostconditionViolated)
        assert failures[0].caused_by(post)

    def test_branches(self):
        branch = ivl.If(
            binary(">", local("x"), num(0)),
            ivl.Seqn([ivl.LocalVarAssign(local("y"), local("x"))]),
            ivl.Seqn([ivl.LocalVarAssign(local("y"), binary("-", num(0), local("x")))]))
        m = method(
            formal_args=[decl("x")], formal_returns=[decl("y")],
            posts=[binary(">=", local("y"), num(0))], body=[branch])
        assert run(m) == []

    def test_one_failing_branch_reports_once(self):
        post = binary(">", local("y"), num(0))
        branch = ivl.If(
            binary(">", local("x"), num(0)),
            ivl.Seqn([ivl.LocalVarAssign(local("y"), local("x"))]),
            ivl.Seqn([ivl.LocalVarAssign(local("y"), local("x"))]))
        m = method(formal_args=[decl("x")], formal_returns=[decl("y")], posts=[post], body=[branch])
        failures = run(m)
        assert len(failures) == 1
        assert failures[0].caused_by(post)


# ===========================================================================
# BE-004: Loops and calls
# ===========================================================================

class TestBE004:
    """BE-004: Loop invariants and callee contracts."""

    def counting_loop(self, bound):
        return ivl.While(
            binary("<", local("i"), num(3)),
            [binary("<=", local("i"), num(bound))],
            ivl.Seqn([ivl.LocalVarAssign(local("i"), binary("+", local("i"), num(1)))]))

    def test_invariant_establishes_exit_state(self):
        body = [
            ivl.LocalVarAssign(local("i"), num(0)),
            self.counting_loop(3),
            ivl.Assert(binary("==", local("i"), num(3))),
        ]
        assert run(method(locals=[decl("i")], body=body)) == []

    def test_invariant_not_preserved(self):
        loop = self.counting_loop(2)
        body = [ivl.LocalVarAssign(local("i"), num(0)), loop]
        failures = run(method(locals=[decl("i")], body=body))
        assert len(failures) == 1
        assert isinstance(failures[0], AssertFailed)
        assert failures[0].caused_by(loop.invariants[0])

    def test_invariant_not_established(self):
        loop = self.counting_loop(3)
        body = [ivl.LocalVarAssign(local("i"), num(5)), loop]
        failures = run(method(locals=[decl("i")], body=body))
        assert [f.offending_node for f in failures] == [loop.invariants[0]]

    def callee(self):
        return method(
            "inc",
            formal_args=[decl("a")],
            formal_returns=[decl("b")],
            pres=[binary(">=", local("a"), num(0))],
            posts=[binary("==", local("b"), binary("+", local("a"), num(1)))],
            body=[ivl.LocalVarAssign(local("b"), binary("+", local("a"), num(1)))])

    def test_callee_postcondition_is_assumed(self):
        caller = method(
            "caller", locals=[decl("c")],
            body=[
                ivl.MethodCall("inc", [num(1)], [local("c")]),
                ivl.Assert(binary("==", local("c"), num(2))),
            ])
        assert run(self.callee(), caller) == []

    def test_callee_precondition_violated(self):
        call = ivl.MethodCall("inc", [num(-1)], [local("c")])
        caller = method("caller", locals=[decl("c")], body=[call])
        failures = run(self.callee(), caller)
        assert len(failures) == 1
        assert isinstance(failures[0], PreconditionInCallFalse)
        assert failures[0].caused_by(call)


# ===========================================================================
# BE-005: Heap and old state
# ===========================================================================

class TestBE005:
    """BE-005: Field updates, old() and labelled old."""

    FIELDS = [ivl.Field("val", ivl.INT)]

    def val(self):
        return ivl.FieldAccess(local("x", ivl.REF), "val")

    def test_field_update(self):
        body = [
            ivl.FieldAssign(self.val(), num(3)),
            ivl.Assert(binary("==", self.val(), num(3))),
        ]
        m = method(formal_args=[decl("x", ivl.REF)], body=body)
        assert run(m, fields=self.FIELDS) == []

    def test_old_refers_to_method_entry(self):
        m = method(
            formal_args=[decl("x", ivl.REF)],
            posts=[binary("==", self.val(), binary("+", ivl.Old(self.val()), num(1)))],
            body=[ivl.FieldAssign(self.val(), binary("+", self.val(), num(1)))])
        assert run(m, fields=self.FIELDS) == []

    def test_labelled_old(self):
        body = [
            ivl.FieldAssign(self.val(), num(1)),
            ivl.Label("before"),
            ivl.FieldAssign(self.val(), num(2)),
            ivl.Assert(binary("==", ivl.LabelledOld(self.val(), "before"), num(1))),
        ]
        m = method(formal_args=[decl("x", ivl.REF)], body=body)
        assert run(m, fields=self.FIELDS) == []

    def test_predicate_inhale_forgets_heap(self):
        predicate = ivl.Predicate("P", [decl("x", ivl.REF)])
        body = [
            ivl.FieldAssign(self.val(), num(1)),
            ivl.Inhale(ivl.PredicateAccessPredicate(ivl.PredicateAccess("P", [local("x", ivl.REF)]))),
            ivl.Assert(binary("==", self.val(), num(1))),
        ]
        program = ivl.Program(
            fields=self.FIELDS, predicates=[predicate],
            methods=[method(formal_args=[decl("x", ivl.REF)], body=body)])
        failures = Z3Backend().verify(program)
        assert [type(f) for f in failures] == [AssertFailed]


# ===========================================================================
# BE-006: Functions and sets
# ===========================================================================

class TestBE006:
    """BE-006: Function application and set operators."""

    def test_function_body_is_inlined(self):
        double = ivl.Function(
            "double", [decl("n")], ivl.INT, body=binary("+", local("n"), local("n")))
        stmt = ivl.Assert(binary("==", ivl.FuncApp("double", [num(2)], ivl.INT), num(4)))
        assert run(method(body=[stmt]), functions=[double]) == []

    def test_bodiless_function_posts_are_assumed(self):
        positive = ivl.Function(
            "positive", [decl("n")], ivl.INT, posts=[binary(">", ivl.Result(ivl.INT), num(0))])
        stmt = ivl.Assert(binary(">", ivl.FuncApp("positive", [local("v")], ivl.INT), num(0)))
        assert run(method(locals=[decl("v")], body=[stmt]), functions=[positive]) == []

    def test_bodiless_function_is_uninterpreted(self):
        opaque = ivl.Function("opaque", [decl("n")], ivl.INT)
        stmt = ivl.Assert(binary("==", ivl.FuncApp("opaque", [num(1)], ivl.INT), num(1)))
        assert len(run(method(body=[stmt]), functions=[opaque])) == 1

    def test_set_membership(self):
        elements = ivl.ExplicitSet([num(1), num(2)], ivl.INT)
        stmt = ivl.Assert(binary("&&", binary("in", num(2), elements), ivl.UnExp("!", binary("in", num(3), elements))))
        assert run(method(body=[stmt])) == []

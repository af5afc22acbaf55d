"""atomica Z3 Backend — symbolic execution of the pure IVL fragment.

Every method is executed path by path. The heap is one Z3 array per field;
local variables live in a symbolic store. Accessibility predicates are taken
to hold, so this backend never reports missing permissions. It does check
every pure obligation:

  assert / exhale         AssertFailed / ExhaleFailed
  method postconditions   PostconditionViolated
  callee preconditions    PreconditionInCallFalse
  loop invariants         AssertFailed (on entry and preservation)

Each obligation is split into its conjuncts and the first conjunct that
cannot be proven is reported as the ``AssertionFalse`` reason.

Modelling choices:
  - Inhaling a predicate permission havocs the heap. This is what makes
    region stabilization forget everything known about region states.
  - Functions with a body are inlined. Bodiless functions are uninterpreted
    and their postconditions are assumed at every application.
  - Calls havoc the heap and the call targets, then assume the callee's
    postconditions.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Optional

import z3

from atomica import ivl
from atomica.backends.base import VerifierBackend
from atomica.failures import (
    AssertFailed, AssertionFalse, ExhaleFailed, PostconditionViolated, PreconditionInCallFalse,
    VerificationFailure,
)

logger = logging.getLogger(__name__)

RESULT_KEY = "$result"

Heap = dict[str, z3.ExprRef]
Store = dict[str, z3.ExprRef]


@dataclass
class SymbolicState:
    """One execution path."""
    store: Store
    heap: Heap
    old_heap: Heap
    labels: dict[str, Heap] = field(default_factory=dict)
    path: list[z3.BoolRef] = field(default_factory=list)

    def fork(self) -> SymbolicState:
        return SymbolicState(
            dict(self.store), dict(self.heap), self.old_heap, dict(self.labels), list(self.path))


class Z3Backend(VerifierBackend):
    def __init__(self, timeout_ms: int = 10000):
        super().__init__()
        self.timeout_ms = timeout_ms
        self._program: Optional[ivl.Program] = None
        self._failures: list[VerificationFailure] = []
        self._reported: set[tuple[int, int]] = set()
        self._fresh = itertools.count()
        self._ref_sort = z3.DeclareSort("Ref")
        self._null = z3.Const("null", self._ref_sort)

    @property
    def name(self) -> str:
        return "z3"

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    def verify(self, program: ivl.Program) -> list[VerificationFailure]:
        if not self.running:
            self.start()
        self._program = program
        self._failures = []
        self._reported = set()
        for method in program.methods:
            logger.debug("Verifying method %s", method.name)
            self._verify_method(method)
        logger.info("z3 backend reported %d failure(s)", len(self._failures))
        return list(self._failures)

    def _verify_method(self, method: ivl.Method) -> None:
        store: Store = {}
        for decl in [*method.formal_args, *method.formal_returns, *method.locals]:
            store[decl.name] = self._fresh_const(decl.name, decl.typ)
        heap = self._fresh_heap()
        state = SymbolicState(store, heap, heap)

        for pre in method.pres:
            self._inhale(pre, state)
        state.old_heap = dict(state.heap)

        for final in self._exec(method.body, [state]):
            for post in method.posts:
                self._check(post, final, lambda node, reason, p=post: PostconditionViolated(p, reason))
                self._assume(post, final)

    # -----------------------------------------------------------------------
    # Sorts and fresh symbols
    # -----------------------------------------------------------------------

    def _sort(self, typ: ivl.IvlType) -> z3.SortRef:
        if typ == ivl.INT:
            return z3.IntSort()
        if typ == ivl.BOOL:
            return z3.BoolSort()
        if typ == ivl.REF:
            return self._ref_sort
        if isinstance(typ, ivl.SetT):
            return z3.SetSort(self._sort(typ.element))
        if isinstance(typ, ivl.SeqT):
            return z3.SeqSort(self._sort(typ.element))
        return z3.IntSort()

    def _fresh_const(self, name: str, typ: ivl.IvlType) -> z3.ExprRef:
        return z3.Const(f"{name}@{next(self._fresh)}", self._sort(typ))

    def _fresh_heap(self) -> Heap:
        assert self._program is not None
        return {
            f.name: z3.Const(f"{f.name}@{next(self._fresh)}", z3.ArraySort(self._ref_sort, self._sort(f.typ)))
            for f in self._program.fields
        }

    # -----------------------------------------------------------------------
    # Statements
    # -----------------------------------------------------------------------

    def _exec(self, stmt: ivl.Stmt, states: list[SymbolicState]) -> list[SymbolicState]:
        if isinstance(stmt, ivl.Seqn):
            for s in stmt.stmts:
                states = self._exec(s, states)
            return states

        result: list[SymbolicState] = []
        for state in states:
            result.extend(self._exec_one(stmt, state))
        return result

    def _exec_one(self, stmt: ivl.Stmt, state: SymbolicState) -> list[SymbolicState]:
        if isinstance(stmt, (ivl.Comment, ivl.Fold, ivl.Unfold)):
            return [state]

        if isinstance(stmt, ivl.Label):
            state.labels[stmt.name] = dict(state.heap)
            return [state]

        if isinstance(stmt, ivl.Inhale):
            self._inhale(stmt.exp, state)
            return [state]

        if isinstance(stmt, ivl.Exhale):
            self._check(stmt.exp, state, lambda node, reason: ExhaleFailed(stmt, reason))
            return [state]

        if isinstance(stmt, ivl.Assert):
            self._check(stmt.exp, state, lambda node, reason: AssertFailed(stmt, reason))
            return [state]

        if isinstance(stmt, ivl.LocalVarAssign):
            state.store[stmt.lhs.name] = self._eval(stmt.rhs, state)
            return [state]

        if isinstance(stmt, ivl.FieldAssign):
            receiver = self._eval(stmt.lhs.receiver, state)
            value = self._eval(stmt.rhs, state)
            state.heap[stmt.lhs.field_name] = z3.Store(state.heap[stmt.lhs.field_name], receiver, value)
            return [state]

        if isinstance(stmt, ivl.Havoc):
            state.store[stmt.variable.name] = self._fresh_const(stmt.variable.name, stmt.variable.typ)
            return [state]

        if isinstance(stmt, ivl.If):
            cond = self._eval(stmt.cond, state)
            then_state, else_state = state, state.fork()
            then_state.path.append(cond)
            else_state.path.append(z3.Not(cond))
            return self._exec(stmt.thn, [then_state]) + self._exec(stmt.els, [else_state])

        if isinstance(stmt, ivl.While):
            return self._exec_while(stmt, state)

        if isinstance(stmt, ivl.MethodCall):
            return self._exec_call(stmt, state)

        raise NotImplementedError(f"z3 backend cannot execute {type(stmt).__name__}")

    def _exec_while(self, loop: ivl.While, state: SymbolicState) -> list[SymbolicState]:
        for inv in loop.invariants:
            self._check(inv, state, lambda node, reason: AssertFailed(inv, reason))

        assigned = {s.lhs.name: s.lhs.typ for s in ivl.flatten(loop.body) if isinstance(s, ivl.LocalVarAssign)}
        assigned.update(
            {t.name: t.typ for s in ivl.flatten(loop.body) if isinstance(s, ivl.MethodCall) for t in s.targets})

        def havoc_targets(s: SymbolicState) -> None:
            for name, typ in assigned.items():
                s.store[name] = self._fresh_const(name, typ)
            s.heap = self._fresh_heap()

        body_state = state.fork()
        havoc_targets(body_state)
        for inv in loop.invariants:
            self._assume(inv, body_state)
        body_state.path.append(self._eval(loop.cond, body_state))
        for end_of_body in self._exec(loop.body, [body_state]):
            for inv in loop.invariants:
                self._check(inv, end_of_body, lambda node, reason, i=inv: AssertFailed(i, reason))

        havoc_targets(state)
        for inv in loop.invariants:
            self._assume(inv, state)
        state.path.append(z3.Not(self._eval(loop.cond, state)))
        return [state]

    def _exec_call(self, call: ivl.MethodCall, state: SymbolicState) -> list[SymbolicState]:
        assert self._program is not None
        callee = self._program.find_method(call.method_name)
        if callee is None:
            raise NotImplementedError(f"Unknown method {call.method_name}")

        args = [self._eval(a, state) for a in call.args]
        callee_store: Store = {d.name: v for d, v in zip(callee.formal_args, args)}
        for pre in callee.pres:
            self._check(pre, state, lambda node, reason: PreconditionInCallFalse(call, reason), callee_store)

        pre_call_heap = dict(state.heap)
        state.heap = self._fresh_heap()
        for decl, target in zip(callee.formal_returns, call.targets):
            value = self._fresh_const(target.name, target.typ)
            state.store[target.name] = value
            callee_store[decl.name] = value

        old_heap = state.old_heap
        state.old_heap = pre_call_heap
        for post in callee.posts:
            self._assume(post, state, callee_store)
        state.old_heap = old_heap
        return [state]

    # -----------------------------------------------------------------------
    # Obligations
    # -----------------------------------------------------------------------

    def _inhale(self, exp: ivl.Exp, state: SymbolicState) -> None:
        for conjunct in ivl.conjuncts(exp):
            if _mentions_predicate_permission(conjunct):
                state.heap = self._fresh_heap()
            if not _mentions_permission(conjunct):
                state.path.append(self._eval(conjunct, state))

    def _assume(self, exp: ivl.Exp, state: SymbolicState, store: Optional[Store] = None) -> None:
        for conjunct in ivl.conjuncts(exp):
            if not _mentions_permission(conjunct):
                state.path.append(self._eval(conjunct, state, store))

    def _check(self, exp: ivl.Exp, state: SymbolicState, failure, store: Optional[Store] = None) -> None:
        """Prove every pure conjunct of exp; report the first that fails, then assume it."""
        reported = False
        for conjunct in ivl.conjuncts(exp):
            if _mentions_permission(conjunct):
                continue
            goal = self._eval(conjunct, state, store)
            if not reported and not self._valid(state.path, goal):
                self._report(failure(conjunct, AssertionFalse(conjunct)))
                reported = True
            state.path.append(goal)

    def _valid(self, assumptions: list[z3.BoolRef], goal: z3.BoolRef) -> bool:
        solver = z3.Solver()
        solver.set("timeout", self.timeout_ms)
        solver.add(*assumptions)
        solver.add(z3.Not(goal))
        return solver.check() == z3.unsat

    def _report(self, failure: VerificationFailure) -> None:
        key = (id(failure.offending_node), id(failure.reason.offending_node))
        if key in self._reported:
            return
        self._reported.add(key)
        logger.debug("Failure: %s", failure.readable_message)
        self._failures.append(failure)

    # -----------------------------------------------------------------------
    # Expressions
    # -----------------------------------------------------------------------

    def _eval(
        self,
        exp: ivl.Exp,
        state: SymbolicState,
        store: Optional[Store] = None,
        heap: Optional[Heap] = None,
    ) -> z3.ExprRef:
        store = state.store if store is None else store
        heap = state.heap if heap is None else heap

        def ev(e: ivl.Exp) -> z3.ExprRef:
            return self._eval(e, state, store, heap)

        if isinstance(exp, ivl.IntLit):
            return z3.IntVal(exp.value)
        if isinstance(exp, ivl.BoolLit):
            return z3.BoolVal(exp.value)
        if isinstance(exp, ivl.NullLit):
            return self._null
        if isinstance(exp, ivl.LocalVar):
            if exp.name not in store:
                store[exp.name] = self._fresh_const(exp.name, exp.typ)
            return store[exp.name]
        if isinstance(exp, ivl.Result):
            return store[RESULT_KEY]

        if isinstance(exp, ivl.BinExp):
            return self._binary(exp.op, ev(exp.left), ev(exp.right))
        if isinstance(exp, ivl.UnExp):
            operand = ev(exp.operand)
            return z3.Not(operand) if exp.op == "!" else -operand
        if isinstance(exp, ivl.CondExp):
            return z3.If(ev(exp.cond), ev(exp.thn), ev(exp.els))

        if isinstance(exp, ivl.FieldAccess):
            return z3.Select(heap[exp.field_name], ev(exp.receiver))
        if isinstance(exp, (ivl.FieldAccessPredicate, ivl.PredicateAccessPredicate, ivl.PermPositive)):
            return z3.BoolVal(True)
        if isinstance(exp, ivl.FuncApp):
            return self._apply(exp, [ev(a) for a in exp.args], state, heap)
        if isinstance(exp, ivl.Old):
            return self._eval(exp.exp, state, store, state.old_heap)
        if isinstance(exp, ivl.LabelledOld):
            return self._eval(exp.exp, state, store, state.labels.get(exp.label, heap))
        if isinstance(exp, ivl.Unfolding):
            return ev(exp.body)

        if isinstance(exp, ivl.ExplicitSet):
            element_sort = self._sort(exp.element_type)
            result = z3.EmptySet(element_sort)
            for element in exp.elements:
                result = z3.SetAdd(result, ev(element))
            return result
        if isinstance(exp, ivl.ExplicitSeq):
            if not exp.elements:
                return z3.Empty(z3.SeqSort(self._sort(exp.element_type)))
            units = [z3.Unit(ev(e)) for e in exp.elements]
            return units[0] if len(units) == 1 else z3.Concat(*units)
        if isinstance(exp, ivl.SeqLength):
            return z3.Length(ev(exp.seq))
        if isinstance(exp, ivl.SeqIndex):
            return ev(exp.seq)[ev(exp.index)]
        if isinstance(exp, ivl.SeqDrop):
            seq, count = ev(exp.seq), ev(exp.count)
            return z3.SubSeq(seq, count, z3.Length(seq) - count)

        if isinstance(exp, (ivl.SetComprehension, ivl.Forall)):
            decls = [exp.variable] if isinstance(exp, ivl.SetComprehension) else exp.variables
            bound = {d.name: self._fresh_const(d.name, d.typ) for d in decls}
            inner = {**store, **bound}
            variables = list(bound.values())
            if isinstance(exp, ivl.SetComprehension):
                return z3.Lambda(variables, self._eval(exp.filter, state, inner, heap))
            return z3.ForAll(variables, self._eval(exp.body, state, inner, heap))

        raise NotImplementedError(f"z3 backend cannot evaluate {type(exp).__name__}")

    @staticmethod
    def _binary(op: str, left: z3.ExprRef, right: z3.ExprRef) -> z3.ExprRef:
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            return left / right
        if op == "%":
            return left % right
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "&&":
            return z3.And(left, right)
        if op == "||":
            return z3.Or(left, right)
        if op == "==>":
            return z3.Implies(left, right)
        if op == "in":
            return z3.IsMember(left, right)
        if op == "subset":
            return z3.IsSubset(left, right)
        if op == "union":
            return z3.SetUnion(left, right)
        if op == "intersection":
            return z3.SetIntersect(left, right)
        if op == "setminus":
            return z3.SetDifference(left, right)
        if op == "++":
            return z3.Concat(left, right)
        raise NotImplementedError(f"z3 backend cannot evaluate operator {op}")

    def _apply(
        self, app: ivl.FuncApp, args: list[z3.ExprRef], state: SymbolicState, heap: Heap,
    ) -> z3.ExprRef:
        assert self._program is not None
        function = self._program.find_function(app.function_name)
        if function is None:
            raise NotImplementedError(f"Unknown function {app.function_name}")

        store: Store = {d.name: a for d, a in zip(function.formal_args, args)}
        if function.body is not None:
            return self._eval(function.body, state, store, heap)

        symbol = z3.Function(
            function.name, *[self._sort(d.typ) for d in function.formal_args], self._sort(function.typ))
        term = symbol(*args)
        store[RESULT_KEY] = term
        for post in function.posts:
            state.path.append(self._eval(post, state, store, heap))
        return term


def _mentions_permission(exp: ivl.Exp) -> bool:
    return any(ivl.is_permission(e) or isinstance(e, ivl.PermPositive) for e in _subexpressions(exp))


def _mentions_predicate_permission(exp: ivl.Exp) -> bool:
    return any(isinstance(e, ivl.PredicateAccessPredicate) for e in _subexpressions(exp))


def _subexpressions(exp: ivl.Exp):
    yield exp
    if isinstance(exp, ivl.Unfolding):
        # the unfolded predicate is only a permission requirement of the body
        yield from _subexpressions(exp.body)
        return
    for value in vars(exp).values():
        if isinstance(value, ivl.Exp):
            yield from _subexpressions(value)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, ivl.Exp):
                    yield from _subexpressions(item)

"""Shared program trees for the atomica test-suite.

Every fixture builds a fresh tree: node identity is what the analyser and the
translator key on, so trees are never shared between tests.
"""

import pytest

from atomica.ast_nodes import (
    Action, Assign, BinaryOp, Block, ExplicitSet, FieldDecl, FormalArgumentDecl, GuardDecl,
    GuardExp, GuardModifier, HeapRead, HeapWrite, IdnDef, IdnExp, IdnUse, IntLit, IntSet,
    InterferenceClause, LocalVariableDecl, Location, LogicalVariableBinder, MakeAtomic,
    OpenRegion, PointsTo, PostconditionClause, PreconditionClause, PredicateExp, Procedure,
    ProcedureAtomicity, Program, Region, Struct, TrueLit, UpdateRegion, UseAtomic,
)
from atomica.types import INT, REGION_ID, RefType


def var(name):
    return IdnExp(IdnUse(name))


def region_assertion(region, *args):
    return PredicateExp(IdnUse(region), [var(a) if isinstance(a, str) else a for a in args])


def counter_region(name="Cell", guard="incr", modifier=GuardModifier.UNIQUE):
    """region name(id r) { guards { guard } interpretation { true } state { 0 }
                           actions { guard: ?n ~> Set(n + 1) } }"""
    return Region(
        IdnDef(name),
        region_id=FormalArgumentDecl(IdnDef("r"), REGION_ID),
        guards=[GuardDecl(IdnDef(guard), modifier)],
        interpretation=TrueLit(),
        state=IntLit(0),
        actions=[Action(
            IdnUse(guard),
            LogicalVariableBinder(IdnDef("n")),
            ExplicitSet([BinaryOp("+", var("n"), IntLit(1))]),
        )],
    )


def abstract_procedure(name, region, guard, body, locals_=None, region_id="r"):
    """An abstract-atomic procedure owning region_id with an interference clause."""
    return Procedure(
        IdnDef(name),
        formal_args=[FormalArgumentDecl(IdnDef(region_id), REGION_ID)],
        pres=[PreconditionClause(BinaryOp(
            "&&", region_assertion(region, region_id), GuardExp(IdnUse(guard), IdnUse(region_id))))],
        posts=[PostconditionClause(BinaryOp(
            "&&", region_assertion(region, region_id), GuardExp(IdnUse(guard), IdnUse(region_id))))],
        inters=[InterferenceClause(LogicalVariableBinder(IdnDef("s")), IntSet(), IdnUse(region_id))],
        locals=locals_ or [],
        body=body,
        atomicity=ProcedureAtomicity.ABSTRACT_ATOMIC,
    )


def make_atomic_increment():
    """make_atomic using incr@r with Cell(r) { v := v + 1 }"""
    return MakeAtomic(
        region_assertion("Cell", "r"),
        guard=GuardExp(IdnUse("incr"), IdnUse("r")),
        body=Assign(IdnUse("v"), BinaryOp("+", var("v"), IntLit(1))),
    )


@pytest.fixture
def cell_program():
    """A zero-argument counter region and one procedure using make-atomic."""
    return Program([
        counter_region(),
        abstract_procedure(
            "increment", "Cell", "incr",
            Block([make_atomic_increment()]),
            locals_=[LocalVariableDecl(IdnDef("v"), INT)],
        ),
    ])


@pytest.fixture
def cell_queue_program():
    """Two regions declaring a guard with the same name, each used by one procedure."""
    def use_atomic(region):
        return UseAtomic(
            region_assertion(region, "r"),
            guard=GuardExp(IdnUse("incr"), IdnUse("r")),
            body=Block([]),
        )

    return Program([
        counter_region("Cell", "incr"),
        counter_region("Queue", "incr"),
        abstract_procedure("on_cell", "Cell", "incr", Block([use_atomic("Cell")])),
        abstract_procedure("on_queue", "Queue", "incr", Block([use_atomic("Queue")])),
    ])


def heap_cell_region():
    """region Cell(id r, cell* x) { guards { unique INC }
                                    interpretation { x.val |-> ?v } state { v }
                                    actions { INC: ?n ~> Set(n, n + 1) } }"""
    return Region(
        IdnDef("Cell"),
        region_id=FormalArgumentDecl(IdnDef("r"), REGION_ID),
        formal_args=[FormalArgumentDecl(IdnDef("x"), RefType("cell"))],
        guards=[GuardDecl(IdnDef("INC"))],
        interpretation=PointsTo(Location(IdnUse("x"), "val"), LogicalVariableBinder(IdnDef("v"))),
        state=var("v"),
        actions=[Action(
            IdnUse("INC"),
            LogicalVariableBinder(IdnDef("n")),
            ExplicitSet([var("n"), BinaryOp("+", var("n"), IntLit(1))]),
        )],
    )


def heap_cell_procedure(name, body, atomicity=ProcedureAtomicity.ABSTRACT_ATOMIC):
    return Procedure(
        IdnDef(name),
        formal_args=[
            FormalArgumentDecl(IdnDef("r"), REGION_ID),
            FormalArgumentDecl(IdnDef("x"), RefType("cell")),
        ],
        pres=[PreconditionClause(BinaryOp(
            "&&", region_assertion("Cell", "r", "x"), GuardExp(IdnUse("INC"), IdnUse("r"))))],
        posts=[PostconditionClause(BinaryOp(
            "&&", region_assertion("Cell", "r", "x"), GuardExp(IdnUse("INC"), IdnUse("r"))))],
        inters=[InterferenceClause(LogicalVariableBinder(IdnDef("s")), IntSet(), IdnUse("r"))],
        locals=[LocalVariableDecl(IdnDef("v"), INT)],
        body=body,
        atomicity=atomicity,
    )


def heap_increment():
    """v := [x.val]; [x.val] := v + 1"""
    return Block([
        HeapRead(IdnUse("v"), Location(IdnUse("x"), "val")),
        HeapWrite(Location(IdnUse("x"), "val"), BinaryOp("+", var("v"), IntLit(1))),
    ])


@pytest.fixture
def heap_cell_program():
    """A heap-backed counter exercising all four proof rules."""
    make_atomic = MakeAtomic(
        region_assertion("Cell", "r", "x"),
        guard=GuardExp(IdnUse("INC"), IdnUse("r")),
        body=UpdateRegion(region_assertion("Cell", "r", "x"), body=heap_increment()),
    )
    use_atomic = UseAtomic(
        region_assertion("Cell", "r", "x"),
        guard=GuardExp(IdnUse("INC"), IdnUse("r")),
        body=heap_increment(),
    )
    open_region = OpenRegion(
        region_assertion("Cell", "r", "x"),
        body=HeapRead(IdnUse("v"), Location(IdnUse("x"), "val")),
    )
    return Program([
        Struct(IdnDef("cell"), [FieldDecl("val", INT)]),
        heap_cell_region(),
        heap_cell_procedure("incr", Block([make_atomic])),
        heap_cell_procedure("incr_primitive", Block([use_atomic]), ProcedureAtomicity.PRIMITIVE_ATOMIC),
        heap_cell_procedure("read", Block([open_region]), ProcedureAtomicity.PRIMITIVE_ATOMIC),
    ])

"""atomica program tree.

Top-level members: struct, region, predicate, procedure.
Regions declare guards, actions, an interpretation and an abstract state;
procedures carry pre/postconditions, interference clauses and an atomicity
modifier. Statements include the four atomicity proof rules: make-atomic,
update-region, use-atomic and open-region.

The tree is produced by a parser outside this package and is never mutated.
Nodes compare by identity, which is what attribute memoization keys on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from atomica.errors import SourceLocation
from atomica.types import Type, VOID


node = dataclass(frozen=True, eq=False)


@node
class Node:
    location: Optional[SourceLocation] = field(default=None, kw_only=True)


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

@node
class IdnNode(Node):
    name: str = ""

    def __str__(self) -> str:
        return self.name


@node
class IdnDef(IdnNode):
    """Defining occurrence of a name."""


@node
class IdnUse(IdnNode):
    """Applied occurrence of a name."""


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@node
class Expression(Node):
    pass


@node
class TrueLit(Expression):
    def __str__(self) -> str:
        return "true"


@node
class FalseLit(Expression):
    def __str__(self) -> str:
        return "false"


@node
class IntLit(Expression):
    value: int = 0

    def __str__(self) -> str:
        return str(self.value)


@node
class NullLit(Expression):
    def __str__(self) -> str:
        return "null"


@node
class Ret(Expression):
    def __str__(self) -> str:
        return "ret"


@node
class IdnExp(Expression):
    id: IdnUse = field(default_factory=IdnUse)

    def __str__(self) -> str:
        return self.id.name


ARITHMETIC_OPS = ("+", "-", "%", "/")
BOOLEAN_OPS = ("&&", "||")
COMPARISON_OPS = ("<", "<=", ">", ">=")


@node
class BinaryOp(Expression):
    """Binary operator: arithmetic, boolean, comparison or equality (==)."""
    op: str = ""
    left: Expression = field(default_factory=Expression)
    right: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"{self.left} {self.op} {self.right}"


@node
class UnaryOp(Expression):
    """Unary operator: ! or -."""
    op: str = ""
    operand: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"{self.op}{self.operand}"


@node
class Conditional(Expression):
    cond: Expression = field(default_factory=Expression)
    thn: Expression = field(default_factory=Expression)
    els: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"{self.cond} ? {self.thn} : {self.els}"


@node
class LogicalVariableBinder(Expression):
    """Binding occurrence of a logical variable:  ?x"""
    id: IdnDef = field(default_factory=IdnDef)

    def __str__(self) -> str:
        return f"?{self.id.name}"


@node
class PredicateExp(Expression):
    """Predicate or region assertion:  P(args)  |  Region(r, args, ?s)"""
    id: IdnUse = field(default_factory=IdnUse)
    arguments: list[Expression] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.id.name}({', '.join(str(a) for a in self.arguments)})"


@node
class Unfolding(Expression):
    predicate: PredicateExp = field(default_factory=PredicateExp)
    body: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"unfolding {self.predicate} in {self.body}"


@node
class ExplicitSet(Expression):
    elements: list[Expression] = field(default_factory=list)
    type_annotation: Optional[Type] = None

    def __str__(self) -> str:
        return f"Set({', '.join(str(e) for e in self.elements)})"


@node
class ExplicitSeq(Expression):
    elements: list[Expression] = field(default_factory=list)
    type_annotation: Optional[Type] = None

    def __str__(self) -> str:
        return f"Seq({', '.join(str(e) for e in self.elements)})"


@node
class IntSet(Expression):
    def __str__(self) -> str:
        return "Int"


@node
class NatSet(Expression):
    def __str__(self) -> str:
        return "Nat"


@node
class SetComprehension(Expression):
    """Set(?x | filter)"""
    qvar: LogicalVariableBinder = field(default_factory=LogicalVariableBinder)
    filter: Expression = field(default_factory=Expression)
    type_annotation: Optional[Type] = None

    def __str__(self) -> str:
        return f"Set({self.qvar} | {self.filter})"


@node
class SetContains(Expression):
    element: Expression = field(default_factory=Expression)
    set: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"{self.element} in {self.set}"


@node
class SeqSize(Expression):
    seq: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"size({self.seq})"


@node
class SeqHead(Expression):
    seq: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"head({self.seq})"


@node
class SeqTail(Expression):
    seq: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"tail({self.seq})"


@node
class Location(Node):
    """Heap location  receiver.field"""
    receiver: IdnUse = field(default_factory=IdnUse)
    field_name: str = ""

    def __str__(self) -> str:
        return f"{self.receiver.name}.{self.field_name}"


@node
class PointsTo(Expression):
    """x.f |-> value  (value may be a logical variable binder)"""
    heap_location: Location = field(default_factory=Location)
    value: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"{self.heap_location} |-> {self.value}"


@node
class GuardExp(Expression):
    """Guard assertion  G@r"""
    guard: IdnUse = field(default_factory=IdnUse)
    region_id: IdnUse = field(default_factory=IdnUse)

    def __str__(self) -> str:
        return f"{self.guard.name}@{self.region_id.name}"


@node
class Diamond(Expression):
    """Atomic update token  r |=> <D>"""
    region_id: IdnUse = field(default_factory=IdnUse)

    def __str__(self) -> str:
        return f"{self.region_id.name} |=> <D>"


@node
class RegionUpdateWitness(Expression):
    """Tracking resource  r |=> (from, to)"""
    region_id: IdnUse = field(default_factory=IdnUse)
    from_: Expression = field(default_factory=Expression)
    to: Expression = field(default_factory=Expression)

    def __str__(self) -> str:
        return f"{self.region_id.name} |=> ({self.from_}, {self.to})"


# ---------------------------------------------------------------------------
# Declarations and clauses
# ---------------------------------------------------------------------------

@node
class FormalArgumentDecl(Node):
    id: IdnDef = field(default_factory=IdnDef)
    typ: Type = VOID


@node
class LocalVariableDecl(Node):
    id: IdnDef = field(default_factory=IdnDef)
    typ: Type = VOID


@node
class FieldDecl(Node):
    name: str = ""
    typ: Type = VOID


@node
class PreconditionClause(Node):
    assertion: Expression = field(default_factory=Expression)


@node
class PostconditionClause(Node):
    assertion: Expression = field(default_factory=Expression)


@node
class InvariantClause(Node):
    assertion: Expression = field(default_factory=Expression)


@node
class InterferenceClause(Node):
    """interference ?s in S on r"""
    binder: LogicalVariableBinder = field(default_factory=LogicalVariableBinder)
    set: Expression = field(default_factory=Expression)
    region_id: IdnUse = field(default_factory=IdnUse)


class GuardModifier(Enum):
    UNIQUE = "unique"
    DUPLICABLE = "duplicable"


@node
class GuardDecl(Node):
    id: IdnDef = field(default_factory=IdnDef)
    modifier: GuardModifier = GuardModifier.UNIQUE


@node
class Action(Node):
    """G: ?n ~> to   (optionally guarded by a condition on n)"""
    guard: IdnUse = field(default_factory=IdnUse)
    binder: LogicalVariableBinder = field(default_factory=LogicalVariableBinder)
    to: Expression = field(default_factory=Expression)
    condition: Optional[Expression] = None


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@node
class Statement(Node):
    statement_name = "statement"


@node
class Block(Statement):
    statements: list[Statement] = field(default_factory=list)


@node
class Skip(Statement):
    pass


@node
class If(Statement):
    cond: Expression = field(default_factory=Expression)
    thn: Statement = field(default_factory=Skip)
    els: Statement = field(default_factory=Skip)


@node
class While(Statement):
    cond: Expression = field(default_factory=Expression)
    invariants: list[InvariantClause] = field(default_factory=list)
    body: Statement = field(default_factory=Skip)


@node
class Assign(Statement):
    lhs: IdnUse = field(default_factory=IdnUse)
    rhs: Expression = field(default_factory=Expression)


@node
class HeapRead(Statement):
    """v := [x.f]"""
    lhs: IdnUse = field(default_factory=IdnUse)
    heap_location: Location = field(default_factory=Location)


@node
class HeapWrite(Statement):
    """[x.f] := e"""
    heap_location: Location = field(default_factory=Location)
    rhs: Expression = field(default_factory=Expression)


@node
class ProcedureCall(Statement):
    procedure: IdnUse = field(default_factory=IdnUse)
    arguments: list[Expression] = field(default_factory=list)
    lhs: Optional[IdnUse] = None


@node
class GhostStatement(Statement):
    pass


@node
class Fold(GhostStatement):
    predicate: PredicateExp = field(default_factory=PredicateExp)


@node
class Unfold(GhostStatement):
    predicate: PredicateExp = field(default_factory=PredicateExp)


@node
class Inhale(GhostStatement):
    assertion: Expression = field(default_factory=Expression)


@node
class Exhale(GhostStatement):
    assertion: Expression = field(default_factory=Expression)


@node
class Assume(GhostStatement):
    assertion: Expression = field(default_factory=Expression)


@node
class Assert(GhostStatement):
    assertion: Expression = field(default_factory=Expression)


@node
class Havoc(GhostStatement):
    variable: IdnUse = field(default_factory=IdnUse)


@node
class RuleStatement(Statement):
    region_predicate: PredicateExp = field(default_factory=PredicateExp)


@node
class MakeAtomic(RuleStatement):
    """make_atomic using G@r with Region(r, ...) { body }"""
    statement_name = "make-atomic"
    guard: GuardExp = field(default_factory=GuardExp)
    body: Statement = field(default_factory=Skip)


@node
class UpdateRegion(RuleStatement):
    """update_region using Region(r, ...) { body }"""
    statement_name = "update-region"
    body: Statement = field(default_factory=Skip)


@node
class UseAtomic(RuleStatement):
    """use_atomic using G@r with Region(r, ...) { body }"""
    statement_name = "use-atomic"
    guard: GuardExp = field(default_factory=GuardExp)
    body: Statement = field(default_factory=Skip)


@node
class OpenRegion(RuleStatement):
    """open_region using Region(r, ...) { body }"""
    statement_name = "open-region"
    body: Statement = field(default_factory=Skip)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class ProcedureAtomicity(Enum):
    NOT_ATOMIC = "nonatomic"
    PRIMITIVE_ATOMIC = "primitive_atomic"
    ABSTRACT_ATOMIC = "abstract_atomic"


@node
class Member(Node):
    id: IdnDef = field(default_factory=IdnDef)


@node
class Struct(Member):
    fields: list[FieldDecl] = field(default_factory=list)


@node
class Predicate(Member):
    formal_args: list[FormalArgumentDecl] = field(default_factory=list)
    body: Expression = field(default_factory=TrueLit)


@node
class Region(Member):
    """A shared-state abstraction.

    The first formal argument is the region id; `formal_args` holds the
    remaining ones. A region assertion therefore takes 1 + len(formal_args)
    arguments, plus an optional trailing out-argument for the state.
    """
    region_id: FormalArgumentDecl = field(default_factory=FormalArgumentDecl)
    formal_args: list[FormalArgumentDecl] = field(default_factory=list)
    guards: list[GuardDecl] = field(default_factory=list)
    interpretation: Expression = field(default_factory=TrueLit)
    state: Expression = field(default_factory=Expression)
    actions: list[Action] = field(default_factory=list)

    @property
    def all_formal_args(self) -> list[FormalArgumentDecl]:
        return [self.region_id, *self.formal_args]


@node
class Procedure(Member):
    formal_args: list[FormalArgumentDecl] = field(default_factory=list)
    typ: Type = VOID
    pres: list[PreconditionClause] = field(default_factory=list)
    posts: list[PostconditionClause] = field(default_factory=list)
    inters: list[InterferenceClause] = field(default_factory=list)
    locals: list[LocalVariableDecl] = field(default_factory=list)
    body: Statement = field(default_factory=Block)
    atomicity: ProcedureAtomicity = ProcedureAtomicity.NOT_ATOMIC


@node
class Program(Node):
    members: list[Member] = field(default_factory=list)

    @property
    def structs(self) -> list[Struct]:
        return [m for m in self.members if isinstance(m, Struct)]

    @property
    def regions(self) -> list[Region]:
        return [m for m in self.members if isinstance(m, Region)]

    @property
    def predicates(self) -> list[Predicate]:
        return [m for m in self.members if isinstance(m, Predicate)]

    @property
    def procedures(self) -> list[Procedure]:
        return [m for m in self.members if isinstance(m, Procedure)]

"""atomica IVL — the intermediate verification language handed to backends.

A small permission-based language in the style of Viper: fields, predicates,
functions and methods; statements inhale/exhale/assert, fold/unfold, labels
and labelled old-expressions. Nodes are mutable only in their ``source``
annotation, which points back at the program tree node the IVL node was
generated for. Failures reported by a backend carry the offending IVL node,
and the error backtranslator follows ``source`` to find the culprit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from atomica.ast_nodes import Node as SourceNode


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IvlType:
    def __str__(self) -> str:
        return "?"


@dataclass(frozen=True)
class BasicT(IvlType):
    name: str = "?"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class SetT(IvlType):
    element: IvlType = field(default_factory=IvlType)

    def __str__(self) -> str:
        return f"Set[{self.element}]"


@dataclass(frozen=True)
class SeqT(IvlType):
    element: IvlType = field(default_factory=IvlType)

    def __str__(self) -> str:
        return f"Seq[{self.element}]"


INT = BasicT("Int")
BOOL = BasicT("Bool")
REF = BasicT("Ref")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class IvlNode:
    source: Optional[SourceNode] = field(default=None, kw_only=True, repr=False)

    def with_source(self, node: Optional[SourceNode]):
        self.source = node
        return self

    def __str__(self) -> str:
        return render(self)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Exp(IvlNode):
    pass


@dataclass(eq=False)
class IntLit(Exp):
    value: int = 0


@dataclass(eq=False)
class BoolLit(Exp):
    value: bool = True


@dataclass(eq=False)
class NullLit(Exp):
    pass


@dataclass(eq=False)
class LocalVar(Exp):
    name: str = ""
    typ: IvlType = INT


@dataclass(eq=False)
class Result(Exp):
    typ: IvlType = INT


@dataclass(eq=False)
class BinExp(Exp):
    """Binary operation.

    Arithmetic: + - * / %   Comparison: == != < <= > >=
    Boolean: && || ==>      Collections: in subset union intersection setminus ++
    """
    op: str = ""
    left: Exp = field(default_factory=Exp)
    right: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class UnExp(Exp):
    op: str = ""
    operand: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class CondExp(Exp):
    cond: Exp = field(default_factory=Exp)
    thn: Exp = field(default_factory=Exp)
    els: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class FieldAccess(Exp):
    receiver: Exp = field(default_factory=Exp)
    field_name: str = ""
    typ: IvlType = INT


@dataclass(eq=False)
class PredicateAccess(Exp):
    predicate_name: str = ""
    args: list[Exp] = field(default_factory=list)


@dataclass(eq=False)
class FieldAccessPredicate(Exp):
    """acc(e.f) with full permission."""
    loc: FieldAccess = field(default_factory=FieldAccess)


@dataclass(eq=False)
class PredicateAccessPredicate(Exp):
    """acc(P(args)) with full permission."""
    loc: PredicateAccess = field(default_factory=PredicateAccess)


@dataclass(eq=False)
class PermPositive(Exp):
    """perm(loc) > none"""
    loc: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class FuncApp(Exp):
    function_name: str = ""
    args: list[Exp] = field(default_factory=list)
    typ: IvlType = INT


@dataclass(eq=False)
class Old(Exp):
    exp: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class LabelledOld(Exp):
    exp: Exp = field(default_factory=Exp)
    label: str = ""


@dataclass(eq=False)
class Unfolding(Exp):
    acc: PredicateAccessPredicate = field(default_factory=PredicateAccessPredicate)
    body: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class ExplicitSet(Exp):
    elements: list[Exp] = field(default_factory=list)
    element_type: IvlType = INT


@dataclass(eq=False)
class ExplicitSeq(Exp):
    elements: list[Exp] = field(default_factory=list)
    element_type: IvlType = INT


@dataclass(eq=False)
class SeqLength(Exp):
    seq: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class SeqIndex(Exp):
    seq: Exp = field(default_factory=Exp)
    index: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class SeqDrop(Exp):
    seq: Exp = field(default_factory=Exp)
    count: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class LocalVarDecl(IvlNode):
    name: str = ""
    typ: IvlType = INT

    def local_var(self) -> LocalVar:
        return LocalVar(self.name, self.typ)


@dataclass(eq=False)
class SetComprehension(Exp):
    variable: LocalVarDecl = field(default_factory=LocalVarDecl)
    filter: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class Forall(Exp):
    variables: list[LocalVarDecl] = field(default_factory=list)
    body: Exp = field(default_factory=Exp)


def conjoin(*exps: Exp) -> Exp:
    """Right-nested conjunction; the empty conjunction is true."""
    if not exps:
        return BoolLit(True)
    result = exps[-1]
    for exp in reversed(exps[:-1]):
        result = BinExp("&&", exp, result)
    return result


def conjuncts(exp: Exp) -> list[Exp]:
    if isinstance(exp, BinExp) and exp.op == "&&":
        return conjuncts(exp.left) + conjuncts(exp.right)
    return [exp]


def is_permission(exp: Exp) -> bool:
    return isinstance(exp, (FieldAccessPredicate, PredicateAccessPredicate))


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Stmt(IvlNode):
    pass


@dataclass(eq=False)
class Seqn(Stmt):
    stmts: list[Stmt] = field(default_factory=list)


@dataclass(eq=False)
class Comment(Stmt):
    text: str = ""


@dataclass(eq=False)
class Label(Stmt):
    name: str = ""


@dataclass(eq=False)
class Inhale(Stmt):
    exp: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class Exhale(Stmt):
    exp: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class Assert(Stmt):
    exp: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class Fold(Stmt):
    acc: PredicateAccessPredicate = field(default_factory=PredicateAccessPredicate)


@dataclass(eq=False)
class Unfold(Stmt):
    acc: PredicateAccessPredicate = field(default_factory=PredicateAccessPredicate)


@dataclass(eq=False)
class If(Stmt):
    cond: Exp = field(default_factory=Exp)
    thn: Seqn = field(default_factory=Seqn)
    els: Seqn = field(default_factory=Seqn)


@dataclass(eq=False)
class While(Stmt):
    cond: Exp = field(default_factory=Exp)
    invariants: list[Exp] = field(default_factory=list)
    body: Seqn = field(default_factory=Seqn)


@dataclass(eq=False)
class LocalVarAssign(Stmt):
    lhs: LocalVar = field(default_factory=LocalVar)
    rhs: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class FieldAssign(Stmt):
    lhs: FieldAccess = field(default_factory=FieldAccess)
    rhs: Exp = field(default_factory=Exp)


@dataclass(eq=False)
class MethodCall(Stmt):
    method_name: str = ""
    args: list[Exp] = field(default_factory=list)
    targets: list[LocalVar] = field(default_factory=list)


@dataclass(eq=False)
class Havoc(Stmt):
    variable: LocalVar = field(default_factory=LocalVar)


def flatten(stmt: Stmt) -> Iterator[Stmt]:
    """Yield the statements of a body in execution-text order.

    Sequences are transparent; conditionals and loops are yielded themselves,
    followed by their branches.
    """
    if isinstance(stmt, Seqn):
        for s in stmt.stmts:
            yield from flatten(s)
        return
    yield stmt
    if isinstance(stmt, If):
        yield from flatten(stmt.thn)
        yield from flatten(stmt.els)
    elif isinstance(stmt, While):
        yield from flatten(stmt.body)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Field(IvlNode):
    name: str = ""
    typ: IvlType = INT


@dataclass(eq=False)
class Predicate(IvlNode):
    name: str = ""
    formal_args: list[LocalVarDecl] = field(default_factory=list)
    body: Optional[Exp] = None


@dataclass(eq=False)
class Function(IvlNode):
    name: str = ""
    formal_args: list[LocalVarDecl] = field(default_factory=list)
    typ: IvlType = INT
    pres: list[Exp] = field(default_factory=list)
    posts: list[Exp] = field(default_factory=list)
    body: Optional[Exp] = None


@dataclass(eq=False)
class Method(IvlNode):
    name: str = ""
    formal_args: list[LocalVarDecl] = field(default_factory=list)
    formal_returns: list[LocalVarDecl] = field(default_factory=list)
    pres: list[Exp] = field(default_factory=list)
    posts: list[Exp] = field(default_factory=list)
    locals: list[LocalVarDecl] = field(default_factory=list)
    body: Seqn = field(default_factory=Seqn)


@dataclass(eq=False)
class Program(IvlNode):
    fields: list[Field] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    predicates: list[Predicate] = field(default_factory=list)
    methods: list[Method] = field(default_factory=list)

    def find_function(self, name: str) -> Optional[Function]:
        return next((f for f in self.functions if f.name == name), None)

    def find_predicate(self, name: str) -> Optional[Predicate]:
        return next((p for p in self.predicates if p.name == name), None)

    def find_method(self, name: str) -> Optional[Method]:
        return next((m for m in self.methods if m.name == name), None)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

INDENT = "  "


def render(node: IvlNode) -> str:
    if isinstance(node, Exp):
        return render_exp(node)
    if isinstance(node, Stmt):
        return "\n".join(_render_stmt(node, 0))
    if isinstance(node, Program):
        return render_program(node)
    if isinstance(node, LocalVarDecl):
        return f"{node.name}: {node.typ}"
    return "\n".join(_render_member(node))


def render_exp(exp: Exp) -> str:
    if isinstance(exp, IntLit):
        return str(exp.value)
    if isinstance(exp, BoolLit):
        return "true" if exp.value else "false"
    if isinstance(exp, NullLit):
        return "null"
    if isinstance(exp, LocalVar):
        return exp.name
    if isinstance(exp, Result):
        return "result"
    if isinstance(exp, BinExp):
        return f"({render_exp(exp.left)} {exp.op} {render_exp(exp.right)})"
    if isinstance(exp, UnExp):
        return f"{exp.op}{render_exp(exp.operand)}"
    if isinstance(exp, CondExp):
        return f"({render_exp(exp.cond)} ? {render_exp(exp.thn)} : {render_exp(exp.els)})"
    if isinstance(exp, FieldAccess):
        return f"{render_exp(exp.receiver)}.{exp.field_name}"
    if isinstance(exp, PredicateAccess):
        return f"{exp.predicate_name}({_args(exp.args)})"
    if isinstance(exp, (FieldAccessPredicate, PredicateAccessPredicate)):
        return f"acc({render_exp(exp.loc)})"
    if isinstance(exp, PermPositive):
        return f"perm({render_exp(exp.loc)}) > none"
    if isinstance(exp, FuncApp):
        return f"{exp.function_name}({_args(exp.args)})"
    if isinstance(exp, Old):
        return f"old({render_exp(exp.exp)})"
    if isinstance(exp, LabelledOld):
        return f"old[{exp.label}]({render_exp(exp.exp)})"
    if isinstance(exp, Unfolding):
        return f"(unfolding {render_exp(exp.acc)} in {render_exp(exp.body)})"
    if isinstance(exp, ExplicitSet):
        if not exp.elements:
            return f"Set[{exp.element_type}]()"
        return f"Set({_args(exp.elements)})"
    if isinstance(exp, ExplicitSeq):
        if not exp.elements:
            return f"Seq[{exp.element_type}]()"
        return f"Seq({_args(exp.elements)})"
    if isinstance(exp, SeqLength):
        return f"|{render_exp(exp.seq)}|"
    if isinstance(exp, SeqIndex):
        return f"{render_exp(exp.seq)}[{render_exp(exp.index)}]"
    if isinstance(exp, SeqDrop):
        return f"{render_exp(exp.seq)}[{render_exp(exp.count)}..]"
    if isinstance(exp, SetComprehension):
        return f"Set({render(exp.variable)} | {render_exp(exp.filter)})"
    if isinstance(exp, Forall):
        variables = ", ".join(render(v) for v in exp.variables)
        return f"(forall {variables} :: {render_exp(exp.body)})"
    return f"<{type(exp).__name__}>"


def _args(exps: list[Exp]) -> str:
    return ", ".join(render_exp(e) for e in exps)


def _render_stmt(stmt: Stmt, depth: int) -> list[str]:
    pad = INDENT * depth
    if isinstance(stmt, Seqn):
        lines: list[str] = []
        for s in stmt.stmts:
            lines.extend(_render_stmt(s, depth))
        return lines
    if isinstance(stmt, Comment):
        return [f"{pad}// {stmt.text}"]
    if isinstance(stmt, Label):
        return [f"{pad}label {stmt.name}"]
    if isinstance(stmt, Inhale):
        return [f"{pad}inhale {render_exp(stmt.exp)}"]
    if isinstance(stmt, Exhale):
        return [f"{pad}exhale {render_exp(stmt.exp)}"]
    if isinstance(stmt, Assert):
        return [f"{pad}assert {render_exp(stmt.exp)}"]
    if isinstance(stmt, Fold):
        return [f"{pad}fold {render_exp(stmt.acc)}"]
    if isinstance(stmt, Unfold):
        return [f"{pad}unfold {render_exp(stmt.acc)}"]
    if isinstance(stmt, LocalVarAssign):
        return [f"{pad}{stmt.lhs.name} := {render_exp(stmt.rhs)}"]
    if isinstance(stmt, FieldAssign):
        return [f"{pad}{render_exp(stmt.lhs)} := {render_exp(stmt.rhs)}"]
    if isinstance(stmt, MethodCall):
        call = f"{stmt.method_name}({_args(stmt.args)})"
        if stmt.targets:
            call = f"{', '.join(t.name for t in stmt.targets)} := {call}"
        return [f"{pad}{call}"]
    if isinstance(stmt, Havoc):
        return [f"{pad}havoc {stmt.variable.name}"]
    if isinstance(stmt, If):
        lines = [f"{pad}if ({render_exp(stmt.cond)}) {{"]
        lines.extend(_render_stmt(stmt.thn, depth + 1))
        if stmt.els.stmts:
            lines.append(f"{pad}}} else {{")
            lines.extend(_render_stmt(stmt.els, depth + 1))
        lines.append(f"{pad}}}")
        return lines
    if isinstance(stmt, While):
        lines = [f"{pad}while ({render_exp(stmt.cond)})"]
        lines.extend(f"{pad}{INDENT}invariant {render_exp(i)}" for i in stmt.invariants)
        lines.append(f"{pad}{{")
        lines.extend(_render_stmt(stmt.body, depth + 1))
        lines.append(f"{pad}}}")
        return lines
    return [f"{pad}<{type(stmt).__name__}>"]


def _render_member(member: IvlNode) -> list[str]:
    if isinstance(member, Field):
        return [f"field {member.name}: {member.typ}"]

    if isinstance(member, Predicate):
        head = f"predicate {member.name}({', '.join(render(a) for a in member.formal_args)})"
        if member.body is None:
            return [head]
        return [f"{head} {{", f"{INDENT}{render_exp(member.body)}", "}"]

    if isinstance(member, Function):
        lines = [f"function {member.name}({', '.join(render(a) for a in member.formal_args)}): {member.typ}"]
        lines.extend(f"{INDENT}requires {render_exp(p)}" for p in member.pres)
        lines.extend(f"{INDENT}ensures {render_exp(p)}" for p in member.posts)
        if member.body is not None:
            lines.extend(["{", f"{INDENT}{render_exp(member.body)}", "}"])
        return lines

    if isinstance(member, Method):
        head = f"method {member.name}({', '.join(render(a) for a in member.formal_args)})"
        if member.formal_returns:
            head += f" returns ({', '.join(render(r) for r in member.formal_returns)})"
        lines = [head]
        lines.extend(f"{INDENT}requires {render_exp(p)}" for p in member.pres)
        lines.extend(f"{INDENT}ensures {render_exp(p)}" for p in member.posts)
        lines.append("{")
        lines.extend(f"{INDENT}var {render(d)}" for d in member.locals)
        lines.extend(_render_stmt(member.body, 1))
        lines.append("}")
        return lines

    return [f"<{type(member).__name__}>"]


def render_program(program: Program) -> str:
    blocks: list[str] = []
    for member in [*program.fields, *program.predicates, *program.functions, *program.methods]:
        blocks.append("\n".join(_render_member(member)))
    return "\n\n".join(blocks) + "\n"

"""atomica Semantic Analysis — name resolution, typing and atomicity.

All results are attributes over the program tree (see ``attribution``):

  env            scope-chain environment visible at a node
  entity         the entity an identifier resolves to
  typ            the type of an expression (bottom-up)
  expected_type  the type an expression's context expects (top-down)
  atomicity      Nonatomic / Atomic classification of a statement

``errors`` walks the tree once in document order and applies the first
applicable check to each node. Translation must only be attempted when the
list is empty.

Scopes are introduced by the program, every member, set comprehensions and
actions. The program scope holds every top-level member plus every guard under
its qualified key ``guard@Region``, so two regions may declare guards with the
same bare name. Inside a scope every definition is visible to every use,
regardless of order; a name defined twice in one scope resolves to
``MultipleEntity`` for all of its occurrences.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from atomica.ast_nodes import (
    Node, Program, Member, Struct, Procedure, Predicate, Region,
    IdnNode, IdnDef, IdnUse,
    FormalArgumentDecl, LocalVariableDecl, GuardDecl, Action,
    InterferenceClause, InvariantClause,
    Expression, TrueLit, FalseLit, IntLit, NullLit, Ret, IdnExp,
    BinaryOp, UnaryOp, Conditional, LogicalVariableBinder, PredicateExp,
    Unfolding, ExplicitSet, ExplicitSeq, IntSet, NatSet, SetComprehension,
    SetContains, SeqSize, SeqHead, SeqTail, Location, PointsTo, GuardExp,
    Diamond, RegionUpdateWitness,
    ARITHMETIC_OPS, BOOLEAN_OPS, COMPARISON_OPS,
    Statement, Block, If, While, Assign, HeapRead, HeapWrite, ProcedureCall,
    GhostStatement, Inhale, Exhale, Assume, Assert, RuleStatement,
    ProcedureAtomicity,
)
from atomica.attribution import Attribution, AttributeCycleError, Tree, attribute, iter_children
from atomica.entities import (
    Entity, StructEntity, ProcedureEntity, PredicateEntity, RegionEntity,
    GuardEntity, ArgumentEntity, LocalVariableEntity, LogicalVariableEntity,
    UnknownEntity, MultipleEntity,
)
from atomica.environment import Environment
from atomica.errors import AtomicaError, declaration_error, type_error
from atomica.types import (
    Type, RefType, SetType, SeqType, CollectionType,
    INT, BOOL, NULL, REGION_ID, UNKNOWN, is_compatible,
)

logger = logging.getLogger(__name__)


class AtomicityKind(Enum):
    NONATOMIC = "nonatomic"
    ATOMIC = "atomic"


SCOPE_NODES = (Program, Member, SetComprehension, Action)


def qualified_guard_name(guard_name: str, region_name: str) -> str:
    """The program-wide key of a guard: ``guard@Region``."""
    return f"{guard_name}@{region_name}"


def declared_atomicity(procedure: Procedure) -> AtomicityKind:
    if procedure.atomicity is ProcedureAtomicity.NOT_ATOMIC:
        return AtomicityKind.NONATOMIC
    return AtomicityKind.ATOMIC


class SemanticAnalyser(Attribution):
    """Attribute definitions and diagnostics for one program."""

    def __init__(self, program: Program):
        super().__init__(Tree(program))
        self.program = program
        self._errors: Optional[list[AtomicaError]] = None

    # -----------------------------------------------------------------------
    # Environments
    # -----------------------------------------------------------------------

    @attribute
    def env(self, node: Node) -> Environment:
        """The completed environment of the smallest enclosing scope."""
        for ancestor in self.tree.ancestors(node):
            if isinstance(ancestor, SCOPE_NODES):
                return self.scope_env(ancestor)
        return Environment()

    @attribute
    def scope_env(self, scope: Node) -> Environment:
        if isinstance(scope, Program):
            return self._root_env(scope)

        env = self.env(scope).enter()

        if isinstance(scope, Procedure):
            # The special return value variable 'ret' is in scope of procedure bodies
            ret_decl = LocalVariableDecl(IdnDef("ret"), scope.typ, location=scope.location)
            env = env.define_if_new("ret", LocalVariableEntity(ret_decl))

        for idn_def in self._owned_definitions(scope):
            env = env.define_if_new(idn_def.name, self.defined_entity(idn_def))
        return env

    def _root_env(self, program: Program) -> Environment:
        bindings: list[tuple[str, Entity]] = [
            (member.id.name, self.defined_entity(member.id)) for member in program.members
        ]
        for region in program.regions:
            for guard in region.guards:
                bindings.append(
                    (qualified_guard_name(guard.id.name, region.id.name), GuardEntity(guard, region)))
        return Environment.root(bindings)

    def _owned_definitions(self, scope: Node) -> list[IdnDef]:
        """Defining occurrences bound in scope itself, in document order."""
        found: list[IdnDef] = []

        def visit(node: Node) -> None:
            for child in iter_children(node):
                if isinstance(child, SCOPE_NODES):
                    continue
                if isinstance(child, IdnDef) and isinstance(
                        node, (FormalArgumentDecl, LocalVariableDecl, LogicalVariableBinder)):
                    found.append(child)
                visit(child)

        visit(scope)
        return found

    @attribute
    def defined_entity(self, idn: IdnDef) -> Entity:
        """The entity a defining occurrence introduces, by syntactic role."""
        parent = self.tree.parent(idn)
        if isinstance(parent, Struct):
            return StructEntity(parent)
        if isinstance(parent, Procedure):
            return ProcedureEntity(parent)
        if isinstance(parent, Predicate):
            return PredicateEntity(parent)
        if isinstance(parent, Region):
            return RegionEntity(parent)
        if isinstance(parent, GuardDecl):
            region = self.tree.enclosing(parent, Region)
            if region is not None:
                return GuardEntity(parent, region)
        if isinstance(parent, FormalArgumentDecl):
            return ArgumentEntity(parent)
        if isinstance(parent, LocalVariableDecl):
            return LocalVariableEntity(parent)
        if isinstance(parent, LogicalVariableBinder):
            return LogicalVariableEntity(parent)
        return UnknownEntity()

    # -----------------------------------------------------------------------
    # Entities
    # -----------------------------------------------------------------------

    @attribute
    def entity(self, idn: IdnNode) -> Entity:
        """The program entity referred to by an identifier definition or use."""
        parent = self.tree.parent(idn)
        root_env = self.scope_env(self.program)

        if isinstance(idn, IdnDef):
            if isinstance(parent, Member):
                return root_env.lookup(idn.name)
            if isinstance(parent, GuardDecl):
                region = self.tree.enclosing(parent, Region)
                if region is None:
                    return UnknownEntity()
                return root_env.lookup(qualified_guard_name(idn.name, region.id.name))
            return self.env(idn).lookup(idn.name)

        if isinstance(parent, GuardExp) and idn is parent.guard:
            used_with = self.region_id_used_with(parent.region_id)
            if used_with is None:
                return UnknownEntity()
            region, _ = used_with
            return self.env(idn).lookup(qualified_guard_name(idn.name, region.id.name))

        if isinstance(parent, Action) and idn is parent.guard:
            region = self.tree.enclosing(parent, Region)
            if region is None:
                return UnknownEntity()
            return self.env(idn).lookup(qualified_guard_name(idn.name, region.id.name))

        return self.env(idn).lookup(idn.name)

    @attribute
    def region_id_used_with(
        self, region_id: IdnUse,
    ) -> Optional[tuple[Region, Optional[PredicateExp]]]:
        """The region a region-id variable is used with.

        Scans the enclosing member in document order for a region assertion
        whose first argument names the same variable, or for a region
        declaration whose region id has that name. The first hit wins, even if
        the variable is used with several region assertions.
        """
        member = self.tree.enclosing(region_id, Member)
        if member is None:
            return None
        for candidate in self.tree.descendants(member):
            if isinstance(candidate, PredicateExp) and candidate.arguments:
                first = candidate.arguments[0]
                if isinstance(first, IdnExp) and first.id.name == region_id.name:
                    target = self.entity(candidate.id)
                    if isinstance(target, RegionEntity):
                        return target.declaration, candidate
            elif isinstance(candidate, Region) and candidate.region_id.id.name == region_id.name:
                return candidate, None
        return None

    def used_with_region(self, region_id: IdnUse) -> Optional[Region]:
        used_with = self.region_id_used_with(region_id)
        return used_with[0] if used_with else None

    def lookup_struct(self, name: str) -> Optional[Struct]:
        target = self.scope_env(self.program).lookup(name)
        return target.declaration if isinstance(target, StructEntity) else None

    # -----------------------------------------------------------------------
    # Types
    # -----------------------------------------------------------------------

    @attribute
    def type_of_idn(self, idn: IdnNode) -> Type:
        target = self.entity(idn)
        if isinstance(target, (ArgumentEntity, LocalVariableEntity, ProcedureEntity)):
            return target.declaration.typ
        if isinstance(target, LogicalVariableEntity):
            return self.type_of_logical_variable(target.declaration)
        return UNKNOWN

    @attribute
    def type_of_location(self, location: Location) -> Type:
        receiver_type = self.type_of_idn(location.receiver)
        if not isinstance(receiver_type, RefType):
            return UNKNOWN
        struct = self.lookup_struct(receiver_type.struct)
        if struct is None:
            return UNKNOWN
        for field_decl in struct.fields:
            if field_decl.name == location.field_name:
                return field_decl.typ
        return UNKNOWN

    def bound_by(self, binder: LogicalVariableBinder) -> Optional[Node]:
        return self.tree.parent(binder)

    @attribute
    def type_of_logical_variable(self, binder: LogicalVariableBinder) -> Type:
        context = self.bound_by(binder)

        if isinstance(context, PointsTo):
            return self.type_of_location(context.heap_location)

        if isinstance(context, PredicateExp):
            target = self.entity(context.id)
            if isinstance(target, RegionEntity):
                return self.typ(target.declaration.state)
            return UNKNOWN

        if isinstance(context, InterferenceClause):
            set_type = self.typ(context.set)
            return set_type.element_type if isinstance(set_type, SetType) else UNKNOWN

        if isinstance(context, Action):
            region = self.tree.enclosing(context, Region)
            return self.typ(region.state) if region is not None else UNKNOWN

        if isinstance(context, SetComprehension):
            if context.type_annotation is not None:
                return context.type_annotation
            return self._infer_comprehension_variable(context)

        return UNKNOWN

    def _infer_comprehension_variable(self, comprehension: SetComprehension) -> Type:
        name = comprehension.qvar.id.name
        expected: set[Type] = set()
        for occurrence in self.tree.descendants(comprehension.filter):
            if isinstance(occurrence, IdnExp) and occurrence.id.name == name:
                try:
                    candidate = self.expected_type(occurrence)
                except AttributeCycleError:
                    candidate = UNKNOWN
                if candidate != UNKNOWN:
                    expected.add(candidate)
        if len(expected) != 1:
            return UNKNOWN
        return next(iter(expected))

    @attribute
    def typ(self, exp: Expression) -> Type:
        """What is the type of an expression?"""
        if isinstance(exp, IntLit):
            return INT
        if isinstance(exp, (TrueLit, FalseLit)):
            return BOOL
        if isinstance(exp, NullLit):
            return NULL
        if isinstance(exp, Ret):
            procedure = self.tree.enclosing(exp, Procedure)
            return procedure.typ if procedure is not None else UNKNOWN
        if isinstance(exp, IdnExp):
            return self.type_of_idn(exp.id)

        if isinstance(exp, BinaryOp):
            if exp.op in ARITHMETIC_OPS:
                return INT
            if exp.op in BOOLEAN_OPS or exp.op in COMPARISON_OPS or exp.op in ("==", "!="):
                return BOOL
            return UNKNOWN
        if isinstance(exp, UnaryOp):
            if exp.op == "!":
                return BOOL
            if exp.op == "-":
                return INT
            return UNKNOWN

        if isinstance(exp, (IntSet, NatSet)):
            return SetType(INT)
        if isinstance(exp, (ExplicitSet, ExplicitSeq)):
            constructor = SetType if isinstance(exp, ExplicitSet) else SeqType
            if exp.type_annotation is not None:
                return constructor(exp.type_annotation)
            if exp.elements:
                return constructor(self.typ(exp.elements[0]))
            return UNKNOWN
        if isinstance(exp, SetComprehension):
            if exp.type_annotation is not None:
                return SetType(exp.type_annotation)
            return SetType(self.type_of_logical_variable(exp.qvar))
        if isinstance(exp, SetContains):
            return BOOL
        if isinstance(exp, SeqSize):
            return INT
        if isinstance(exp, SeqHead):
            seq_type = self.typ(exp.seq)
            return seq_type.element_type if isinstance(seq_type, CollectionType) else UNKNOWN
        if isinstance(exp, SeqTail):
            return self.typ(exp.seq)

        if isinstance(exp, Conditional):
            return self.typ(exp.thn)
        if isinstance(exp, Unfolding):
            return self.typ(exp.body)

        if isinstance(exp, (PointsTo, PredicateExp, GuardExp, Diamond, RegionUpdateWitness)):
            return BOOL
        if isinstance(exp, LogicalVariableBinder):
            return self.type_of_logical_variable(exp)

        return UNKNOWN

    @attribute
    def expected_type(self, exp: Expression) -> Type:
        """What is the expected type of an expression?

        Unknown expresses that no particular type is expected.
        """
        parent = self.tree.parent(exp)

        if isinstance(parent, (If, While)) and exp is parent.cond:
            return BOOL
        if isinstance(parent, Assign):
            target = self.entity(parent.lhs)
            return target.declaration.typ if isinstance(target, LocalVariableEntity) else UNKNOWN
        if isinstance(parent, HeapWrite):
            return self.type_of_location(parent.heap_location)

        if isinstance(parent, BinaryOp):
            if parent.op in ("==", "!="):
                # lhs expects the type of rhs and vice versa; both sides may be
                # waiting on each other, in which case nothing is expected
                other = parent.right if exp is parent.left else parent.left
                try:
                    return self.typ(other)
                except AttributeCycleError:
                    return UNKNOWN
            if parent.op in ARITHMETIC_OPS or parent.op in COMPARISON_OPS:
                return INT
            if parent.op in BOOLEAN_OPS:
                return BOOL
        if isinstance(parent, UnaryOp):
            return BOOL if parent.op == "!" else INT

        if isinstance(parent, Conditional):
            if exp is parent.cond:
                return BOOL
            if exp is parent.els:
                return self.typ(parent.thn)
        if isinstance(parent, SetContains) and exp is parent.set:
            return SetType(self.typ(parent.element))

        if isinstance(parent, (InvariantClause, Inhale, Exhale, Assume, Assert)):
            return BOOL
        if isinstance(parent, Action) and exp is parent.condition:
            return BOOL

        return UNKNOWN

    # -----------------------------------------------------------------------
    # Atomicity
    # -----------------------------------------------------------------------

    @attribute
    def is_ghost(self, statement: Statement) -> bool:
        if isinstance(statement, GhostStatement):
            return True
        if isinstance(statement, Block):
            return all(self.is_ghost(s) for s in statement.statements)
        return False

    @attribute
    def atomicity(self, statement: Statement) -> AtomicityKind:
        if isinstance(statement, (Assign, If, While)):
            return AtomicityKind.NONATOMIC

        if isinstance(statement, Block):
            # A sequence is as atomic as its only non-ghost component
            non_ghost = [s for s in statement.statements if not self.is_ghost(s)]
            if not non_ghost:
                return AtomicityKind.ATOMIC
            if len(non_ghost) == 1:
                return self.atomicity(non_ghost[0])
            return AtomicityKind.NONATOMIC

        if isinstance(statement, ProcedureCall):
            callee = self.entity(statement.procedure)
            if isinstance(callee, ProcedureEntity):
                return declared_atomicity(callee.declaration)
            return AtomicityKind.NONATOMIC

        return AtomicityKind.ATOMIC

    # -----------------------------------------------------------------------
    # Diagnostics
    # -----------------------------------------------------------------------

    @property
    def errors(self) -> list[AtomicaError]:
        if self._errors is None:
            collected: list[AtomicaError] = []
            for node in self.tree.nodes:
                collected.extend(self._check(node))
            logger.debug("Semantic analysis produced %d diagnostic(s)", len(collected))
            self._errors = collected
        return self._errors

    def _check(self, node: Node) -> list[AtomicaError]:
        loc = node.location

        if isinstance(node, IdnDef):
            if isinstance(self.entity(node), MultipleEntity):
                return [declaration_error(node.name, f"{node.name} is declared more than once", loc)]
            return []

        if isinstance(node, IdnUse):
            if isinstance(self.entity(node), UnknownEntity):
                return [declaration_error(node.name, f"{node.name} is not declared", loc)]
            return []

        if isinstance(node, Expression):
            if self.typ(node) == UNKNOWN:
                return [type_error(f"{node} could not be typed", loc)]
            return self._check_expression(node)

        if isinstance(node, Procedure):
            return [
                type_error(
                    f"Type error: expected {BOOL}, but found {self.typ(clause.assertion)}",
                    clause.assertion.location, str(BOOL), str(self.typ(clause.assertion)))
                for clause in [*node.pres, *node.posts]
                if not is_compatible(self.typ(clause.assertion), BOOL)
            ]

        if isinstance(node, Action):
            expected = SetType(self.typ(node.binder))
            actual = self.typ(node.to)
            if not is_compatible(actual, expected):
                return [type_error(f"Type error: expected {expected} but found {actual}",
                                   node.to.location, str(expected), str(actual))]
            return []

        if isinstance(node, Location):
            return self._check_location(node)

        if isinstance(node, Assign):
            if not isinstance(self.entity(node.lhs), LocalVariableEntity):
                return [type_error(f"Cannot assign to {node.lhs.name}", node.lhs.location)]
            return []

        if isinstance(node, HeapRead):
            target = self.entity(node.lhs)
            if isinstance(target, LocalVariableEntity):
                location_type = self.type_of_location(node.heap_location)
                if not is_compatible(location_type, target.declaration.typ):
                    return [type_error(
                        f"Type error: expected {target.declaration.typ} but got {location_type}",
                        node.heap_location.location, str(target.declaration.typ), str(location_type))]
                return []
            if target.is_error:
                return []
            return [type_error(f"Type error: expected a local variable, but found {node.lhs.name}",
                               node.lhs.location)]

        if isinstance(node, HeapWrite):
            location_type = self.type_of_location(node.heap_location)
            rhs_type = self.typ(node.rhs)
            if not is_compatible(location_type, rhs_type):
                return [type_error(f"Type error: expected {location_type} but got {rhs_type}",
                                   node.heap_location.location, str(location_type), str(rhs_type))]
            return []

        if isinstance(node, ProcedureCall):
            return self._check_call(node)

        if isinstance(node, RuleStatement):
            return self._check_rule(node)

        return []

    def _check_expression(self, exp: Expression) -> list[AtomicaError]:
        found: list[AtomicaError] = []
        expected = self.expected_type(exp)
        actual = self.typ(exp)
        if not is_compatible(expected, actual):
            found.append(type_error(f"Type error: expected {expected} but got {actual}",
                                    exp.location, str(expected), str(actual)))

        if isinstance(exp, IdnExp):
            if isinstance(self.entity(exp.id), ProcedureEntity):
                found.append(type_error("Cannot refer to procedures directly", exp.id.location))

        elif isinstance(exp, PredicateExp):
            target = self.entity(exp.id)
            actual_count = len(exp.arguments)
            if isinstance(target, PredicateEntity):
                found.extend(self._argument_count_mismatch(
                    exp, exp.id.name, len(target.declaration.formal_args), actual_count))
            elif isinstance(target, RegionEntity):
                # One region id, the regular arguments, one optional out-argument
                required = 1 + len(target.declaration.formal_args)
                if actual_count not in (required, required + 1):
                    found.append(type_error(
                        f"Wrong number of arguments for '{exp.id.name}', got {actual_count} "
                        f"but expected {required} or {required + 1}",
                        exp.id.location))
            elif not target.is_error:
                found.append(type_error(f"Cannot call {exp.id.name} here", exp.id.location))

        return found

    def _check_rule(self, rule: RuleStatement) -> list[AtomicaError]:
        predicate = rule.region_predicate
        target = self.entity(predicate.id)
        if target.is_error:
            return []
        if not isinstance(target, RegionEntity):
            return [type_error(f"Expected a region assertion, but found {predicate}", predicate.location)]
        if not predicate.arguments:
            # reported as an argument count mismatch
            return []

        first = predicate.arguments[0]
        actual = self.typ(first)
        if not isinstance(first, IdnExp) or not is_compatible(REGION_ID, actual):
            return [type_error(
                f"Expected a region id as first argument of {predicate.id.name}, but got {first}",
                first.location, str(REGION_ID), str(actual))]
        return []

    def _check_location(self, location: Location) -> list[AtomicaError]:
        receiver = location.receiver
        if self.entity(receiver).is_error:
            return []
        receiver_type = self.type_of_idn(receiver)
        if not isinstance(receiver_type, RefType):
            return [declaration_error(
                receiver.name, f"Receiver {receiver.name} is not of reference type", receiver.location)]
        struct = self.lookup_struct(receiver_type.struct)
        if struct is None:
            return [declaration_error(
                receiver.name, f"Receiver {receiver.name} is not of struct type", receiver.location)]
        if not any(f.name == location.field_name for f in struct.fields):
            return [declaration_error(
                receiver.name,
                f"Receiver {receiver.name} does not have a field {location.field_name}",
                receiver.location)]
        return []

    def _check_call(self, call: ProcedureCall) -> list[AtomicaError]:
        callee = self.entity(call.procedure)
        if callee.is_error:
            return []
        if not isinstance(callee, ProcedureEntity):
            return [type_error(f"Cannot call {call.procedure.name}", call.procedure.location)]

        decl = callee.declaration
        found = self._argument_count_mismatch(
            call, call.procedure.name, len(decl.formal_args), len(call.arguments))
        for actual, formal in zip(call.arguments, decl.formal_args):
            if not is_compatible(self.typ(actual), formal.typ):
                found.append(type_error(f"Type error: expected {formal.typ} but got {self.typ(actual)}",
                                        actual.location, str(formal.typ), str(self.typ(actual))))
        if call.lhs is not None:
            target = self.entity(call.lhs)
            if not isinstance(target, LocalVariableEntity):
                found.append(type_error(f"Cannot assign to {call.lhs.name}", call.lhs.location))
            elif not is_compatible(target.declaration.typ, decl.typ):
                found.append(type_error(
                    f"Type error: expected {target.declaration.typ} but got {decl.typ}",
                    call.lhs.location, str(target.declaration.typ), str(decl.typ)))
        return found

    @staticmethod
    def _argument_count_mismatch(
        node: Node, callee: str, formal_count: int, actual_count: int,
    ) -> list[AtomicaError]:
        if formal_count == actual_count:
            return []
        return [type_error(
            f"Wrong number of arguments for '{callee}', got {actual_count} but expected {formal_count}",
            node.location)]


def check(program: Program) -> list[AtomicaError]:
    """Run name resolution and type checking. Returns the diagnostics."""
    return SemanticAnalyser(program).errors

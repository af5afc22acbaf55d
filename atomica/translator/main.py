"""Program, procedure, statement and expression translation."""

from __future__ import annotations

import logging
from typing import Optional

from atomica import ivl
from atomica.ast_nodes import (
    Node, Program, Predicate, Procedure, FormalArgumentDecl, LocalVariableDecl,
    PreconditionClause, PostconditionClause, IdnUse,
    Expression, TrueLit, FalseLit, IntLit, NullLit, Ret, IdnExp, BinaryOp, UnaryOp,
    Conditional, LogicalVariableBinder, PredicateExp, Unfolding, ExplicitSet, ExplicitSeq,
    IntSet, NatSet, SetComprehension, SetContains, SeqSize, SeqHead, SeqTail, PointsTo,
    GuardExp, Diamond, RegionUpdateWitness, InterferenceClause, Action,
    Statement, Block, Skip, If, While, Assign, HeapRead, HeapWrite, ProcedureCall,
    Fold, Unfold, Inhale, Exhale, Assume, Assert, Havoc,
    MakeAtomic, UpdateRegion, UseAtomic, OpenRegion,
)
from atomica.entities import (
    ArgumentEntity, LocalVariableEntity, LogicalVariableEntity, PredicateEntity, RegionEntity,
)
from atomica.errors import InternalError
from atomica.regions import RegionModel
from atomica.semantic import SemanticAnalyser
from atomica.translator.context import TranslationContext
from atomica.types import (
    Type, IntType, BoolType, NullType, RefType, RegionIdType, SetType, SeqType, VOID,
)

logger = logging.getLogger(__name__)

RETURN_VARIABLE = "ret"


class MainTranslator:
    """Entry point of the translation; the other translator parts plug into it."""

    def __init__(self, analyser: SemanticAnalyser, context: Optional[TranslationContext] = None):
        self.analyser = analyser
        self.regions = RegionModel(analyser)
        self.context = context or TranslationContext()

    @property
    def backtranslator(self):
        return self.context.backtranslator

    # -----------------------------------------------------------------------
    # Program
    # -----------------------------------------------------------------------

    def translate(self) -> ivl.Program:
        program: Program = self.analyser.program

        fields = [*self.heap_fields(), self.diamond_field(), *self.step_fields()]

        predicates = [self.translate_predicate(p) for p in program.predicates]
        functions = self.set_functions()
        for region in program.regions:
            region_predicates, region_functions = self.translate_region(region)
            predicates.extend(region_predicates)
            functions.extend(region_functions)

        methods = [self.translate_procedure(p) for p in program.procedures]

        logger.info(
            "Translated %d member(s) into %d field(s), %d predicate(s), %d function(s), %d method(s)",
            len(program.members), len(fields), len(predicates), len(functions), len(methods))
        return ivl.Program(fields, functions, predicates, methods).with_source(program)

    def set_functions(self) -> list[ivl.Function]:
        int_set = ivl.SetT(ivl.INT)
        i = ivl.LocalVarDecl("$i", ivl.INT)
        return [
            ivl.Function(
                "IntSet", [], int_set,
                posts=[ivl.Forall([i], ivl.BinExp("in", i.local_var(), ivl.Result(int_set)))]),
            ivl.Function(
                "NatSet", [], int_set,
                posts=[ivl.Forall([i], ivl.BinExp(
                    "==",
                    ivl.BinExp("in", i.local_var(), ivl.Result(int_set)),
                    ivl.BinExp(">=", i.local_var(), ivl.IntLit(0))))]),
        ]

    def translate_predicate(self, predicate: Predicate) -> ivl.Predicate:
        return ivl.Predicate(
            predicate.id.name,
            [self.translate_decl(a) for a in predicate.formal_args],
            self.translate_exp(predicate.body),
        ).with_source(predicate)

    def translate_procedure(self, procedure: Procedure) -> ivl.Method:
        formal_returns = []
        if procedure.typ != VOID:
            formal_returns.append(ivl.LocalVarDecl(RETURN_VARIABLE, self.translate_type(procedure.typ)))

        pres = [self.translate_exp(clause.assertion) for clause in procedure.pres]
        for clause in procedure.inters:
            pres.extend(self.translate_interference(clause))

        posts = [self.translate_exp(clause.assertion) for clause in procedure.posts]

        tmp_vars = [
            ivl.LocalVarDecl(self.regions.tmp_variable_name(t), self.translate_type(t))
            for t in self.regions.state_types()
        ]
        locals_ = tmp_vars + [self.translate_decl(d) for d in procedure.locals]

        logger.debug("Translating procedure %s", procedure.id.name)
        return ivl.Method(
            procedure.id.name,
            [self.translate_decl(a) for a in procedure.formal_args],
            formal_returns,
            pres,
            posts,
            locals_,
            self.as_seqn(self.translate_stmt(procedure.body)),
        ).with_source(procedure)

    def translate_decl(self, decl: FormalArgumentDecl | LocalVariableDecl) -> ivl.LocalVarDecl:
        return ivl.LocalVarDecl(decl.id.name, self.translate_type(decl.typ)).with_source(decl)

    def translate_type(self, typ: Type) -> ivl.IvlType:
        if isinstance(typ, IntType):
            return ivl.INT
        if isinstance(typ, BoolType):
            return ivl.BOOL
        if isinstance(typ, (RefType, RegionIdType, NullType)):
            return ivl.REF
        if isinstance(typ, SetType):
            return ivl.SetT(self.translate_type(typ.element_type))
        if isinstance(typ, SeqType):
            return ivl.SeqT(self.translate_type(typ.element_type))
        raise InternalError(f"Cannot translate type '{typ}'")

    # -----------------------------------------------------------------------
    # Statements
    # -----------------------------------------------------------------------

    @staticmethod
    def as_seqn(stmt: ivl.Stmt) -> ivl.Seqn:
        return stmt if isinstance(stmt, ivl.Seqn) else ivl.Seqn([stmt])

    def translate_stmt(self, stmt: Statement) -> ivl.Stmt:
        if isinstance(stmt, Block):
            return ivl.Seqn([self.translate_stmt(s) for s in stmt.statements]).with_source(stmt)
        if isinstance(stmt, Skip):
            return ivl.Seqn([]).with_source(stmt)
        if isinstance(stmt, If):
            return ivl.If(
                self.translate_exp(stmt.cond),
                self.as_seqn(self.translate_stmt(stmt.thn)),
                self.as_seqn(self.translate_stmt(stmt.els)),
            ).with_source(stmt)
        if isinstance(stmt, While):
            return ivl.While(
                self.translate_exp(stmt.cond),
                [self.translate_exp(i.assertion) for i in stmt.invariants],
                self.as_seqn(self.translate_stmt(stmt.body)),
            ).with_source(stmt)
        if isinstance(stmt, Assign):
            return ivl.LocalVarAssign(
                self.translate_variable(stmt.lhs), self.translate_exp(stmt.rhs)).with_source(stmt)
        if isinstance(stmt, HeapRead):
            return self.translate_heap_read(stmt)
        if isinstance(stmt, HeapWrite):
            return self.translate_heap_write(stmt)
        if isinstance(stmt, ProcedureCall):
            targets = [self.translate_variable(stmt.lhs)] if stmt.lhs is not None else []
            return ivl.MethodCall(
                stmt.procedure.name, [self.translate_exp(a) for a in stmt.arguments], targets,
            ).with_source(stmt)

        if isinstance(stmt, (Fold, Unfold)):
            acc = self.translate_predicate_access(stmt.predicate)
            node = ivl.Fold(acc) if isinstance(stmt, Fold) else ivl.Unfold(acc)
            return node.with_source(stmt)
        if isinstance(stmt, (Inhale, Assume)):
            return ivl.Inhale(self.translate_exp(stmt.assertion)).with_source(stmt)
        if isinstance(stmt, Exhale):
            return ivl.Exhale(self.translate_exp(stmt.assertion)).with_source(stmt)
        if isinstance(stmt, Assert):
            return ivl.Assert(self.translate_exp(stmt.assertion)).with_source(stmt)
        if isinstance(stmt, Havoc):
            return ivl.Havoc(self.translate_variable(stmt.variable)).with_source(stmt)

        if isinstance(stmt, MakeAtomic):
            return self.translate_make_atomic(stmt)
        if isinstance(stmt, UpdateRegion):
            return self.translate_update_region(stmt)
        if isinstance(stmt, UseAtomic):
            return self.translate_use_atomic(stmt)
        if isinstance(stmt, OpenRegion):
            return self.translate_open_region(stmt)

        raise InternalError(f"Cannot translate statement {type(stmt).__name__}", stmt.location)

    def translate_variable(self, idn: IdnUse) -> ivl.LocalVar:
        target = self.analyser.entity(idn)
        if isinstance(target, (ArgumentEntity, LocalVariableEntity)):
            return ivl.LocalVar(idn.name, self.translate_type(target.declaration.typ))
        raise InternalError(f"{idn.name} is not a variable", idn.location)

    # -----------------------------------------------------------------------
    # Expressions
    # -----------------------------------------------------------------------

    def translate_exp(self, exp: Expression) -> ivl.Exp:
        result = self._translate_exp(exp)
        if result.source is None:
            result.with_source(exp)
        return result

    def _translate_exp(self, exp: Expression) -> ivl.Exp:
        if isinstance(exp, TrueLit):
            return ivl.BoolLit(True)
        if isinstance(exp, FalseLit):
            return ivl.BoolLit(False)
        if isinstance(exp, IntLit):
            return ivl.IntLit(exp.value)
        if isinstance(exp, NullLit):
            return ivl.NullLit()
        if isinstance(exp, Ret):
            return ivl.LocalVar(RETURN_VARIABLE, self.translate_type(self.analyser.typ(exp)))
        if isinstance(exp, IdnExp):
            return self.translate_use_of(exp.id)

        if isinstance(exp, BinaryOp):
            return ivl.BinExp(exp.op, self.translate_exp(exp.left), self.translate_exp(exp.right))
        if isinstance(exp, UnaryOp):
            return ivl.UnExp(exp.op, self.translate_exp(exp.operand))
        if isinstance(exp, Conditional):
            return ivl.CondExp(
                self.translate_exp(exp.cond), self.translate_exp(exp.thn), self.translate_exp(exp.els))
        if isinstance(exp, Unfolding):
            return ivl.Unfolding(
                self.translate_predicate_access(exp.predicate), self.translate_exp(exp.body))

        if isinstance(exp, (ExplicitSet, ExplicitSeq)):
            collection_type = self.translate_type(self.analyser.typ(exp))
            elements = [self.translate_exp(e) for e in exp.elements]
            if isinstance(exp, ExplicitSet):
                return ivl.ExplicitSet(elements, collection_type.element)
            return ivl.ExplicitSeq(elements, collection_type.element)
        if isinstance(exp, IntSet):
            return ivl.FuncApp("IntSet", [], ivl.SetT(ivl.INT))
        if isinstance(exp, NatSet):
            return ivl.FuncApp("NatSet", [], ivl.SetT(ivl.INT))
        if isinstance(exp, SetComprehension):
            variable = ivl.LocalVarDecl(
                exp.qvar.id.name,
                self.translate_type(self.analyser.type_of_logical_variable(exp.qvar)))
            return ivl.SetComprehension(variable, self.translate_exp(exp.filter))
        if isinstance(exp, SetContains):
            return ivl.BinExp("in", self.translate_exp(exp.element), self.translate_exp(exp.set))
        if isinstance(exp, SeqSize):
            return ivl.SeqLength(self.translate_exp(exp.seq))
        if isinstance(exp, SeqHead):
            return ivl.SeqIndex(self.translate_exp(exp.seq), ivl.IntLit(0))
        if isinstance(exp, SeqTail):
            return ivl.SeqDrop(self.translate_exp(exp.seq), ivl.IntLit(1))

        if isinstance(exp, PointsTo):
            return self.translate_points_to(exp)
        if isinstance(exp, PredicateExp):
            return self.translate_predicate_exp(exp)
        if isinstance(exp, GuardExp):
            return self.guard_access(exp)
        if isinstance(exp, Diamond):
            return self.diamond_access(self.translate_use_of(exp.region_id))
        if isinstance(exp, RegionUpdateWitness):
            return self.translate_region_update_witness(exp)

        raise InternalError(f"Cannot translate expression {exp}", exp.location)

    def translate_predicate_exp(self, exp: PredicateExp) -> ivl.Exp:
        target = self.analyser.entity(exp.id)
        if isinstance(target, PredicateEntity):
            return self.translate_predicate_access(exp)
        if isinstance(target, RegionEntity):
            return self.translate_region_assertion(exp)
        raise InternalError(f"{exp.id.name} is neither a predicate nor a region", exp.location)

    def translate_predicate_access(self, exp: PredicateExp) -> ivl.PredicateAccessPredicate:
        """acc(P(args)); the out-argument of a region assertion is dropped."""
        target = self.analyser.entity(exp.id)
        if isinstance(target, RegionEntity):
            details = self.regions.details(exp)
            return self.region_predicate_access(
                details.region, [self.translate_exp(a) for a in details.in_args]).with_source(exp)
        return ivl.PredicateAccessPredicate(
            ivl.PredicateAccess(exp.id.name, [self.translate_exp(a) for a in exp.arguments]),
        ).with_source(exp)

    # -----------------------------------------------------------------------
    # Names
    # -----------------------------------------------------------------------

    def translate_use_of(self, idn: IdnUse) -> ivl.Exp:
        target = self.analyser.entity(idn)
        if isinstance(target, (ArgumentEntity, LocalVariableEntity)):
            return ivl.LocalVar(idn.name, self.translate_type(target.declaration.typ))
        if isinstance(target, LogicalVariableEntity):
            return self.translate_use_of_logical_variable(target.declaration, idn)
        raise InternalError(f"Cannot translate use of {idn.name}", idn.location)

    def translate_use_of_logical_variable(
        self, binder: LogicalVariableBinder, use: Node,
    ) -> ivl.Exp:
        """A logical variable stands for the value it was bound to.

        Variables bound by points-to assertions denote the heap location,
        variables bound as region out-arguments or by interference clauses the
        region state; a precondition binding used in a postcondition refers to
        the pre-state. Comprehension and action variables are plain variables.
        """
        context = self.analyser.bound_by(binder)

        if isinstance(context, (SetComprehension, Action)):
            return ivl.LocalVar(
                binder.id.name, self.translate_type(self.analyser.type_of_logical_variable(binder)))

        if isinstance(context, PointsTo):
            value: ivl.Exp = self.translate_location(context.heap_location)
        elif isinstance(context, PredicateExp):
            details = self.regions.details(context)
            value = self.region_state(details.region, [self.translate_exp(a) for a in details.in_args])
        elif isinstance(context, InterferenceClause):
            region, in_args = self.region_instance(context.region_id)
            value = self.region_state(region, in_args)
        else:
            raise InternalError(f"Unexpected binding context of {binder}", binder.location)

        tree = self.analyser.tree
        if (tree.enclosing(binder, (PreconditionClause, InterferenceClause)) is not None
                and tree.enclosing(use, PostconditionClause) is not None):
            return ivl.Old(value)
        return value

"""Region encoding: region predicates, state and closure functions, guards,
ghost resources and stabilization.

Per region ``R(r, args)`` with state type ``T`` the translation emits

    predicate R(r, args) { interpretation }
    function R_state(r, args): T  requires acc(R(r, args))
    function R_atomicity_context(r): Set[T]
    predicate R_G(r)                                    per guard G
    function R_G_closure(r, args, $from: T): Set[T]     per guard G

The closure function has no body. It is axiomatised by its postconditions:
it contains ``$from`` and is closed under every action ``G: ?n ~> to``.
"""

from __future__ import annotations

import logging

from atomica import ivl
from atomica.ast_nodes import (
    GuardDecl, GuardExp, IdnUse, InterferenceClause, LogicalVariableBinder, PredicateExp, Region,
    RegionUpdateWitness,
)
from atomica.errors import InternalError
from atomica.regions import DIAMOND_FIELD

logger = logging.getLogger(__name__)

FROM_VARIABLE = "$from"


class RegionTranslator:

    # -----------------------------------------------------------------------
    # Ghost fields
    # -----------------------------------------------------------------------

    def diamond_field(self) -> ivl.Field:
        return ivl.Field(DIAMOND_FIELD, ivl.INT)

    def step_fields(self) -> list[ivl.Field]:
        fields = []
        for typ in self.regions.state_types():
            ivl_type = self.translate_type(typ)
            fields.append(ivl.Field(self.regions.step_from_field_name(typ), ivl_type))
            fields.append(ivl.Field(self.regions.step_to_field_name(typ), ivl_type))
        return fields

    def diamond_location(self, region_id: ivl.Exp) -> ivl.FieldAccess:
        return ivl.FieldAccess(region_id, DIAMOND_FIELD, ivl.INT)

    def diamond_access(self, region_id: ivl.Exp) -> ivl.FieldAccessPredicate:
        return ivl.FieldAccessPredicate(self.diamond_location(region_id))

    def step_from_location(self, region_id: ivl.Exp, region: Region) -> ivl.FieldAccess:
        typ = self.regions.state_type(region)
        return ivl.FieldAccess(region_id, self.regions.step_from_field_name(typ), self.translate_type(typ))

    def step_to_location(self, region_id: ivl.Exp, region: Region) -> ivl.FieldAccess:
        typ = self.regions.state_type(region)
        return ivl.FieldAccess(region_id, self.regions.step_to_field_name(typ), self.translate_type(typ))

    def step_from_access(self, region_id: ivl.Exp, region: Region) -> ivl.FieldAccessPredicate:
        return ivl.FieldAccessPredicate(self.step_from_location(region_id, region))

    def step_to_access(self, region_id: ivl.Exp, region: Region) -> ivl.FieldAccessPredicate:
        return ivl.FieldAccessPredicate(self.step_to_location(region_id, region))

    # -----------------------------------------------------------------------
    # Region-level applications
    # -----------------------------------------------------------------------

    def region_predicate_access(self, region: Region, in_args: list[ivl.Exp]) -> ivl.PredicateAccessPredicate:
        return ivl.PredicateAccessPredicate(
            ivl.PredicateAccess(self.regions.predicate_name(region), list(in_args)))

    def region_state(self, region: Region, in_args: list[ivl.Exp]) -> ivl.FuncApp:
        return ivl.FuncApp(
            self.regions.state_function_name(region), list(in_args),
            self.translate_type(self.regions.state_type(region)))

    def atomicity_context(self, region: Region, region_id: ivl.Exp) -> ivl.FuncApp:
        return ivl.FuncApp(
            self.regions.atomicity_context_function_name(region), [region_id],
            ivl.SetT(self.translate_type(self.regions.state_type(region))))

    def guard_closure(
        self, guard: GuardDecl, region: Region, in_args: list[ivl.Exp], from_state: ivl.Exp,
    ) -> ivl.FuncApp:
        return ivl.FuncApp(
            self.regions.guard_closure_function_name(guard, region), [*in_args, from_state],
            ivl.SetT(self.translate_type(self.regions.state_type(region))))

    def guard_access(self, guard_exp: GuardExp) -> ivl.PredicateAccessPredicate:
        entity = self.regions.guard_of(guard_exp)
        return ivl.PredicateAccessPredicate(ivl.PredicateAccess(
            self.regions.guard_predicate_name(entity.declaration, entity.region),
            [self.translate_use_of(guard_exp.region_id)],
        )).with_source(guard_exp)

    def guard_access_if_not_duplicable(self, guard_exp: GuardExp) -> ivl.Exp:
        """Duplicable guards are never exclusively owned; there is nothing to transfer."""
        if self.regions.is_duplicable(self.regions.guard_of(guard_exp).declaration):
            return ivl.BoolLit(True).with_source(guard_exp)
        return self.guard_access(guard_exp)

    def region_instance(self, region_id: IdnUse) -> tuple[Region, list[ivl.Exp]]:
        """The region and translated in-arguments of the assertion a region id is used with."""
        used_with = self.analyser.region_id_used_with(region_id)
        if used_with is None or used_with[1] is None:
            raise InternalError(f"Cannot determine the region instance of {region_id.name}",
                                region_id.location)
        region, predicate = used_with
        details = self.regions.details(predicate)
        return region, [self.translate_exp(a) for a in details.in_args]

    # -----------------------------------------------------------------------
    # Declarations
    # -----------------------------------------------------------------------

    def region_formal_decls(self, region: Region) -> list[ivl.LocalVarDecl]:
        return [self.translate_decl(a) for a in region.all_formal_args]

    def translate_region(self, region: Region) -> tuple[list[ivl.Predicate], list[ivl.Function]]:
        state_type = self.translate_type(self.regions.state_type(region))
        formals = self.region_formal_decls(region)
        formal_vars = [f.local_var() for f in formals]

        region_predicate = ivl.Predicate(
            self.regions.predicate_name(region), formals,
            self.translate_exp(region.interpretation),
        ).with_source(region)

        state_function = ivl.Function(
            self.regions.state_function_name(region),
            self.region_formal_decls(region),
            state_type,
            pres=[self.region_predicate_access(region, formal_vars)],
            body=ivl.Unfolding(
                self.region_predicate_access(region, formal_vars),
                self.translate_exp(region.state)),
        ).with_source(region)

        atomicity_context_function = ivl.Function(
            self.regions.atomicity_context_function_name(region),
            [self.translate_decl(region.region_id)],
            ivl.SetT(state_type),
        ).with_source(region)

        guard_predicates = [
            ivl.Predicate(
                self.regions.guard_predicate_name(guard, region),
                [self.translate_decl(region.region_id)],
            ).with_source(guard)
            for guard in region.guards
        ]

        closures = [self.guard_closure_function(guard, region) for guard in region.guards]

        logger.debug("Translated region %s with %d guard(s)", region.id.name, len(region.guards))
        return ([region_predicate, *guard_predicates],
                [state_function, atomicity_context_function, *closures])

    def guard_closure_function(self, guard: GuardDecl, region: Region) -> ivl.Function:
        state_type = self.translate_type(self.regions.state_type(region))
        from_decl = ivl.LocalVarDecl(FROM_VARIABLE, state_type)
        result = ivl.Result(ivl.SetT(state_type))

        posts: list[ivl.Exp] = [ivl.BinExp("in", from_decl.local_var(), result)]
        for action in self.regions.actions_for(region, guard):
            binder = ivl.LocalVarDecl(action.binder.id.name, state_type)
            premise: ivl.Exp = ivl.BinExp("in", binder.local_var(), ivl.Result(result.typ))
            if action.condition is not None:
                premise = ivl.conjoin(premise, self.translate_exp(action.condition))
            successors = ivl.BinExp("subset", self.translate_exp(action.to), ivl.Result(result.typ))
            posts.append(ivl.Forall([binder], ivl.BinExp("==>", premise, successors)).with_source(action))

        return ivl.Function(
            self.regions.guard_closure_function_name(guard, region),
            [*self.region_formal_decls(region), from_decl],
            ivl.SetT(state_type),
            posts=posts,
        ).with_source(guard)

    def translate_interference(self, clause: InterferenceClause) -> list[ivl.Exp]:
        """interference ?s in S on r

        fixes the atomicity context of r to S and assumes r's current state
        to lie in S.
        """
        region, in_args = self.region_instance(clause.region_id)
        states = self.translate_exp(clause.set)
        return [
            ivl.BinExp("==", self.atomicity_context(region, in_args[0]), states).with_source(clause),
            ivl.BinExp(
                "in", self.region_state(region, in_args), self.translate_exp(clause.set),
            ).with_source(clause),
        ]

    def translate_region_assertion(self, exp: PredicateExp) -> ivl.Exp:
        """R(r, args)  or  R(r, args, out)

        A binder out-argument only names the state; any other out-argument
        constrains it.
        """
        details = self.regions.details(exp)
        in_args = [self.translate_exp(a) for a in details.in_args]
        access = self.region_predicate_access(details.region, in_args).with_source(exp)
        if details.out_arg is None or isinstance(details.out_arg, LogicalVariableBinder):
            return access
        state = ivl.BinExp(
            "==",
            self.region_state(details.region, [self.translate_exp(a) for a in details.in_args]),
            self.translate_exp(details.out_arg),
        ).with_source(exp)
        return ivl.conjoin(access, state)

    def translate_region_update_witness(self, witness: RegionUpdateWitness) -> ivl.Exp:
        """r |=> (from, to): the tracking resource, holding the given values."""
        region = self.regions.region_used_with(witness.region_id)
        region_id = self.translate_use_of(witness.region_id)
        return ivl.conjoin(
            self.step_from_access(region_id, region),
            ivl.BinExp("==", self.step_from_location(region_id, region), self.translate_exp(witness.from_)),
            self.step_to_access(region_id, region),
            ivl.BinExp("==", self.step_to_location(region_id, region), self.translate_exp(witness.to)),
        )

    # -----------------------------------------------------------------------
    # Stabilization
    # -----------------------------------------------------------------------

    def stabilize_single_instance(self, region: Region, in_args: list[ivl.Exp]) -> list[ivl.Stmt]:
        """Forget everything known about one instance's state, keeping the permission."""
        label = self.context.fresh_label("pre_havoc")
        return [
            label,
            ivl.Exhale(self.region_predicate_access(region, in_args)),
            ivl.Inhale(self.region_predicate_access(region, in_args)),
        ]

    def stabilize_region_instances(self, region: Region) -> list[ivl.Stmt]:
        """Stabilize every held instance of a region, except currently open ones."""
        label = self.context.fresh_label("pre_havoc")

        def held_instances() -> ivl.Exp:
            variables = [
                ivl.LocalVarDecl(f"${decl.name}", decl.typ) for decl in self.region_formal_decls(region)
            ]
            args = [v.local_var() for v in variables]
            held = ivl.LabelledOld(
                ivl.PermPositive(ivl.PredicateAccess(self.regions.predicate_name(region), args)),
                label.name)
            exclusions = [
                ivl.UnExp("!", ivl.conjoin(*[
                    ivl.BinExp("==", v.local_var(), open_arg)
                    for v, open_arg in zip(variables, entry.arguments)
                ]))
                for entry in self.context.open_regions
                if entry.region is region
            ]
            return ivl.Forall(variables, ivl.BinExp(
                "==>",
                ivl.conjoin(held, *exclusions),
                self.region_predicate_access(region, [v.local_var() for v in variables])))

        return [label, ivl.Exhale(held_instances()), ivl.Inhale(held_instances())]

    def stabilize_regions(self, regions: list[Region]) -> list[ivl.Stmt]:
        stmts: list[ivl.Stmt] = []
        for region in regions:
            stmts.extend(self.stabilize_region_instances(region))
        return stmts

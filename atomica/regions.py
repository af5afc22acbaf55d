"""Region/guard model — derived queries over region declarations.

A region assertion ``R(r, a1, ..., an)`` or ``R(r, a1, ..., an, out)`` names a
region instance by its id ``r`` and the regular arguments; the optional
trailing out-argument constrains (or binds) the instance's abstract state.

The model also owns the naming scheme of everything emitted per region:

  R                         region predicate (body: interpretation)
  R_state                   abstract state function
  R_atomicity_context       states an atomic procedure may start a step from
  R_G                       guard predicate, one per declared guard G
  R_G_closure               states reachable via zero or more G-actions
  $stepFrom_T / $stepTo_T   tracking resource fields per state type T
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from atomica.ast_nodes import (
    Action, Expression, GuardDecl, GuardExp, GuardModifier, IdnExp, IdnUse,
    PredicateExp, Program, Region,
)
from atomica.entities import GuardEntity, RegionEntity
from atomica.errors import InternalError
from atomica.semantic import SemanticAnalyser, qualified_guard_name
from atomica.types import Type, type_key

DIAMOND_FIELD = "$diamond"


@dataclass(frozen=True)
class RegionPredicateDetails:
    """A region assertion split into region, in-arguments and out-argument."""
    region: Region
    in_args: tuple[Expression, ...]
    out_arg: Optional[Expression] = None

    @property
    def region_id(self) -> IdnUse:
        first = self.in_args[0]
        if not isinstance(first, IdnExp):
            raise InternalError(
                f"Expected a region id as first argument of {self.region.id.name}, but got {first}",
                first.location)
        return first.id


class RegionModel:
    def __init__(self, analyser: SemanticAnalyser):
        self.analyser = analyser

    @property
    def program(self) -> Program:
        return self.analyser.program

    # -- state -------------------------------------------------------------

    def state_type(self, region: Region) -> Type:
        return self.analyser.typ(region.state)

    def state_types(self) -> list[Type]:
        """Region state types in document order, one per distinct ``type_key``.

        All reference-like types share the IVL type Ref and therefore one set
        of per-type ghost fields.
        """
        seen: dict[str, Type] = {}
        for region in self.program.regions:
            typ = self.state_type(region)
            seen.setdefault(type_key(typ), typ)
        return list(seen.values())

    # -- guards ------------------------------------------------------------

    def guard(self, region: Region, name: str) -> Optional[GuardDecl]:
        for decl in region.guards:
            if decl.id.name == name:
                return decl
        return None

    def guard_by_key(self, key: str) -> Optional[GuardEntity]:
        target = self.analyser.scope_env(self.program).lookup(key)
        return target if isinstance(target, GuardEntity) else None

    def guard_of(self, guard_exp: GuardExp) -> GuardEntity:
        target = self.analyser.entity(guard_exp.guard)
        if not isinstance(target, GuardEntity):
            raise InternalError(f"Guard {guard_exp} does not resolve to a guard", guard_exp.location)
        return target

    @staticmethod
    def is_duplicable(guard: GuardDecl) -> bool:
        return guard.modifier is GuardModifier.DUPLICABLE

    @staticmethod
    def actions_for(region: Region, guard: GuardDecl) -> list[Action]:
        return [a for a in region.actions if a.guard.name == guard.id.name]

    @staticmethod
    def qualified_key(guard: GuardDecl, region: Region) -> str:
        return qualified_guard_name(guard.id.name, region.id.name)

    # -- region assertions -------------------------------------------------

    def region_of(self, predicate: PredicateExp) -> Optional[Region]:
        target = self.analyser.entity(predicate.id)
        return target.declaration if isinstance(target, RegionEntity) else None

    def details(self, predicate: PredicateExp) -> RegionPredicateDetails:
        region = self.region_of(predicate)
        if region is None:
            raise InternalError(f"{predicate} is not a region assertion", predicate.location)

        in_count = len(region.all_formal_args)
        arguments = predicate.arguments
        if len(arguments) == in_count:
            return RegionPredicateDetails(region, tuple(arguments))
        if len(arguments) == in_count + 1:
            return RegionPredicateDetails(region, tuple(arguments[:-1]), arguments[-1])
        raise InternalError(
            f"Region assertion {predicate} has {len(arguments)} arguments, "
            f"expected {in_count} or {in_count + 1}",
            predicate.location)

    def region_used_with(self, region_id: IdnUse) -> Region:
        region = self.analyser.used_with_region(region_id)
        if region is None:
            raise InternalError(f"Cannot determine the region of {region_id.name}", region_id.location)
        return region

    # -- emitted names -----------------------------------------------------

    @staticmethod
    def predicate_name(region: Region) -> str:
        return region.id.name

    @staticmethod
    def state_function_name(region: Region) -> str:
        return f"{region.id.name}_state"

    @staticmethod
    def atomicity_context_function_name(region: Region) -> str:
        return f"{region.id.name}_atomicity_context"

    @staticmethod
    def guard_predicate_name(guard: GuardDecl, region: Region) -> str:
        return f"{region.id.name}_{guard.id.name}"

    @staticmethod
    def guard_closure_function_name(guard: GuardDecl, region: Region) -> str:
        return f"{region.id.name}_{guard.id.name}_closure"

    @staticmethod
    def step_from_field_name(typ: Type) -> str:
        return f"$stepFrom_{type_key(typ)}"

    @staticmethod
    def step_to_field_name(typ: Type) -> str:
        return f"$stepTo_{type_key(typ)}"

    @staticmethod
    def tmp_variable_name(typ: Type) -> str:
        return f"tmp_{type_key(typ)}"

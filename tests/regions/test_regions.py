"""atomica Region Model Tests — REG-001 through REG-005."""

import dataclasses

import pytest

from atomica.ast_nodes import (
    BinaryOp, ExplicitSet, FieldDecl, FormalArgumentDecl, GuardDecl, GuardModifier, IdnDef, IdnExp,
    IdnUse, IntLit, PreconditionClause, PredicateExp, Program, Region, Struct,
)
from atomica.entities import GuardEntity
from atomica.errors import InternalError
from atomica.regions import RegionModel, RegionPredicateDetails
from atomica.semantic import SemanticAnalyser
from atomica.types import INT, REGION_ID, RefType, SetType


def model_for(program):
    analyser = SemanticAnalyser(program)
    assert analyser.errors == []
    return RegionModel(analyser)


def cell(*args):
    return PredicateExp(IdnUse("Cell"), [IdnExp(IdnUse(a)) if isinstance(a, str) else a for a in args])


def pointer_region(name, struct):
    """region name(id r, struct* x) { state { x } }"""
    return Region(
        IdnDef(name),
        region_id=FormalArgumentDecl(IdnDef("r"), REGION_ID),
        formal_args=[FormalArgumentDecl(IdnDef("x"), RefType(struct))],
        state=IdnExp(IdnUse("x")),
    )


def with_precondition(program, name, assertion):
    """Replace the preconditions of procedure `name` by a single clause."""
    members = [
        dataclasses.replace(m, pres=[PreconditionClause(assertion)]) if m.id.name == name else m
        for m in program.members
    ]
    return Program(members)


# ===========================================================================
# REG-001: Emitted names
# ===========================================================================

class TestREG001:
    """REG-001: Names of the per-region IVL members."""

    def test_region_names(self, cell_program):
        region = cell_program.regions[0]
        guard = region.guards[0]
        assert RegionModel.predicate_name(region) == "Cell"
        assert RegionModel.state_function_name(region) == "Cell_state"
        assert RegionModel.atomicity_context_function_name(region) == "Cell_atomicity_context"
        assert RegionModel.guard_predicate_name(guard, region) == "Cell_incr"
        assert RegionModel.guard_closure_function_name(guard, region) == "Cell_incr_closure"
        assert RegionModel.qualified_key(guard, region) == "incr@Cell"

    def test_type_dependent_names(self):
        assert RegionModel.step_from_field_name(INT) == "$stepFrom_Int"
        assert RegionModel.step_to_field_name(SetType(INT)) == "$stepTo_Set_Int"
        assert RegionModel.tmp_variable_name(INT) == "tmp_Int"


# ===========================================================================
# REG-002: Region assertion details
# ===========================================================================

class TestREG002:
    """REG-002: Splitting region assertions into in- and out-arguments."""

    def test_without_out_argument(self, heap_cell_program):
        assertion = cell("r", "x")
        model = model_for(with_precondition(heap_cell_program, "read", assertion))
        details = model.details(assertion)
        assert details.region.id.name == "Cell"
        assert [str(a) for a in details.in_args] == ["r", "x"]
        assert details.out_arg is None
        assert details.region_id.name == "r"

    def test_with_out_argument(self, heap_cell_program):
        assertion = cell("r", "x", IntLit(0))
        model = model_for(with_precondition(heap_cell_program, "read", assertion))
        details = model.details(assertion)
        assert [str(a) for a in details.in_args] == ["r", "x"]
        assert str(details.out_arg) == "0"

    def test_region_of_conjunct(self, heap_cell_program):
        model = model_for(heap_cell_program)
        assertion = heap_cell_program.procedures[0].pres[0].assertion
        assert isinstance(assertion, BinaryOp)
        assert model.region_of(assertion.left).id.name == "Cell"

    def test_non_identifier_region_id(self, heap_cell_program):
        split = RegionPredicateDetails(heap_cell_program.regions[0], (IntLit(1), IdnExp(IdnUse("x"))))
        with pytest.raises(InternalError):
            split.region_id


# ===========================================================================
# REG-003: Guards
# ===========================================================================

class TestREG003:
    """REG-003: Guard lookup by name and by qualified key."""

    def test_guard_by_name(self, cell_program):
        model = model_for(cell_program)
        region = cell_program.regions[0]
        assert model.guard(region, "incr") is region.guards[0]
        assert model.guard(region, "decr") is None

    def test_guard_by_key(self, cell_queue_program):
        model = model_for(cell_queue_program)
        cell_guard = model.guard_by_key("incr@Cell")
        queue_guard = model.guard_by_key("incr@Queue")
        assert isinstance(cell_guard, GuardEntity)
        assert cell_guard.region.id.name == "Cell"
        assert queue_guard.region.id.name == "Queue"
        assert model.guard_by_key("incr") is None

    def test_duplicable(self):
        assert RegionModel.is_duplicable(GuardDecl(IdnDef("g"), GuardModifier.DUPLICABLE))
        assert not RegionModel.is_duplicable(GuardDecl(IdnDef("g")))

    def test_actions_for_guard(self, cell_program):
        region = cell_program.regions[0]
        assert RegionModel.actions_for(region, region.guards[0]) == region.actions
        assert RegionModel.actions_for(region, GuardDecl(IdnDef("other"))) == []


# ===========================================================================
# REG-004: Region ids
# ===========================================================================

class TestREG004:
    """REG-004: The region a region id is used with."""

    def test_interference_region_id(self, heap_cell_program):
        model = model_for(heap_cell_program)
        clause = heap_cell_program.procedures[0].inters[0]
        assert model.region_used_with(clause.region_id).id.name == "Cell"


# ===========================================================================
# REG-005: State types
# ===========================================================================

class TestREG005:
    """REG-005: Distinct state types in document order."""

    def test_duplicate_types_collapse(self, cell_queue_program):
        assert model_for(cell_queue_program).state_types() == [INT]

    def test_document_order(self, cell_program):
        bag = Region(
            IdnDef("Bag"),
            region_id=FormalArgumentDecl(IdnDef("r"), REGION_ID),
            state=ExplicitSet([IntLit(1)]),
        )
        model = model_for(Program([bag, cell_program.regions[0]]))
        assert model.state_types() == [SetType(INT), INT]

    def test_heap_backed_state(self, heap_cell_program):
        assert model_for(heap_cell_program).state_types() == [INT]

    def test_reference_types_share_one_key(self):
        program = Program([
            Struct(IdnDef("cell"), [FieldDecl("val", INT)]),
            Struct(IdnDef("node"), [FieldDecl("val", INT)]),
            pointer_region("A", "cell"),
            pointer_region("B", "node"),
        ])
        model = model_for(program)
        assert model.state_type(program.regions[1]) == RefType("node")
        assert model.state_types() == [RefType("cell")]

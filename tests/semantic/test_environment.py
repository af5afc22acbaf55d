"""atomica Environment & Type Tests — ENV-001 through ENV-004."""

import copy

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from atomica.ast_nodes import FormalArgumentDecl, IdnDef, Struct
from atomica.entities import ArgumentEntity, MultipleEntity, StructEntity, UnknownEntity
from atomica.environment import Environment
from atomica.types import (
    BOOL, INT, NULL, REGION_ID, UNKNOWN, VOID, RefType, SeqType, SetType, is_compatible, type_key,
)


SIMPLE_TYPES = [INT, BOOL, VOID, NULL, REGION_ID, UNKNOWN]


@st.composite
def type_strategy(draw, depth=3):
    """Simple and reference types, nested up to depth collection constructors."""
    if depth == 0 or draw(st.booleans()):
        references = st.builds(RefType, st.sampled_from(["cell", "node", "queue"]))
        return draw(st.sampled_from(SIMPLE_TYPES) | references)
    constructor = draw(st.sampled_from([SetType, SeqType]))
    return constructor(draw(type_strategy(depth - 1)))


def struct_entity(name):
    return StructEntity(Struct(IdnDef(name)))


# ===========================================================================
# ENV-001: Scope chains
# ===========================================================================

class TestENV001:
    """ENV-001: Definitions, shadowing and lookup order."""

    def test_lookup_innermost_first(self):
        outer, inner = struct_entity("a"), struct_entity("a")
        env = Environment.root([("a", outer)]).enter().define("a", inner)
        assert env.lookup("a") is inner
        assert env.leave().lookup("a") is outer

    def test_missing_name_is_unknown(self):
        assert isinstance(Environment.root().lookup("nothing"), UnknownEntity)

    def test_lookup_default(self):
        default = struct_entity("d")
        assert Environment.root().lookup("nothing", default) is default

    def test_redefinition_in_same_scope_is_multiple(self):
        env = Environment.root([("a", struct_entity("a")), ("a", struct_entity("a"))])
        assert isinstance(env.lookup("a"), MultipleEntity)

    def test_redefinition_in_inner_scope_shadows(self):
        decl = FormalArgumentDecl(IdnDef("a"), INT)
        env = Environment.root([("a", struct_entity("a"))]).enter().define_if_new("a", ArgumentEntity(decl))
        assert env.lookup("a") == ArgumentEntity(decl)

    def test_environments_are_persistent(self):
        base = Environment.root([("a", struct_entity("a"))])
        base.enter().define("b", struct_entity("b"))
        assert isinstance(base.lookup("b"), UnknownEntity)


# ===========================================================================
# ENV-002: Stack depth
# ===========================================================================

class TestENV002:
    """ENV-002: Entering and leaving scopes are inverse operations."""

    @pytest.mark.parametrize("levels", [0, 1, 3, 10])
    def test_enter_leave_restores_depth(self, levels):
        env = Environment.root()
        start = env.depth
        for _ in range(levels):
            env = env.enter()
        assert env.depth == start + levels
        for _ in range(levels):
            env = env.leave()
        assert env.depth == start

    def test_leave_empty_environment(self):
        with pytest.raises(ValueError):
            Environment().leave()

    def test_names_innermost_first(self):
        env = Environment.root([("a", struct_entity("a"))]).enter().define("b", struct_entity("b"))
        assert env.names() == ["b", "a"]


# ===========================================================================
# ENV-003: Type compatibility
# ===========================================================================

class TestENV003:
    """ENV-003: is_compatible is reflexive and Unknown is compatible with everything."""

    @given(type_strategy())
    @settings(max_examples=200)
    def test_reflexive(self, typ):
        """Types compare structurally, so a rebuilt copy is compatible too."""
        assert is_compatible(typ, typ)
        assert is_compatible(typ, copy.deepcopy(typ)), f"reflexivity: {typ}"

    @given(type_strategy())
    @settings(max_examples=200)
    def test_unknown_absorbs(self, typ):
        assert is_compatible(UNKNOWN, typ)
        assert is_compatible(typ, UNKNOWN)
        assert is_compatible(UNKNOWN, SeqType(typ))

    @given(type_strategy(), type_strategy())
    @settings(max_examples=200)
    def test_symmetric(self, a, b):
        assert is_compatible(a, b) == is_compatible(b, a), f"symmetry: {a}, {b}"

    @given(type_strategy())
    @settings(max_examples=100)
    def test_collections_preserve_compatibility(self, typ):
        assert is_compatible(SetType(typ), SetType(typ))
        assert not is_compatible(SetType(typ), SeqType(typ))

    def test_null_fits_references(self):
        assert is_compatible(RefType("cell"), NULL)
        assert is_compatible(NULL, RefType("cell"))
        assert not is_compatible(INT, NULL)

    def test_distinct_types(self):
        assert not is_compatible(INT, BOOL)
        assert not is_compatible(RefType("cell"), RefType("node"))
        assert not is_compatible(SetType(INT), SeqType(INT))
        assert not is_compatible(SetType(INT), SetType(BOOL))


# ===========================================================================
# ENV-004: Type keys
# ===========================================================================

class TestENV004:
    """ENV-004: Types map to identifier-safe keys."""

    def test_keys(self):
        assert type_key(INT) == "Int"
        assert type_key(BOOL) == "Bool"
        assert type_key(RefType("cell")) == "Ref"
        assert type_key(SetType(INT)) == "Set_Int"
        assert type_key(SeqType(SetType(BOOL))) == "Seq_Set_Bool"

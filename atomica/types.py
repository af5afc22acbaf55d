"""atomica Type System.

Built-in types: Int, Bool, Void, Null, RegionId
Reference types: Ref<Struct>
Collection types: Set<T>, Seq<T>
Unknown absorbs earlier errors and is compatible with everything.
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Type Representations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Type:
    """Base type."""
    def __str__(self) -> str:
        return "?"


@dataclass(frozen=True)
class IntType(Type):
    def __str__(self) -> str:
        return "int"


@dataclass(frozen=True)
class BoolType(Type):
    def __str__(self) -> str:
        return "bool"


@dataclass(frozen=True)
class VoidType(Type):
    def __str__(self) -> str:
        return "void"


@dataclass(frozen=True)
class NullType(Type):
    def __str__(self) -> str:
        return "null"


@dataclass(frozen=True)
class RegionIdType(Type):
    def __str__(self) -> str:
        return "id"


@dataclass(frozen=True)
class RefType(Type):
    struct: str = ""

    def __str__(self) -> str:
        return f"{self.struct}*"


@dataclass(frozen=True)
class CollectionType(Type):
    element_type: Type = field(default_factory=Type)


@dataclass(frozen=True)
class SetType(CollectionType):
    def __str__(self) -> str:
        return f"set<{self.element_type}>"


@dataclass(frozen=True)
class SeqType(CollectionType):
    def __str__(self) -> str:
        return f"seq<{self.element_type}>"


@dataclass(frozen=True)
class UnknownType(Type):
    def __str__(self) -> str:
        return "<unknown>"


# ---------------------------------------------------------------------------
# Built-in Types
# ---------------------------------------------------------------------------

INT = IntType()
BOOL = BoolType()
VOID = VoidType()
NULL = NullType()
REGION_ID = RegionIdType()
UNKNOWN = UnknownType()


def is_compatible(t1: Type, t2: Type) -> bool:
    """Are two types compatible?

    If either of them is unknown then an error has already been raised
    elsewhere, so they are compatible with anything. Otherwise the two types
    have to be the same, except that null fits any reference type.
    """
    return (
        t1 == t2
        or (isinstance(t1, RefType) and isinstance(t2, NullType))
        or (isinstance(t2, RefType) and isinstance(t1, NullType))
        or isinstance(t1, UnknownType)
        or isinstance(t2, UnknownType)
    )


def type_key(typ: Type) -> str:
    """Identifier-safe rendering, used to name per-type ghost fields."""
    if isinstance(typ, SetType):
        return f"Set_{type_key(typ.element_type)}"
    if isinstance(typ, SeqType):
        return f"Seq_{type_key(typ.element_type)}"
    if isinstance(typ, RefType):
        return "Ref"
    if isinstance(typ, RegionIdType):
        return "Ref"
    return str(typ).capitalize()

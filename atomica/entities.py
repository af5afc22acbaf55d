"""Symbol-table entities.

The set of entities is closed: every identifier resolves to exactly one of
the variants below. ``UnknownEntity`` marks an undeclared name and
``MultipleEntity`` a name declared more than once in the same scope.
"""

from __future__ import annotations

from dataclasses import dataclass

from atomica.ast_nodes import (
    Struct, Procedure, Predicate, Region, GuardDecl,
    FormalArgumentDecl, LocalVariableDecl, LogicalVariableBinder,
)


@dataclass(frozen=True)
class Entity:
    """Base entity."""

    @property
    def is_error(self) -> bool:
        return False


@dataclass(frozen=True)
class StructEntity(Entity):
    declaration: Struct


@dataclass(frozen=True)
class ProcedureEntity(Entity):
    declaration: Procedure


@dataclass(frozen=True)
class PredicateEntity(Entity):
    declaration: Predicate


@dataclass(frozen=True)
class RegionEntity(Entity):
    declaration: Region


@dataclass(frozen=True)
class GuardEntity(Entity):
    declaration: GuardDecl
    region: Region


@dataclass(frozen=True)
class ArgumentEntity(Entity):
    declaration: FormalArgumentDecl


@dataclass(frozen=True)
class LocalVariableEntity(Entity):
    declaration: LocalVariableDecl


@dataclass(frozen=True)
class LogicalVariableEntity(Entity):
    declaration: LogicalVariableBinder


@dataclass(frozen=True)
class UnknownEntity(Entity):
    @property
    def is_error(self) -> bool:
        return True


@dataclass(frozen=True)
class MultipleEntity(Entity):
    @property
    def is_error(self) -> bool:
        return True



"""Heap locations: struct fields, heap reads/writes and points-to assertions."""

from __future__ import annotations

from atomica import ivl
from atomica.ast_nodes import HeapRead, HeapWrite, Location, LogicalVariableBinder, PointsTo
from atomica.errors import InternalError
from atomica.types import RefType


class HeapTranslator:
    """Each struct field ``S.f`` becomes a global IVL field ``S_f``."""

    @staticmethod
    def heap_field_name(struct_name: str, field_name: str) -> str:
        return f"{struct_name}_{field_name}"

    def heap_fields(self) -> list[ivl.Field]:
        return [
            ivl.Field(self.heap_field_name(struct.id.name, f.name), self.translate_type(f.typ)).with_source(f)
            for struct in self.analyser.program.structs
            for f in struct.fields
        ]

    def translate_location(self, location: Location) -> ivl.FieldAccess:
        receiver_type = self.analyser.type_of_idn(location.receiver)
        if not isinstance(receiver_type, RefType):
            raise InternalError(f"Receiver of {location} is not of struct type", location.location)
        return ivl.FieldAccess(
            self.translate_use_of(location.receiver),
            self.heap_field_name(receiver_type.struct, location.field_name),
            self.translate_type(self.analyser.type_of_location(location)),
        ).with_source(location)

    def translate_points_to(self, points_to: PointsTo) -> ivl.Exp:
        """x.f |-> v  becomes  acc(x.f) && x.f == v, unless v is a binder."""
        access = ivl.FieldAccessPredicate(self.translate_location(points_to.heap_location))
        if isinstance(points_to.value, LogicalVariableBinder):
            return access.with_source(points_to)
        value = ivl.BinExp(
            "==", self.translate_location(points_to.heap_location), self.translate_exp(points_to.value),
        ).with_source(points_to)
        return ivl.conjoin(access, value).with_source(points_to)

    def translate_heap_read(self, read: HeapRead) -> ivl.Stmt:
        return ivl.LocalVarAssign(
            self.translate_variable(read.lhs), self.translate_location(read.heap_location),
        ).with_source(read)

    def translate_heap_write(self, write: HeapWrite) -> ivl.Stmt:
        return ivl.FieldAssign(
            self.translate_location(write.heap_location), self.translate_exp(write.rhs),
        ).with_source(write)

"""Scoped name environments.

An environment is a stack of scope layers, innermost last. Environments are
immutable values: entering a scope or defining a name returns a new
environment and leaves the original untouched, so an environment computed for
one node can be shared by every node below it.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from atomica.entities import Entity, MultipleEntity, UnknownEntity


class Environment:
    def __init__(self, layers: tuple[Mapping[str, Entity], ...] = ()):
        self._layers = layers

    @classmethod
    def root(cls, bindings: Iterable[tuple[str, Entity]] = ()) -> Environment:
        """A single-layer environment; repeated names become MultipleEntity."""
        env = cls(({},))
        for name, entity in bindings:
            env = env.define_if_new(name, entity)
        return env

    def enter(self) -> Environment:
        return Environment(self._layers + ({},))

    def leave(self) -> Environment:
        if not self._layers:
            raise ValueError("Cannot leave the empty environment")
        return Environment(self._layers[:-1])

    def define(self, name: str, entity: Entity) -> Environment:
        if not self._layers:
            return Environment(({name: entity},))
        innermost = dict(self._layers[-1])
        innermost[name] = entity
        return Environment(self._layers[:-1] + (innermost,))

    def is_defined_in_scope(self, name: str) -> bool:
        return bool(self._layers) and name in self._layers[-1]

    def define_if_new(self, name: str, entity: Entity) -> Environment:
        """Define name in the innermost scope, or mark it as multiply defined."""
        if self.is_defined_in_scope(name):
            return self.define(name, MultipleEntity())
        return self.define(name, entity)

    def lookup(self, name: str, default: Optional[Entity] = None) -> Entity:
        for layer in reversed(self._layers):
            if name in layer:
                return layer[name]
        return default if default is not None else UnknownEntity()

    @property
    def depth(self) -> int:
        return len(self._layers)

    def names(self) -> list[str]:
        seen: list[str] = []
        for layer in reversed(self._layers):
            for name in layer:
                if name not in seen:
                    seen.append(name)
        return seen

    def __repr__(self) -> str:
        return f"Environment(depth={self.depth}, names={self.names()})"

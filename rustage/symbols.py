#!/usr/bin/env python3

"""Versioned symbol tree and alias directives.

The builder grows a mutable `SymbolNode` tree it alone owns, then freezes it
into `VersionedSymbol` models. The frozen `StabilityIndex` is what resolvers
query and what gets written to a snapshot.
"""

from dataclasses import dataclass, field
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

SELF_SEGMENT = "self"
SUPER_SEGMENT = "super"

# Version of any node that exists without its own stability marker
DEFAULT_VERSION = "1.0.0"


class VersionedSymbol(BaseModel):
    """A declaration with the version it was stabilized in."""

    model_config = ConfigDict(frozen=True)

    name: str
    stabilization_version: str = DEFAULT_VERSION
    public: bool = True
    children: dict[str, "VersionedSymbol"] = Field(default_factory=dict)

    def child(self, name: str) -> "VersionedSymbol | None":
        return self.children.get(name)


class NamedBinding(BaseModel):
    """A single imported name, possibly renamed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["named"] = "named"
    name: str


class GlobBinding(BaseModel):
    """All children of the target are imported."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["glob"] = "glob"


Binding = Annotated[NamedBinding | GlobBinding, Field(discriminator="kind")]


class AliasDirective(BaseModel):
    """One `use` relationship recorded while scanning the standard library."""

    model_config = ConfigDict(frozen=True)

    defining_scope: tuple[str, ...]
    target_path: tuple[str, ...]
    binding: Binding

    def binds(self, name: str) -> bool:
        return isinstance(self.binding, NamedBinding) and self.binding.name == name

    @property
    def is_glob(self) -> bool:
        return isinstance(self.binding, GlobBinding)

    def __str__(self) -> str:
        local = self.binding.name if isinstance(self.binding, NamedBinding) else "*"
        scope = "::".join(self.defining_scope) or "<root>"
        return f"{scope} :: {local} -> {'::'.join(self.target_path)}"


class StabilityIndex(BaseModel):
    """Frozen symbol tree plus the ordered alias list."""

    model_config = ConfigDict(frozen=True)

    root: VersionedSymbol
    aliases: tuple[AliasDirective, ...] = ()

    def symbol_count(self) -> int:
        count = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            count += 1
            stack.extend(node.children.values())
        return count


@dataclass
class SymbolNode:
    """Mutable tree node used only while the index is being built."""

    name: str
    version: str = DEFAULT_VERSION
    public: bool = True
    children: dict[str, "SymbolNode"] = field(default_factory=dict)

    def get_or_create(self, name: str) -> "SymbolNode":
        child = self.children.get(name)
        if child is None:
            child = SymbolNode(name)
            self.children[name] = child
        return child

    def freeze(self) -> VersionedSymbol:
        return VersionedSymbol(
            name=self.name,
            stabilization_version=self.version,
            public=self.public,
            children={name: child.freeze() for name, child in self.children.items()},
        )

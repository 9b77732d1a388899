#!/usr/bin/env python3

"""Alias-aware resolution of qualified paths against a stability index.

A path is walked segment by segment through the symbol tree. When a segment
is missing, the `use` directives recorded for the module we are standing in
are tried in declaration order:

* a named directive binding the missing segment jumps to its target and the
  rest of the path continues from there;
* a glob directive is taken when its target has a child with the missing
  name.

When that fails, the node we are standing on may be the versioned stand-in
for an import of its parent module (`pub use alloc_crate::vec;` creates
`std::vec` without children), so the parent's directive for that name is
followed instead.

Directive targets are tried relative to the module that declared them, then
relative to that module's parent, then from the index root.

Within one query each (module, path) lookup is worked out once; the outcome
is reused, so rings of re-exports fail in time linear in their length.
"""

import logging
from collections.abc import Iterator, Sequence

from rustage.symbols import (
    SELF_SEGMENT,
    SUPER_SEGMENT,
    AliasDirective,
    StabilityIndex,
    VersionedSymbol,
)

logger = logging.getLogger(__name__)

CRATE_SHORTHAND = "crate"
# std links its allocation crate under a different name
ALLOC_SHORTHAND = "alloc_crate"
ALLOC_CRATE = "alloc"

DEFAULT_MAX_ALIAS_DEPTH = 64

Scope = tuple[str, ...]
Located = tuple[VersionedSymbol, Scope]


class _Attempt:
    """State shared by every step of one top-level resolution."""

    def __init__(self):
        # keyed by (root_path, path)
        self.found: dict[tuple[Scope, Scope], Located] = {}
        self.failed: set[tuple[Scope, Scope]] = set()


class PathResolver:
    """Read-only queries against a built StabilityIndex.

    Safe to share between any number of walks: nothing here mutates the
    index or the resolver after construction.
    """

    def __init__(self, index: StabilityIndex, max_alias_depth: int = DEFAULT_MAX_ALIAS_DEPTH):
        self.index = index
        self.max_alias_depth = max_alias_depth

        by_scope: dict[Scope, list[tuple[int, AliasDirective]]] = {}
        for position, alias in enumerate(index.aliases):
            by_scope.setdefault(alias.defining_scope, []).append((position, alias))
        self._aliases_by_scope = {scope: tuple(found) for scope, found in by_scope.items()}

    def resolve(
        self, root: VersionedSymbol, root_path: Sequence[str], path: Sequence[str]
    ) -> VersionedSymbol | None:
        """Resolve `path` relative to `root`, whose own full path is `root_path`."""
        located = self._resolve(root, tuple(root_path), tuple(path), frozenset(), 0, _Attempt())
        if located is None:
            return None
        return located[0]

    def resolve_path(self, path: Sequence[str]) -> VersionedSymbol | None:
        """Resolve a path from the index root."""
        return self.resolve(self.index.root, (), path)

    def version_of(self, path: Sequence[str]) -> str | None:
        symbol = self.resolve_path(path)
        if symbol is None:
            return None
        return symbol.stabilization_version

    def _resolve(
        self,
        root: VersionedSymbol,
        root_path: Scope,
        path: Scope,
        active: frozenset[int],
        depth: int,
        attempt: _Attempt,
    ) -> Located | None:
        key = (root_path, path)
        if key in attempt.found:
            return attempt.found[key]
        if key in attempt.failed:
            return None

        located = self._descend(root, root_path, path, active, depth, attempt)
        if located is None:
            attempt.failed.add(key)
        else:
            attempt.found[key] = located
        return located

    def _descend(
        self,
        root: VersionedSymbol,
        root_path: Scope,
        path: Scope,
        active: frozenset[int],
        depth: int,
        attempt: _Attempt,
    ) -> Located | None:
        if depth > self.max_alias_depth:
            logger.debug(f"Alias depth exceeded resolving {'::'.join(path)} from {root_path}")
            return None

        if root_path and path:
            crate = self._shorthand_crate(path[0], root_path)
            if crate is not None:
                crate_node = self.index.root.children.get(crate)
                if crate_node is None:
                    return None
                return self._resolve(crate_node, (crate,), path[1:], active, depth, attempt)

        current = root
        parent: VersionedSymbol | None = None
        consumed = root_path
        for i, segment in enumerate(path):
            if segment == SELF_SEGMENT:
                continue
            if segment == SUPER_SEGMENT:
                # Relative parent paths are not supported.
                return None

            child = current.children.get(segment)
            if child is not None:
                parent, current = current, child
                consumed = consumed + (segment,)
                continue

            return self._follow_aliases(
                current, parent, consumed, path[i:], active, depth, attempt
            )

        return current, consumed

    def _shorthand_crate(self, segment: str, root_path: Scope) -> str | None:
        if segment == CRATE_SHORTHAND:
            return root_path[0]
        if segment == ALLOC_SHORTHAND:
            return ALLOC_CRATE
        return None

    def _follow_aliases(
        self,
        current: VersionedSymbol,
        parent: VersionedSymbol | None,
        consumed: Scope,
        rest: Scope,
        active: frozenset[int],
        depth: int,
        attempt: _Attempt,
    ) -> Located | None:
        missed = rest[0]

        for position, alias in self._aliases_at(consumed, active):
            if alias.is_glob:
                located = self._follow_glob(
                    alias, position, current, consumed, missed, rest, active, depth, attempt
                )
            elif alias.binds(missed):
                located = self._follow_named(
                    alias, position, current, consumed, rest[1:], active, depth, attempt
                )
            else:
                continue
            if located is not None:
                return located

        if not consumed:
            return None

        # `current` may stand in for an import declared by its parent module.
        scope, name = consumed[:-1], consumed[-1]
        scope_node = parent if parent is not None else self._lookup(scope)
        if scope_node is None:
            return None

        for position, alias in self._aliases_at(scope, active):
            if alias.is_glob:
                located = self._follow_glob(
                    alias,
                    position,
                    scope_node,
                    scope,
                    name,
                    (name,) + rest,
                    active,
                    depth,
                    attempt,
                )
            elif alias.binds(name):
                located = self._follow_named(
                    alias, position, scope_node, scope, rest, active, depth, attempt
                )
            else:
                continue
            if located is not None:
                return located

        return None

    def _follow_named(
        self,
        alias: AliasDirective,
        position: int,
        scope_node: VersionedSymbol,
        scope: Scope,
        tail: Scope,
        active: frozenset[int],
        depth: int,
        attempt: _Attempt,
    ) -> Located | None:
        active = active | {position}
        targets = self._alias_targets(alias, scope_node, scope, active, depth, attempt)
        for target, target_path in targets:
            located = self._resolve(target, target_path, tail, active, depth + 1, attempt)
            if located is not None:
                return located
        return None

    def _follow_glob(
        self,
        alias: AliasDirective,
        position: int,
        scope_node: VersionedSymbol,
        scope: Scope,
        name: str,
        tail: Scope,
        active: frozenset[int],
        depth: int,
        attempt: _Attempt,
    ) -> Located | None:
        active = active | {position}
        targets = self._alias_targets(alias, scope_node, scope, active, depth, attempt)
        for target, target_path in targets:
            if name not in target.children:
                continue
            located = self._resolve(target, target_path, tail, active, depth + 1, attempt)
            if located is not None:
                return located
        return None

    def _alias_targets(
        self,
        alias: AliasDirective,
        scope_node: VersionedSymbol,
        scope: Scope,
        active: frozenset[int],
        depth: int,
        attempt: _Attempt,
    ) -> Iterator[Located]:
        """Yield every place the directive's target resolves to, most local first."""
        bases: list[Located] = [(scope_node, scope)]
        if scope:
            scope_parent = self._lookup(scope[:-1])
            if scope_parent is not None:
                bases.append((scope_parent, scope[:-1]))
        if bases[-1][1]:
            bases.append((self.index.root, ()))

        for base, base_path in bases:
            located = self._resolve(
                base, base_path, alias.target_path, active, depth + 1, attempt
            )
            if located is not None:
                yield located

    def _aliases_at(
        self, scope: Scope, active: frozenset[int]
    ) -> Iterator[tuple[int, AliasDirective]]:
        # A directive already being followed would only lead back here.
        for position, alias in self._aliases_by_scope.get(scope, ()):
            if position not in active:
                yield position, alias

    def _lookup(self, path: Scope) -> VersionedSymbol | None:
        node = self.index.root
        for segment in path:
            node = node.children.get(segment)
            if node is None:
                return None
        return node

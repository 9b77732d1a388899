#!/usr/bin/env python3

"""Build the versioned symbol tree from expanded standard library sources."""

import logging
from collections.abc import Iterable

from tree_sitter import Node

from rustage.symbols import (
    SELF_SEGMENT,
    AliasDirective,
    GlobBinding,
    NamedBinding,
    StabilityIndex,
    SymbolNode,
)
from rustage.syntax import (
    _node_text,
    is_public,
    items_with_attributes,
    iter_use_leaves,
    parse_rust,
    path_segments,
    stable_since,
)

logger = logging.getLogger(__name__)

DEFAULT_PRELUDE = ("std", "prelude", "v1")

# Declarations that only carry a name and a stability marker
SIMPLE_ITEMS = {
    "const_item": "identifier",
    "function_item": "identifier",
    "static_item": "identifier",
    "struct_item": "type_identifier",
    "type_item": "type_identifier",
    "union_item": "type_identifier",
}

IMPL_MEMBERS = {"const_item", "function_item", "type_item"}
TRAIT_MEMBERS = {"const_item", "function_item", "function_signature_item", "associated_type"}


class StabilityIndexBuilder:
    """Scans crates one by one, then freezes into a StabilityIndex.

    The builder is the only owner of the tree while it grows; `finish()` hands
    out an immutable index and the builder must not be used afterwards.
    """

    def __init__(self):
        self.root = SymbolNode("")
        self.aliases: list[AliasDirective] = []
        self.path_stack: list[str] = []
        self._finished = False

    def process_source(self, crate: str, code: str | bytes) -> None:
        """Parse and index one crate. Syntax errors are fatal."""
        tree = parse_rust(code, source_name=f"crate {crate}")
        self.process_file(crate, tree.root_node)

    def process_file(self, crate: str, root_node: Node) -> None:
        if self._finished:
            raise RuntimeError("index already finished")
        logger.info(f"Indexing crate {crate}")
        self.push_path(crate)
        self._current_node()
        self._process_items(root_node)
        self.pop_path()

    def finish(self, prelude: Iterable[str] = DEFAULT_PRELUDE) -> StabilityIndex:
        """Append the implicit prelude import and freeze the tree."""
        self.aliases.append(
            AliasDirective(
                defining_scope=(),
                target_path=tuple(prelude),
                binding=GlobBinding(),
            )
        )
        self._finished = True
        index = StabilityIndex(root=self.root.freeze(), aliases=tuple(self.aliases))
        logger.info(
            f"Built stability index with {index.symbol_count()} symbols "
            f"and {len(index.aliases)} aliases"
        )
        return index

    def _process_items(self, container: Node):
        for item, attributes in items_with_attributes(container):
            self._process_item(item, attributes)

    def _process_item(self, item: Node, attributes: list[Node]):
        if item.type in SIMPLE_ITEMS:
            name = item.child_by_field_name("name")
            if name is not None:
                self.push_version_from_attributes(_node_text(name), attributes, is_public(item))
        elif item.type == "enum_item":
            self._process_enum(item, attributes)
        elif item.type == "impl_item":
            self._process_impl(item)
        elif item.type == "mod_item":
            self._process_mod(item, attributes)
        elif item.type == "trait_item":
            self._process_trait(item, attributes)
        elif item.type == "use_declaration":
            self._process_use(item, attributes)
        # macro definitions, extern blocks and extern crates carry no versions

    def _process_enum(self, item: Node, attributes: list[Node]):
        name = _node_text(item.child_by_field_name("name"))
        self.push_version_from_attributes(name, attributes, is_public(item))

        body = item.child_by_field_name("body")
        if body is None:
            return
        self.push_path(name)
        for variant, variant_attributes in items_with_attributes(body):
            if variant.type != "enum_variant":
                continue
            variant_name = _node_text(variant.child_by_field_name("name"))
            self.push_version_from_attributes(variant_name, variant_attributes, True)
        self.pop_path()

    def _process_impl(self, item: Node):
        if item.child_by_field_name("trait") is not None:
            # Trait implementations are not indexed.
            return

        segments = self._impl_type_segments(item.child_by_field_name("type"))
        if segments is None:
            return
        body = item.child_by_field_name("body")
        if body is None:
            return

        for segment in segments:
            self.push_path(segment)
        for member, attributes in items_with_attributes(body):
            if member.type in IMPL_MEMBERS:
                name = member.child_by_field_name("name")
                if name is not None:
                    self.push_version_from_attributes(
                        _node_text(name), attributes, is_public(member)
                    )
        self.pop_path_n(len(segments))

    def _impl_type_segments(self, type_node: Node | None) -> list[str] | None:
        if type_node is None:
            return None
        if type_node.type == "generic_type":
            return self._impl_type_segments(type_node.child_by_field_name("type"))
        if type_node.type in ("type_identifier", "primitive_type", "scoped_type_identifier"):
            return path_segments(type_node)
        # slices, references, tuples, ...
        return None

    def _process_mod(self, item: Node, attributes: list[Node]):
        body = item.child_by_field_name("body")
        if body is None:
            return

        name = _node_text(item.child_by_field_name("name"))
        self.push_version_from_attributes(name, attributes, is_public(item))

        self.push_path(name)
        self._current_node()
        self._process_items(body)
        self.pop_path()

    def _process_trait(self, item: Node, attributes: list[Node]):
        name = _node_text(item.child_by_field_name("name"))
        self.push_version_from_attributes(name, attributes, is_public(item))

        body = item.child_by_field_name("body")
        if body is None:
            return
        self.push_path(name)
        for member, member_attributes in items_with_attributes(body):
            if member.type in TRAIT_MEMBERS:
                member_name = member.child_by_field_name("name")
                if member_name is not None:
                    self.push_version_from_attributes(
                        _node_text(member_name), member_attributes, True
                    )
        self.pop_path()

    def _process_use(self, item: Node, attributes: list[Node]):
        argument = item.child_by_field_name("argument")
        if argument is None:
            return
        public = is_public(item)
        scope = tuple(self.path_stack)
        for target, local in iter_use_leaves(argument):
            if local is None:
                self.aliases.append(
                    AliasDirective(
                        defining_scope=scope,
                        target_path=tuple(target),
                        binding=GlobBinding(),
                    )
                )
                continue

            self.aliases.append(
                AliasDirective(
                    defining_scope=scope,
                    target_path=tuple(target),
                    binding=NamedBinding(name=local),
                )
            )
            # Re-exports are versioned under the name they are visible as.
            self.push_version_from_attributes(local, attributes, public)

    def push_path(self, segment: str):
        self.path_stack.append(segment)

    def pop_path(self):
        self.path_stack.pop()

    def pop_path_n(self, n: int):
        for _ in range(n):
            self.pop_path()

    def push_version_from_attributes(self, name: str, attributes: list[Node], public: bool):
        since = stable_since(attributes)
        if since is None:
            return

        self.push_path(name)
        node = self._current_node()
        node.version = since
        node.public = public
        self.pop_path()

    def _current_node(self) -> SymbolNode:
        current = self.root
        for segment in self.path_stack:
            if segment == SELF_SEGMENT:
                continue
            current = current.get_or_create(segment)
        return current


def build_index(
    sources: dict[str, str | bytes], prelude: Iterable[str] = DEFAULT_PRELUDE
) -> StabilityIndex:
    """Index each crate's expanded source, in the given order."""
    builder = StabilityIndexBuilder()
    for crate, code in sources.items():
        builder.process_source(crate, code)
    return builder.finish(prelude)

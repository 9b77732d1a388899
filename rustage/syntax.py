#!/usr/bin/env python3

"""Tree-sitter helpers shared by the index builder and the usage walker."""

import re

import tree_sitter_rust as tsrust
from tree_sitter import Language, Node, Parser, Tree

RUST_LANGUAGE = Language(tsrust.language())

# Nodes that can sit between items without being part of them
TRIVIA = {"line_comment", "block_comment", "inner_attribute_item", "empty_statement"}

# Path nodes that carry a single segment as their text
SEGMENT_NODES = {
    "identifier",
    "type_identifier",
    "field_identifier",
    "primitive_type",
    "self",
    "super",
    "crate",
}

SCOPED_NODES = {"scoped_identifier", "scoped_type_identifier"}

SINCE_PATTERN = re.compile(r'\bsince\s*=\s*"([^"]*)"')


class RustParseError(Exception):
    """Raised when Rust source cannot be parsed without syntax errors."""

    def __init__(self, source_name: str, line: int | None = None):
        self.source_name = source_name
        self.line = line
        location = f" (first error near line {line})" if line is not None else ""
        super().__init__(f"failed to parse {source_name}{location}")


# Helper to avoid type-checking warnings.
def _node_text(node: Node) -> str:
    assert node.text is not None
    return node.text.decode().strip()


def make_parser() -> Parser:
    return Parser(RUST_LANGUAGE)


def _first_error_line(node: Node) -> int | None:
    if node.type == "ERROR" or node.is_missing:
        return node.start_point[0] + 1
    for child in node.children:
        if child.has_error:
            return _first_error_line(child)
    return None


def parse_rust(code: str | bytes, source_name: str = "<source>") -> Tree:
    """Parse Rust source, raising RustParseError if the tree has any error node."""
    if isinstance(code, str):
        code = code.encode()
    tree = make_parser().parse(code)
    if tree.root_node.has_error:
        raise RustParseError(source_name, _first_error_line(tree.root_node))
    return tree


def path_segments(node: Node | None) -> list[str] | None:
    """Flatten a path node into its segments.

    Returns None for paths that cannot be expressed as plain segments
    (qualified `<T as Trait>::x` paths, macro metavariables).
    """
    if node is None:
        # leading `::` has no path before it
        return []
    if node.type in SEGMENT_NODES:
        return [_node_text(node)]
    if node.type in SCOPED_NODES:
        prefix = path_segments(node.child_by_field_name("path"))
        name = node.child_by_field_name("name")
        if prefix is None or name is None:
            return None
        return prefix + [_node_text(name)]
    if node.type == "generic_type":
        # turbofish prefix such as `Vec::<u8>::new`
        return path_segments(node.child_by_field_name("type"))
    return None


def iter_use_leaves(clause: Node, prefix: list[str] | None = None):
    """Flatten a `use` tree into (target segments, local name) pairs.

    `self` segments are elided, so `use foo::{self}` yields (["foo"], "foo").
    Glob leaves yield a local name of None.
    """
    prefix = prefix or []

    if clause.type == "use_list":
        for member in clause.named_children:
            if member.type not in TRIVIA:
                yield from iter_use_leaves(member, prefix)

    elif clause.type == "scoped_use_list":
        path = path_segments(clause.child_by_field_name("path"))
        members = clause.child_by_field_name("list")
        if path is not None and members is not None:
            yield from iter_use_leaves(members, prefix + _elide_self(path))

    elif clause.type == "use_wildcard":
        path = path_segments(clause.named_children[0]) if clause.named_children else []
        if path is not None:
            yield prefix + _elide_self(path), None

    elif clause.type == "use_as_clause":
        path = path_segments(clause.child_by_field_name("path"))
        alias = clause.child_by_field_name("alias")
        if path is not None:
            local = _node_text(alias) if alias is not None else "_"
            yield prefix + _elide_self(path), local

    else:
        path = path_segments(clause)
        if path is None:
            return
        target = prefix + _elide_self(path)
        if target:
            yield target, target[-1]


def _elide_self(segments: list[str]) -> list[str]:
    return [segment for segment in segments if segment != "self"]


def items_with_attributes(node: Node):
    """Yield (item, attributes) for each named child of a container node.

    Outer attributes are siblings preceding the item they decorate.
    """
    attributes: list[Node] = []
    for child in node.named_children:
        if child.type == "attribute_item":
            attributes.append(child)
            continue
        if child.type in TRIVIA:
            continue
        yield child, attributes
        attributes = []


def named_expressions(node: Node) -> list[Node]:
    """Named children of a node minus comments and attributes."""
    return [
        child
        for child in node.named_children
        if child.type not in TRIVIA and child.type != "attribute_item"
    ]


def attribute_name(attribute_item: Node) -> str | None:
    for attribute in attribute_item.named_children:
        if attribute.type == "attribute" and attribute.named_children:
            return _node_text(attribute.named_children[0])
    return None


def stable_since(attributes: list[Node]) -> str | None:
    """Extract the `since` version of a `#[stable(...)]` attribute, if any."""
    for attribute_item in attributes:
        if attribute_name(attribute_item) != "stable":
            continue
        match = SINCE_PATTERN.search(_node_text(attribute_item))
        if match:
            return match.group(1)
    return None


def is_public(node: Node) -> bool:
    """True only for a bare `pub`; `pub(crate)` and friends are restricted."""
    for child in node.children:
        if child.type == "visibility_modifier":
            return _node_text(child) == "pub"
    return False


def is_unsafe_function(node: Node) -> bool:
    for child in node.children:
        if child.type == "function_modifiers":
            return any(modifier.type == "unsafe" for modifier in child.children)
    return False

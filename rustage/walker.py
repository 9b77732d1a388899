#!/usr/bin/env python3

"""Walk a package's expanded syntax tree and count standard library usage.

Every expression node visited counts once; expressions inside `unsafe fn`
bodies or `unsafe { }` blocks also count as unsafe. Path references in
expression, type and `use` positions are resolved against the stability
index and tallied per stabilization version.

Node kinds listed in the IGNORED_* sets are deliberate no-ops: their own
expression still counts, but nothing below them is visited or resolved.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from tree_sitter import Node

from rustage.resolver import PathResolver
from rustage.syntax import (
    TRIVIA,
    is_unsafe_function,
    iter_use_leaves,
    named_expressions,
    parse_rust,
    path_segments,
)

logger = logging.getLogger(__name__)

ITEM_KINDS = {
    "const_item",
    "enum_item",
    "function_item",
    "function_signature_item",
    "impl_item",
    "mod_item",
    "static_item",
    "struct_item",
    "trait_item",
    "type_item",
    "union_item",
    "use_declaration",
}

IGNORED_ITEMS = {
    "associated_type",  # bounds only
    "extern_crate_declaration",
    "foreign_mod_item",
    "macro_definition",
    "macro_invocation",
}

PATH_EXPRESSIONS = {"identifier", "scoped_identifier", "self"}

LITERALS = {
    "boolean_literal",
    "char_literal",
    "float_literal",
    "integer_literal",
    "raw_string_literal",
    "string_literal",
    "unit_expression",
}

# Sub-expressions evaluated in order, no special fields.
PLAIN_EXPRESSIONS = {
    "array_expression",
    "await_expression",
    "break_expression",
    "index_expression",
    "let_chain",
    "parenthesized_expression",
    "range_expression",
    "return_expression",
    "try_expression",
    "tuple_expression",
    "unary_expression",
    "yield_expression",
}

BLOCK_EXPRESSIONS = {"async_block", "block", "const_block", "gen_block", "try_block"}

IGNORED_EXPRESSIONS = {
    "continue_expression",
    "field_expression",  # field resolution is not supported
    "macro_invocation",
    "metavariable",
}

PATH_TYPES = {"type_identifier", "scoped_type_identifier", "primitive_type"}

IGNORED_TYPES = {
    "abstract_type",  # impl Trait: bounds are not resolved
    "bounded_type",
    "bracketed_type",
    "dynamic_type",  # dyn Trait
    "macro_invocation",
    "metavariable",
    "never_type",
    "qualified_type",
    "removed_trait_bound",
    "unit_type",
}

MAX_IMPORT_CHAIN = 8


@dataclass
class UsageCounters:
    """Raw counts collected by one walk over one package."""

    version_counts: dict[str, int] = field(default_factory=dict)
    total_exprs: int = 0
    unsafe_exprs: int = 0

    def count_version(self, version: str):
        self.version_counts[version] = self.version_counts.get(version, 0) + 1


@dataclass
class _ImportScope:
    imports: dict[str, list[str]]
    is_module: bool


class UsageWalker:
    """Counts expressions and versioned references in one package."""

    def __init__(self, resolver: PathResolver):
        self.resolver = resolver
        self.counters = UsageCounters()
        self.unsafe_depth = 0
        self._scopes: list[_ImportScope] = []

    def process_file(self, root_node: Node) -> UsageCounters:
        with self._import_scope(root_node, is_module=True):
            self._process_items(root_node)
        return self.counters

    # Scopes

    @contextmanager
    def _unsafe_scope(self):
        self.unsafe_depth += 1
        try:
            yield
        finally:
            self.unsafe_depth -= 1

    @contextmanager
    def _import_scope(self, container: Node, is_module: bool):
        """Collect the container's named imports before walking it."""
        imports: dict[str, list[str]] = {}
        for child in container.named_children:
            if child.type != "use_declaration":
                continue
            argument = child.child_by_field_name("argument")
            if argument is None:
                continue
            for target, local in iter_use_leaves(argument):
                # glob imports are not expanded
                if local is not None and local != "_":
                    imports[local] = target

        self._scopes.append(_ImportScope(imports, is_module))
        try:
            yield
        finally:
            self._scopes.pop()

    def _visible_imports(self) -> Iterator[dict[str, list[str]]]:
        # Blocks see their enclosing module's imports; modules see only their own.
        for scope in reversed(self._scopes):
            yield scope.imports
            if scope.is_module:
                return

    def _expand_imports(self, segments: list[str]) -> list[str]:
        seen = set()
        for _ in range(MAX_IMPORT_CHAIN):
            head = segments[0] if segments else None
            if head is None or head in seen:
                break
            for imports in self._visible_imports():
                if head in imports:
                    seen.add(head)
                    segments = imports[head] + segments[1:]
                    break
            else:
                break
        return segments

    # Counting

    def _count_expr(self):
        self.counters.total_exprs += 1
        if self.unsafe_depth > 0:
            self.counters.unsafe_exprs += 1

    def _submit_path(self, segments: list[str] | None):
        if not segments:
            return
        version = self.resolver.version_of(self._expand_imports(segments))
        if version is not None:
            self.counters.count_version(version)

    # Items

    def _process_items(self, container: Node):
        for child in container.named_children:
            if child.type in ITEM_KINDS:
                self._process_item(child)
            elif child.type in IGNORED_ITEMS or child.type in TRIVIA:
                pass
            elif child.type == "attribute_item":
                pass
            else:
                logger.debug(f"Skipping unrecognized item {child.type}")

    def _process_item(self, item: Node):
        if item.type in ("const_item", "static_item"):
            self._process_type(item.child_by_field_name("type"))
            self._visit_optional_expr(item.child_by_field_name("value"))
        elif item.type == "enum_item":
            self._process_enum(item)
        elif item.type in ("struct_item", "union_item"):
            self._process_fields(item.child_by_field_name("body"))
        elif item.type in ("function_item", "function_signature_item"):
            self._process_function(item)
        elif item.type == "impl_item":
            self._process_impl(item)
        elif item.type == "mod_item":
            body = item.child_by_field_name("body")
            if body is not None:
                with self._import_scope(body, is_module=True):
                    self._process_items(body)
        elif item.type == "trait_item":
            body = item.child_by_field_name("body")
            if body is not None:
                self._process_items(body)
        elif item.type == "type_item":
            self._process_type(item.child_by_field_name("type"))
        elif item.type == "use_declaration":
            argument = item.child_by_field_name("argument")
            if argument is not None:
                for target, local in iter_use_leaves(argument):
                    if local is not None:
                        self._submit_path(target)

    def _process_enum(self, item: Node):
        body = item.child_by_field_name("body")
        if body is None:
            return
        for variant in body.named_children:
            if variant.type != "enum_variant":
                continue
            self._visit_optional_expr(variant.child_by_field_name("value"))
            self._process_fields(variant.child_by_field_name("body"))

    def _process_fields(self, body: Node | None):
        if body is None:
            return
        if body.type == "field_declaration_list":
            for declaration in body.named_children:
                if declaration.type == "field_declaration":
                    self._process_type(declaration.child_by_field_name("type"))
        elif body.type == "ordered_field_declaration_list":
            for field_type in body.children_by_field_name("type"):
                self._process_type(field_type)

    def _process_function(self, item: Node):
        if is_unsafe_function(item):
            with self._unsafe_scope():
                self._process_signature(item)
                self._process_body(item.child_by_field_name("body"))
        else:
            self._process_signature(item)
            self._process_body(item.child_by_field_name("body"))

    def _process_signature(self, item: Node):
        self._process_parameters(item.child_by_field_name("parameters"))
        self._process_type(item.child_by_field_name("return_type"))

    def _process_parameters(self, parameters: Node | None):
        if parameters is None:
            return
        for parameter in named_expressions(parameters):
            if parameter.type == "parameter":
                # the pattern side is not resolved
                self._process_type(parameter.child_by_field_name("type"))
            elif parameter.type in ("self_parameter", "variadic_parameter"):
                pass
            else:
                # bare types in `fn(u8) -> u8`
                self._process_type(parameter)

    def _process_impl(self, item: Node):
        # The implementing type is the package's own; only the trait is a reference.
        self._process_type(item.child_by_field_name("trait"))
        body = item.child_by_field_name("body")
        if body is not None:
            self._process_items(body)

    def _process_body(self, body: Node | None):
        if body is not None:
            self._process_block(body)

    # Statements

    def _process_block(self, block: Node):
        with self._import_scope(block, is_module=False):
            for child in block.named_children:
                if child.type in TRIVIA or child.type in ("attribute_item", "label"):
                    continue
                if child.type == "expression_statement":
                    for expr in named_expressions(child):
                        self._visit_expr(expr)
                elif child.type == "let_declaration":
                    self._process_let(child)
                elif child.type in ITEM_KINDS:
                    self._process_item(child)
                elif child.type in IGNORED_ITEMS:
                    pass
                else:
                    # tail expression
                    self._visit_expr(child)

    def _process_let(self, local: Node):
        self._process_type(local.child_by_field_name("type"))
        self._visit_optional_expr(local.child_by_field_name("value"))
        alternative = local.child_by_field_name("alternative")
        if alternative is not None:
            self._process_block(alternative)

    # Expressions

    def _visit_optional_expr(self, node: Node | None):
        if node is not None:
            self._visit_expr(node)

    def _visit_children(self, node: Node):
        for child in named_expressions(node):
            if child.type != "label":
                self._visit_expr(child)

    def _visit_expr(self, node: Node):
        kind = node.type
        if kind == "unsafe_block":
            # Marks a scope; only its contents count as expressions.
            with self._unsafe_scope():
                for block in named_expressions(node):
                    self._process_block(block)
            return

        self._count_expr()

        if kind in PATH_EXPRESSIONS:
            self._submit_path(path_segments(node))
        elif kind in LITERALS:
            pass
        elif kind in PLAIN_EXPRESSIONS:
            self._visit_children(node)
        elif kind in BLOCK_EXPRESSIONS:
            self._visit_block_expr(node)
        elif kind == "generic_function":
            self._visit_generic_function(node)
        elif kind == "call_expression":
            self._visit_call(node)
        elif kind in ("binary_expression", "assignment_expression", "compound_assignment_expr"):
            self._visit_optional_expr(node.child_by_field_name("left"))
            self._visit_optional_expr(node.child_by_field_name("right"))
        elif kind == "reference_expression":
            self._visit_optional_expr(node.child_by_field_name("value"))
        elif kind == "type_cast_expression":
            self._visit_optional_expr(node.child_by_field_name("value"))
            self._process_type(node.child_by_field_name("type"))
        elif kind == "closure_expression":
            # closure parameters are patterns and are not resolved
            self._process_type(node.child_by_field_name("return_type"))
            self._visit_optional_expr(node.child_by_field_name("body"))
        elif kind == "if_expression":
            self._visit_if(node)
        elif kind == "let_condition":
            self._visit_optional_expr(node.child_by_field_name("value"))
        elif kind == "match_expression":
            self._visit_match(node)
        elif kind == "while_expression":
            self._visit_optional_expr(node.child_by_field_name("condition"))
            self._process_body(node.child_by_field_name("body"))
        elif kind == "loop_expression":
            self._process_body(node.child_by_field_name("body"))
        elif kind == "for_expression":
            self._visit_optional_expr(node.child_by_field_name("value"))
            self._process_body(node.child_by_field_name("body"))
        elif kind == "struct_expression":
            self._visit_struct(node)
        elif kind in IGNORED_EXPRESSIONS:
            pass
        else:
            logger.debug(f"Skipping unrecognized expression {kind}")

    def _visit_block_expr(self, node: Node):
        if node.type == "block":
            self._process_block(node)
            return
        body = node.child_by_field_name("body")
        if body is not None:
            self._process_block(body)
            return
        for child in node.named_children:
            if child.type == "block":
                self._process_block(child)

    def _visit_call(self, node: Node):
        function = node.child_by_field_name("function")
        if function is not None:
            self._visit_callee(function)
        arguments = node.child_by_field_name("arguments")
        if arguments is not None:
            for argument in named_expressions(arguments):
                self._visit_expr(argument)

    def _visit_callee(self, function: Node):
        if function.type == "field_expression":
            # method call: the receiver is walked, the method name is not resolved
            self._visit_optional_expr(function.child_by_field_name("value"))
        elif function.type == "generic_function":
            inner = function.child_by_field_name("function")
            if inner is not None and inner.type == "field_expression":
                self._visit_optional_expr(inner.child_by_field_name("value"))
                self._process_type_arguments(function.child_by_field_name("type_arguments"))
            else:
                self._visit_expr(function)
        else:
            self._visit_expr(function)

    def _visit_generic_function(self, node: Node):
        function = node.child_by_field_name("function")
        if function is not None and function.type != "field_expression":
            self._submit_path(path_segments(function))
        self._process_type_arguments(node.child_by_field_name("type_arguments"))

    def _visit_if(self, node: Node):
        self._visit_optional_expr(node.child_by_field_name("condition"))
        self._process_body(node.child_by_field_name("consequence"))
        alternative = node.child_by_field_name("alternative")
        if alternative is not None:
            for branch in named_expressions(alternative):
                self._visit_expr(branch)

    def _visit_match(self, node: Node):
        self._visit_optional_expr(node.child_by_field_name("value"))
        body = node.child_by_field_name("body")
        if body is None:
            return
        for arm in body.named_children:
            if arm.type != "match_arm":
                continue
            pattern = arm.child_by_field_name("pattern")
            if pattern is not None:
                self._visit_optional_expr(pattern.child_by_field_name("condition"))
            self._visit_optional_expr(arm.child_by_field_name("value"))

    def _visit_struct(self, node: Node):
        name = node.child_by_field_name("name")
        if name is not None:
            self._process_type(name)
        body = node.child_by_field_name("body")
        if body is None:
            return
        for initializer in named_expressions(body):
            if initializer.type == "field_initializer":
                self._visit_optional_expr(initializer.child_by_field_name("value"))
            else:
                # shorthand `Foo { x }` and base `..base` initializers
                for expr in named_expressions(initializer):
                    self._visit_expr(expr)

    # Types

    def _process_type(self, node: Node | None):
        if node is None:
            return
        kind = node.type
        if kind in PATH_TYPES:
            self._submit_path(path_segments(node))
        elif kind in ("generic_type", "generic_type_with_turbofish"):
            self._submit_path(path_segments(node.child_by_field_name("type")))
            self._process_type_arguments(node.child_by_field_name("type_arguments"))
        elif kind in ("reference_type", "pointer_type"):
            self._process_type(node.child_by_field_name("type"))
        elif kind == "array_type":
            self._process_type(node.child_by_field_name("element"))
        elif kind == "tuple_type":
            for element in named_expressions(node):
                self._process_type(element)
        elif kind == "function_type":
            self._process_parameters(node.child_by_field_name("parameters"))
            self._process_type(node.child_by_field_name("return_type"))
        elif kind in IGNORED_TYPES:
            pass
        else:
            logger.debug(f"Skipping unrecognized type {kind}")

    def _process_type_arguments(self, arguments: Node | None):
        if arguments is None:
            return
        for argument in named_expressions(arguments):
            if argument.type == "type_binding":
                self._process_type(argument.child_by_field_name("type"))
            elif argument.type in ("lifetime", "trait_bounds", "block"):
                pass
            else:
                self._process_type(argument)


def walk_source(
    code: str | bytes, resolver: PathResolver, source_name: str = "<package>"
) -> UsageCounters:
    """Parse one package's expanded source and count its usage.

    Raises RustParseError so a package that cannot be parsed is never
    mistaken for one with no usage.
    """
    tree = parse_rust(code, source_name=source_name)
    return UsageWalker(resolver).process_file(tree.root_node)

#!/usr/bin/env python3

import pytest

from rustage.builder import StabilityIndexBuilder, build_index
from rustage.symbols import GlobBinding, NamedBinding
from rustage.syntax import RustParseError, iter_use_leaves, parse_rust

CORE_SOURCE = """
#![feature(staged_api)]

pub mod cmp {
    #[stable(feature = "rust1", since = "1.0.0")]
    pub enum Ordering {
        #[stable(feature = "rust1", since = "1.0.0")]
        Less = -1,
        #[stable(feature = "rust1", since = "1.0.0")]
        Equal = 0,
        Greater = 1,
    }

    #[stable(feature = "clamp", since = "1.50.0")]
    pub fn clamp() {}
}

pub mod iter {
    #[stable(feature = "rust1", since = "1.0.0")]
    pub trait Iterator {
        #[stable(feature = "rust1", since = "1.0.0")]
        type Item;

        #[stable(feature = "rust1", since = "1.0.0")]
        fn next(&mut self) -> Option<Self::Item>;

        #[stable(feature = "iter_count", since = "1.11.0")]
        fn count(self) -> usize {
            0
        }
    }
}

pub mod cell {
    #[stable(feature = "rust1", since = "1.0.0")]
    pub struct Cell<T> {
        value: T,
    }

    impl<T> Cell<T> {
        #[stable(feature = "cell_new", since = "1.2.0")]
        pub const fn new(value: T) -> Cell<T> {
            Cell { value }
        }

        #[stable(feature = "cell_replace", since = "1.17.0")]
        pub fn replace(&self, val: T) -> T {
            val
        }

        fn private_helper(&self) {}
    }

    impl<T: Clone> Clone for Cell<T> {
        #[stable(feature = "rust1", since = "1.0.0")]
        fn clone(&self) -> Cell<T> {
            loop {}
        }
    }
}

impl u8 {
    #[stable(feature = "assoc_int_consts", since = "1.43.0")]
    pub const MAX: u8 = 255;
}

#[unstable(feature = "nightly_only", issue = "none")]
pub fn nightly_only() {}

#[stable(feature = "hidden", since = "1.3.0")]
pub(crate) fn crate_private() {}

mod declared_elsewhere;
"""


@pytest.fixture
def index():
    return build_index({"core": CORE_SOURCE})


@pytest.fixture
def core(index):
    return index.root.children["core"]


def test_unmarked_nodes_default_to_first_release(core):
    """Crate roots, inline modules and impl re-roots exist as 1.0.0."""
    assert core.stabilization_version == "1.0.0"
    assert core.children["cmp"].stabilization_version == "1.0.0"
    assert core.children["iter"].stabilization_version == "1.0.0"
    assert core.children["u8"].stabilization_version == "1.0.0"


def test_simple_items_carry_since(core):
    cmp = core.children["cmp"]
    assert cmp.children["Ordering"].stabilization_version == "1.0.0"
    assert cmp.children["clamp"].stabilization_version == "1.50.0"


def test_enum_variants(core):
    ordering = core.children["cmp"].children["Ordering"]
    assert set(ordering.children) == {"Less", "Equal"}
    assert ordering.children["Less"].public


def test_trait_members(core):
    iterator = core.children["iter"].children["Iterator"]
    assert iterator.children["Item"].stabilization_version == "1.0.0"
    assert iterator.children["next"].stabilization_version == "1.0.0"
    assert iterator.children["count"].stabilization_version == "1.11.0"


def test_inherent_impl_members_are_rooted_at_the_type(core):
    cell = core.children["cell"].children["Cell"]
    assert cell.stabilization_version == "1.0.0"
    assert cell.children["new"].stabilization_version == "1.2.0"
    assert cell.children["replace"].stabilization_version == "1.17.0"
    assert "private_helper" not in cell.children


def test_trait_impls_are_not_indexed(core):
    cell = core.children["cell"].children["Cell"]
    assert "clone" not in cell.children


def test_primitive_impl(core):
    assert core.children["u8"].children["MAX"].stabilization_version == "1.43.0"


def test_unstable_and_restricted_items(core):
    assert "nightly_only" not in core.children
    hidden = core.children["crate_private"]
    assert hidden.stabilization_version == "1.3.0"
    assert not hidden.public


def test_out_of_line_module_is_not_created(core):
    assert "declared_elsewhere" not in core.children


def test_use_declarations_become_aliases():
    source = """
    pub mod io {
        #[stable(feature = "rust1", since = "1.0.0")]
        pub use crate::fs::File as Handle;
        pub use self::inner::{Reader, Writer as Sink, prelude::*};
    }
    """
    index = build_index({"std": source}, prelude=("std", "prelude", "v1"))

    aliases = [a for a in index.aliases if a.defining_scope == ("std", "io")]
    assert [a.target_path for a in aliases] == [
        ("crate", "fs", "File"),
        ("inner", "Reader"),
        ("inner", "Writer"),
        ("inner", "prelude"),
    ]
    assert aliases[0].binding == NamedBinding(name="Handle")
    assert aliases[1].binds("Reader")
    assert aliases[2].binds("Sink")
    assert aliases[3].is_glob

    # The re-export is versioned under the name it is visible as
    io = index.root.children["std"].children["io"]
    assert io.children["Handle"].stabilization_version == "1.0.0"
    assert "File" not in io.children


def test_prelude_alias_is_appended_last():
    index = build_index({"core": CORE_SOURCE}, prelude=("core", "prelude", "v1"))
    last = index.aliases[-1]
    assert last.defining_scope == ()
    assert last.target_path == ("core", "prelude", "v1")
    assert last.binding == GlobBinding()


def test_crates_are_indexed_in_order():
    index = build_index(
        {
            "alloc": "pub mod vec {}",
            "std": "#[stable(feature = \"rust1\", since = \"1.0.0\")] pub use alloc_crate::vec;",
        }
    )
    assert list(index.root.children) == ["alloc", "std"]
    assert index.aliases[0].defining_scope == ("std",)
    assert index.aliases[0].target_path == ("alloc_crate", "vec")


def test_symbol_count(index):
    assert index.symbol_count() > 10


def test_syntax_errors_are_fatal():
    builder = StabilityIndexBuilder()
    with pytest.raises(RustParseError) as excinfo:
        builder.process_source("core", "pub fn broken( {")
    assert "crate core" in str(excinfo.value)


def test_builder_cannot_be_reused():
    builder = StabilityIndexBuilder()
    builder.process_source("core", "pub fn f() {}")
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.process_source("std", "pub fn g() {}")


def _use_leaves(source: str):
    tree = parse_rust(source)
    declaration = tree.root_node.named_children[0]
    return list(iter_use_leaves(declaration.child_by_field_name("argument")))


def test_use_leaves_elide_self():
    assert _use_leaves("use foo::{self};") == [(["foo"], "foo")]
    assert _use_leaves("use self::bar::Baz;") == [(["bar", "Baz"], "Baz")]


def test_use_leaves_glob_and_rename():
    assert _use_leaves("use a::b::*;") == [(["a", "b"], None)]
    assert _use_leaves("use a::{b::{C, D as E}};") == [
        (["a", "b", "C"], "C"),
        (["a", "b", "D"], "E"),
    ]

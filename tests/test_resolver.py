#!/usr/bin/env python3

import time

import pytest

from rustage.builder import build_index
from rustage.resolver import PathResolver

ALLOC_SOURCE = """
pub mod vec {
    #[stable(feature = "rust1", since = "1.0.0")]
    pub struct Vec<T> {
        buf: T,
    }

    impl<T> Vec<T> {
        #[stable(feature = "rust1", since = "1.39.0")]
        pub const fn new() -> Vec<T> {
            loop {}
        }
    }
}
"""

CORE_SOURCE = """
pub mod a {
    pub use b::*;
}

pub mod b {
    #[stable(feature = "widget", since = "1.10.0")]
    pub struct Widget;
}

pub mod example {
    #[stable(feature = "example", since = "1.0.0")]
    pub struct Example;

    impl Example {
        #[stable(feature = "old_name", since = "1.2.0")]
        pub fn old_name() {}
    }
}

pub mod renamed {
    #[stable(feature = "renamed", since = "1.4.0")]
    pub use crate::example::Example as Sample;
}

pub mod cycle {
    pub use crate::loop_back::Thing;
}

pub mod loop_back {
    pub use crate::cycle::Thing;
}
"""

STD_SOURCE = """
#[stable(feature = "rust1", since = "1.0.0")]
pub use alloc_crate::vec;

pub mod prelude {
    pub mod v1 {
        #[stable(feature = "rust1", since = "1.0.0")]
        pub use crate::vec::Vec;
    }
}
"""


@pytest.fixture
def index():
    return build_index({"alloc": ALLOC_SOURCE, "core": CORE_SOURCE, "std": STD_SOURCE})


@pytest.fixture
def resolver(index):
    return PathResolver(index)


def test_direct_paths(resolver):
    assert resolver.version_of(["core", "b", "Widget"]) == "1.10.0"
    assert resolver.version_of(["alloc", "vec", "Vec", "new"]) == "1.39.0"


def test_unmarked_modules_are_first_release(resolver):
    assert resolver.version_of(["core", "b"]) == "1.0.0"
    assert resolver.version_of(["core"]) == "1.0.0"


def test_resolution_is_deterministic(resolver):
    paths = [
        ["std", "vec", "Vec", "new"],
        ["core", "a", "Widget"],
        ["Vec", "new"],
        ["serde", "Serialize"],
    ]
    first = [resolver.version_of(path) for path in paths]
    for _ in range(3):
        assert [resolver.version_of(path) for path in paths] == first


def test_glob_reexport(resolver):
    """`pub use b::*` in module `a` makes `a::Widget` resolvable."""
    assert resolver.version_of(["core", "a", "Widget"]) == "1.10.0"


def test_glob_reexport_does_not_invent_names(resolver):
    assert resolver.resolve_path(["core", "a", "Gadget"]) is None


def test_renamed_reexport(resolver):
    assert resolver.version_of(["core", "renamed", "Sample"]) == "1.4.0"
    assert resolver.version_of(["core", "renamed", "Sample", "old_name"]) == "1.2.0"


def test_reexported_module_stand_in(resolver):
    """`pub use alloc_crate::vec;` in std exposes everything in alloc's vec."""
    assert resolver.version_of(["std", "vec"]) == "1.0.0"
    assert resolver.version_of(["std", "vec", "Vec"]) == "1.0.0"
    assert resolver.version_of(["std", "vec", "Vec", "new"]) == "1.39.0"


def test_prelude(resolver):
    assert resolver.version_of(["Vec"]) == "1.0.0"
    assert resolver.version_of(["Vec", "new"]) == "1.39.0"


def test_unknown_root(resolver):
    assert resolver.resolve_path(["serde", "Serialize"]) is None
    assert resolver.version_of(["serde", "Serialize"]) is None


def test_crate_shorthand(index, resolver):
    core = index.root.children["core"]
    found = resolver.resolve(core, ["core"], ["crate", "b", "Widget"])
    assert found is not None
    assert found.stabilization_version == "1.10.0"


def test_crate_shorthand_needs_a_root_path(resolver):
    assert resolver.resolve_path(["crate", "b", "Widget"]) is None


def test_alloc_shorthand(index, resolver):
    std = index.root.children["std"]
    found = resolver.resolve(std, ["std"], ["alloc_crate", "vec", "Vec"])
    assert found is not None
    assert found.stabilization_version == "1.0.0"


def test_self_segments_are_skipped(resolver):
    assert resolver.version_of(["core", "self", "b", "Widget"]) == "1.10.0"


def test_super_is_unsupported(resolver):
    assert resolver.resolve_path(["core", "a", "super", "b", "Widget"]) is None


def test_alias_cycle_terminates(resolver):
    assert resolver.resolve_path(["core", "cycle", "Thing"]) is None
    assert resolver.resolve_path(["core", "loop_back", "Thing", "x"]) is None


def test_empty_path_is_the_root(index, resolver):
    assert resolver.resolve_path([]) is index.root


def test_alias_depth_limit(index):
    shallow = PathResolver(index, max_alias_depth=0)
    assert shallow.version_of(["alloc", "vec", "Vec", "new"]) == "1.39.0"
    assert shallow.version_of(["std", "vec", "Vec", "new"]) is None


def test_long_alias_ring_fails_quickly():
    modules = 40
    source = "\n".join(
        f"pub mod m{i} {{ pub use crate::m{(i + 1) % modules}::T; }}" for i in range(modules)
    )
    resolver = PathResolver(build_index({"core": source}))

    start = time.monotonic()
    assert resolver.resolve_path(["core", "m0", "T"]) is None
    assert resolver.resolve_path(["core", "m17", "T", "x"]) is None
    assert time.monotonic() - start < 1.0


def test_alias_chain_resolves_through_every_link():
    links = 30
    modules = [f"pub mod m{i} {{ pub use crate::m{i + 1}::T; }}" for i in range(links)]
    modules.append(
        f'pub mod m{links} {{ #[stable(feature = "t", since = "1.7.0")] pub struct T; }}'
    )
    resolver = PathResolver(build_index({"core": "\n".join(modules)}))
    assert resolver.version_of(["core", "m0", "T"]) == "1.7.0"

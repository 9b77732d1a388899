#!/usr/bin/env python3

"""Analyse a single crate directory: expand, walk, lint and score."""

import logging
import re
import subprocess
import tomllib
from pathlib import Path

from pydantic import BaseModel

from rustage.aggregate import (
    PackageStats,
    per_expression,
    unsafe_fraction,
    version_ordinal,
    version_signature,
)
from rustage.resolver import PathResolver
from rustage.walker import UsageCounters, walk_source

logger = logging.getLogger(__name__)

WARNING_REGEX = re.compile(r"^warning: `[A-Za-z_-]+` \(\w+\) generated (\d+) warning")

EDITIONS = {"2015": 0, "2018": 1, "2021": 2, "2024": 3}


class ExpansionError(Exception):
    """Raised when `cargo expand` fails for a crate."""

    def __init__(self, manifest_path: Path, detail: str):
        self.manifest_path = manifest_path
        self.detail = detail
        super().__init__(f"could not expand crate {manifest_path}: {detail}")


class ManifestError(Exception):
    """Raised when a Cargo manifest cannot be used."""


class CrateInfo(BaseModel):
    """Identity of the package being analysed."""

    name: str
    version: str
    published_at: int = 0


class ManifestInfo(BaseModel):
    edition: int
    reported_msrv: int | None = None


def edition_id(edition: str | None) -> int:
    """Map an edition year to its ordinal; missing editions are 2015."""
    if edition is None:
        return EDITIONS["2015"]
    return EDITIONS.get(str(edition), EDITIONS["2015"])


def read_manifest(manifest_path: Path) -> ManifestInfo:
    try:
        manifest = tomllib.loads(manifest_path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ManifestError(f"could not read manifest {manifest_path}: {e}") from e

    package = manifest.get("package")
    if not isinstance(package, dict):
        raise ManifestError(f"no `package` header in manifest {manifest_path}")

    # workspace-inherited values are tables; treat them as not declared
    edition = package.get("edition")
    rust_version = package.get("rust-version")
    return ManifestInfo(
        edition=edition_id(edition if isinstance(edition, str) else None),
        reported_msrv=version_ordinal(rust_version) if isinstance(rust_version, str) else None,
    )


def _cargo_command(subcommand: str, manifest_path: Path, all_features: bool) -> list[str]:
    command = ["cargo", subcommand]
    if all_features:
        command.append("--all-features")
    command.extend(["--manifest-path", str(manifest_path)])
    return command


def expand_crate(manifest_path: Path, all_features: bool = False) -> str:
    """Run `cargo expand` and return the expanded source."""
    result = subprocess.run(
        _cargo_command("expand", manifest_path, all_features),
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        lines = result.stderr.strip().splitlines()
        raise ExpansionError(manifest_path, lines[-1] if lines else "no error output")
    return result.stdout


def parse_clippy_warnings(stderr: str) -> int:
    """Sum the per-target `generated N warnings` summaries."""
    total = 0
    for line in stderr.splitlines():
        match = WARNING_REGEX.match(line)
        if match:
            total += int(match.group(1))
    return total


def count_clippy_warnings(manifest_path: Path, all_features: bool = False) -> int:
    result = subprocess.run(
        _cargo_command("clippy", manifest_path, all_features),
        capture_output=True,
        text=True,
    )
    return parse_clippy_warnings(result.stderr)


def build_stats(
    info: CrateInfo,
    counters: UsageCounters,
    manifest: ManifestInfo | None = None,
    clippy_warnings: int | None = None,
) -> PackageStats:
    per_expr = None
    if clippy_warnings is not None:
        per_expr = per_expression(clippy_warnings, counters.total_exprs)

    return PackageStats(
        name=info.name,
        version=info.version,
        published_at=info.published_at,
        edition=manifest.edition if manifest else None,
        reported_msrv=manifest.reported_msrv if manifest else None,
        version_signature=version_signature(counters.version_counts),
        unsafe_exprs=counters.unsafe_exprs,
        total_exprs=counters.total_exprs,
        unsafe_fraction=unsafe_fraction(counters.unsafe_exprs, counters.total_exprs),
        clippy_warnings=clippy_warnings,
        clippy_warnings_per_expr=per_expr,
    )


def analyze_source(info: CrateInfo, code: str | bytes, resolver: PathResolver) -> PackageStats:
    """Score already-expanded source without running cargo."""
    counters = walk_source(code, resolver, source_name=f"{info.name} {info.version}")
    logger.debug(f"{info.name}: {counters.version_counts}")
    return build_stats(info, counters)


def analyze_single(
    info: CrateInfo,
    crate_dir: Path,
    resolver: PathResolver,
    all_features: bool = False,
    run_clippy: bool = True,
) -> PackageStats:
    """Expand, walk and lint one crate checked out at `crate_dir`."""
    if not crate_dir.is_dir():
        raise NotADirectoryError(f"{crate_dir} should be a directory")

    logger.info(f"Analyzing {info.name} {info.version}")
    manifest_path = crate_dir / "Cargo.toml"

    logger.debug("Expanding code")
    expanded = expand_crate(manifest_path, all_features)

    logger.debug("Analyzing versions")
    counters = walk_source(expanded, resolver, source_name=f"{info.name} {info.version}")
    logger.debug(f"{info.name}: {counters.version_counts}")
    logger.debug(f"unsafe: {counters.unsafe_exprs}/{counters.total_exprs}")

    manifest = read_manifest(manifest_path)

    clippy_warnings = None
    if run_clippy:
        logger.debug("Counting warnings with clippy")
        clippy_warnings = count_clippy_warnings(manifest_path, all_features)

    return build_stats(info, counters, manifest, clippy_warnings)

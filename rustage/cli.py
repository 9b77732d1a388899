#!/usr/bin/env python3

"""Command line entry points."""

import logging
from pathlib import Path

import click
from rich.logging import RichHandler

from rustage.aggregate import unsafe_fraction, version_signature
from rustage.analyze import CrateInfo, ExpansionError, ManifestError, analyze_single
from rustage.config import AnalysisConfig
from rustage.console import Console
from rustage.report import write_stats_csv
from rustage.snapshot import INDEX_HANDLE, SnapshotError, build_from_config, save_snapshot
from rustage.syntax import RustParseError
from rustage.walker import walk_source


def _load_config(config_path: str | None) -> AnalysisConfig:
    if config_path:
        return AnalysisConfig.load_from_file(Path(config_path))
    return AnalysisConfig.find_project_config(Path.cwd()) or AnalysisConfig()


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False))
@click.option("-v", "--verbose", count=True, help="Increase log verbosity")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: int):
    """rustage: how new is the standard library a crate depends on?"""
    level = logging.WARNING - 10 * min(verbose, 2)
    logging.basicConfig(level=level, format="%(message)s", handlers=[RichHandler()])
    ctx.obj = _load_config(config_path)


@cli.command("build-index")
@click.option("--std-dir", type=click.Path(exists=True, file_okay=False), help="Directory of expanded-<crate>.rs files")
@click.option("--snapshot", type=click.Path(dir_okay=False), help="Where to write the snapshot")
@click.pass_obj
def build_index_command(config: AnalysisConfig, std_dir: str | None, snapshot: str | None):
    """Scan the expanded standard library and write an index snapshot."""
    console = Console()
    if std_dir:
        config.std_source_dir = str(Path(std_dir).resolve())
    if snapshot:
        config.snapshot_file = str(Path(snapshot).resolve())

    try:
        with console.status("Indexing standard library..."):
            index = build_from_config(config)
    except (OSError, RustParseError) as e:
        raise click.ClickException(str(e)) from e
    save_snapshot(index, config.snapshot_path())
    console.print(
        f"[green]Indexed {index.symbol_count()} symbols and {len(index.aliases)} aliases[/green]"
    )
    console.print(f"Snapshot: {config.snapshot_path()}")


@cli.command()
@click.argument("expanded_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def scan(config: AnalysisConfig, expanded_file: str):
    """Count version usage in an already-expanded source file."""
    console = Console()
    try:
        resolver = INDEX_HANDLE.get(config)
        counters = walk_source(
            Path(expanded_file).read_bytes(), resolver, source_name=expanded_file
        )
    except (OSError, RustParseError, SnapshotError) as e:
        raise click.ClickException(str(e)) from e

    console.print_counts(f"Versions used by {expanded_file}", counters.version_counts)
    console.print(f"version signature: {version_signature(counters.version_counts):.3f}")
    console.print(
        f"unsafe: {counters.unsafe_exprs}/{counters.total_exprs} "
        f"({unsafe_fraction(counters.unsafe_exprs, counters.total_exprs):.4f})"
    )


@cli.command()
@click.argument("crate_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--name", help="Crate name (defaults to the directory name)")
@click.option("--version", "crate_version", default="0.0.0", help="Crate version")
@click.option("--published-at", default=0, type=int, help="Publication timestamp")
@click.option("--all-features/--default-features", default=None, help="Enable all crate features")
@click.option("--no-clippy", is_flag=True, help="Skip counting clippy warnings")
@click.option("--csv", "csv_path", type=click.Path(dir_okay=False), help="Append the record to a CSV file")
@click.pass_obj
def analyze(
    config: AnalysisConfig,
    crate_dir: str,
    name: str | None,
    crate_version: str,
    published_at: int,
    all_features: bool | None,
    no_clippy: bool,
    csv_path: str | None,
):
    """Expand, analyze and lint one crate checkout."""
    console = Console()
    path = Path(crate_dir).resolve()
    info = CrateInfo(name=name or path.name, version=crate_version, published_at=published_at)

    try:
        resolver = INDEX_HANDLE.get(config)
        with console.status(f"Analyzing {info.name} {info.version}..."):
            stats = analyze_single(
                info,
                path,
                resolver,
                all_features=config.all_features if all_features is None else all_features,
                run_clippy=config.run_clippy and not no_clippy,
            )
    except (ExpansionError, ManifestError, OSError, RustParseError, SnapshotError) as e:
        raise click.ClickException(str(e)) from e

    for key, value in stats.model_dump().items():
        console.print(f"[cyan]{key:<26}[/cyan] {value}")

    if csv_path:
        write_stats_csv([stats], Path(csv_path), append=True)
        console.print(f"[green]Appended record to {csv_path}[/green]")


if __name__ == "__main__":
    cli()

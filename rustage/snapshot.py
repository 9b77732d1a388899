#!/usr/bin/env python3

"""Index snapshots and the process-wide index handle."""

import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from rustage.builder import StabilityIndexBuilder
from rustage.config import AnalysisConfig
from rustage.resolver import PathResolver
from rustage.symbols import StabilityIndex

logger = logging.getLogger(__name__)


class SnapshotError(Exception):
    """Raised when a snapshot exists but cannot be read back."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"failed to load index snapshot {path}: {reason}")


def save_snapshot(index: StabilityIndex, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(index.model_dump_json())
    logger.info(f"Wrote index snapshot to {path}")


def load_snapshot(path: Path) -> StabilityIndex:
    """Deserialize a snapshot. There is no format check beyond validation."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SnapshotError(path, str(e)) from e
    try:
        return StabilityIndex.model_validate_json(data)
    except ValidationError as e:
        raise SnapshotError(path, f"{e.error_count()} validation errors") from e


def build_from_config(config: AnalysisConfig) -> StabilityIndex:
    """Index every configured crate from its expanded source file."""
    builder = StabilityIndexBuilder()
    for crate in config.std_crates:
        source_path = config.expanded_source_path(crate)
        logger.info(f"Reading {source_path}")
        builder.process_source(crate, source_path.read_bytes())
    return builder.finish(config.prelude_path)


def load_or_build(config: AnalysisConfig) -> StabilityIndex:
    """Load the snapshot when present, otherwise build and write one."""
    snapshot_path = config.snapshot_path()
    if snapshot_path.exists():
        logger.info(f"Loading index snapshot {snapshot_path}")
        return load_snapshot(snapshot_path)

    logger.info("No index snapshot found, scanning standard library sources")
    index = build_from_config(config)
    save_snapshot(index, snapshot_path)
    return index


class StabilityIndexHandle:
    """Builds or loads the index at most once and then shares it read-only."""

    def __init__(self):
        self._lock = threading.Lock()
        self._resolver: PathResolver | None = None

    def get(self, config: AnalysisConfig) -> PathResolver:
        if self._resolver is not None:
            return self._resolver
        with self._lock:
            if self._resolver is None:
                index = load_or_build(config)
                self._resolver = PathResolver(index, max_alias_depth=config.max_alias_depth)
        return self._resolver

    @property
    def loaded(self) -> bool:
        return self._resolver is not None


INDEX_HANDLE = StabilityIndexHandle()

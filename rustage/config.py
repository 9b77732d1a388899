#!/usr/bin/env python3

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

CONFIG_FILE_NAME = "rustage_config.json"


class AnalysisConfig(BaseModel):
    """Configuration for standard-library indexing and package analysis."""

    # Directory all relative paths below are resolved against
    project_root: Path = Field(default_factory=Path.cwd)

    # Standard library input
    std_source_dir: str = "."  # holds expanded-<crate>.rs files
    std_crates: list[str] = Field(default_factory=lambda: ["alloc", "core", "std"])
    expanded_file_pattern: str = "expanded-{crate}.rs"
    prelude_path: list[str] = Field(default_factory=lambda: ["std", "prelude", "v1"])

    # Index snapshot
    snapshot_file: str = "cache.json"

    # Resolution
    max_alias_depth: int = 64

    # Package analysis
    all_features: bool = False
    run_clippy: bool = True

    def std_source_path(self) -> Path:
        """Get the full path to the expanded standard library sources."""
        return self.project_root / self.std_source_dir

    def expanded_source_path(self, crate: str) -> Path:
        """Get the full path to the expanded source of one standard library crate."""
        return self.std_source_path() / self.expanded_file_pattern.format(crate=crate)

    def snapshot_path(self) -> Path:
        """Get the full path to the index snapshot."""
        return self.project_root / self.snapshot_file

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AnalysisConfig":
        """Load configuration from a JSON file."""
        args = json.loads(config_path.read_text())
        args["project_root"] = config_path.parent
        return cls.model_validate(args)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        # project_root is derived from the file location
        data = self.model_dump(exclude={"project_root"})
        config_path.write_text(json.dumps(data, indent=2))

    @classmethod
    def find_project_config(cls, start_path: Path) -> Optional["AnalysisConfig"]:
        """Find configuration by searching up the directory tree."""
        current = start_path.resolve()
        while current != current.parent:
            config_file = current / CONFIG_FILE_NAME
            if config_file.exists():
                return cls.load_from_file(config_file)
            current = current.parent
        return None

#!/usr/bin/env python3

import csv
from collections.abc import Iterable
from pathlib import Path

from rustage.aggregate import PackageStats

FIELDNAMES = list(PackageStats.model_fields)


def write_stats_csv(rows: Iterable[PackageStats], path: Path, append: bool = False) -> None:
    """Write package records as CSV, adding the header to new files only."""
    write_header = not (append and path.exists() and path.stat().st_size > 0)
    with open(path, "a" if append else "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        if write_header:
            writer.writeheader()
        for row in rows:
            writer.writerow(row.model_dump())


def read_stats_csv(path: Path) -> list[PackageStats]:
    with open(path, newline="") as f:
        return [
            PackageStats.model_validate({k: v for k, v in record.items() if v != ""})
            for record in csv.DictReader(f)
        ]

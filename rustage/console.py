#!/usr/bin/env python3

from rich.console import Console as RichConsole
from rich.table import Table


class Console:
    """Rich console used by the command line for results and progress."""

    def __init__(self):
        self._rich = RichConsole()

    def print(self, *args, **kwargs):
        return self._rich.print(*args, **kwargs)

    def status(self, *args, **kwargs):
        """Spinner shown while indexing or analysing."""
        return self._rich.status(*args, **kwargs)

    def print_counts(self, title: str, counts: dict[str, int]):
        """Print a version -> occurrences table, most used first."""
        table = Table(title=title)
        table.add_column("version")
        table.add_column("uses", justify="right")
        for version, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
            table.add_row(version, str(count))
        self._rich.print(table)

#!/usr/bin/env python3

"""Turn raw usage counts into per-package scores."""

import math

from pydantic import BaseModel

# Returned when a package references no versioned symbol at all.
NEUTRAL_VERSION_SIGNATURE = 1.0


def version_ordinal(version: str) -> int | None:
    """Minor component of a `1.X.Y` version, None if it does not parse."""
    parts = version.split(".")
    if len(parts) < 2:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def version_signature(version_counts: dict[str, int]) -> float:
    """Weighted mean of version ordinals.

    Each version is weighted by ln(count) / ln(max_count), which keeps the
    most used version at 1.0 and lets rarely used newer versions still pull
    the score up. Unparseable versions only take part in finding max_count.
    """
    if not version_counts:
        return NEUTRAL_VERSION_SIGNATURE

    max_count = max(version_counts.values())

    acc = 0.0
    weight_acc = 0.0
    for version, count in version_counts.items():
        ordinal = version_ordinal(version)
        if ordinal is None:
            continue
        if count == max_count:
            weight = 1.0
        else:
            weight = math.log(count) / math.log(max_count)
        acc += ordinal * weight
        weight_acc += weight

    if weight_acc == 0.0:
        return math.nan
    return acc / weight_acc


def per_expression(count: int, total_exprs: int) -> float:
    """`count` divided by the number of expressions; NaN for an empty package."""
    if total_exprs == 0:
        return math.nan
    return count / total_exprs


def unsafe_fraction(unsafe_exprs: int, total_exprs: int) -> float:
    return per_expression(unsafe_exprs, total_exprs)


class PackageStats(BaseModel):
    """One analysed package, as written to reports."""

    name: str
    version: str
    published_at: int = 0

    edition: int | None = None
    reported_msrv: int | None = None
    version_signature: float

    unsafe_exprs: int
    total_exprs: int
    unsafe_fraction: float

    clippy_warnings: int | None = None
    clippy_warnings_per_expr: float | None = None

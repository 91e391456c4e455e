"""Percentile calculator: linear-interpolated rank over sorted samples."""

import math
from dataclasses import dataclass
from typing import Iterable


def percentile(sorted_values: list[float], p: float) -> float:
    """Interpolated percentile of an ascending sample. Empty samples give 0."""
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return sorted_values[0]

    index = (p / 100.0) * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]

    low, high = sorted_values[lower], sorted_values[upper]
    return low + (high - low) * (index - lower)


@dataclass(frozen=True)
class PercentileStatistics:
    min: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    max: float = 0.0
    count: int = 0
    avg: float | None = None


def compute_statistics(values: Iterable[float], include_avg: bool = False) -> PercentileStatistics:
    """Summarize a sample. Order of the input does not matter."""
    ordered = sorted(values)
    if not ordered:
        return PercentileStatistics(avg=0.0 if include_avg else None)

    return PercentileStatistics(
        min=ordered[0],
        p50=percentile(ordered, 50),
        p75=percentile(ordered, 75),
        p90=percentile(ordered, 90),
        p95=percentile(ordered, 95),
        max=ordered[-1],
        count=len(ordered),
        avg=sum(ordered) / len(ordered) if include_avg else None,
    )

"""
Descriptive statistics over numeric samples.

Pure functions, no I/O. Callers must pass non-empty samples.
"""

import statistics
from bisect import bisect_left
from typing import Sequence

from travel_enrichment.models import MetricStats


def percentile_rank(sample: Sequence[float], value: float) -> float:
    """
    Percentile rank of value within sample, in [0, 100].

    The rank is the index of the first sorted element >= value divided by
    the sample size. The maximum of a duplicate-free sample therefore
    scores 100 * (n - 1) / n rather than 100.

    Args:
        sample: Non-empty numeric sample
        value: Value to rank

    Returns:
        Percentile rank (0-100)

    Raises:
        ValueError: If sample is empty
    """
    if not sample:
        raise ValueError("percentile_rank requires a non-empty sample")
    ordered = sorted(sample)
    position = bisect_left(ordered, value)
    return position * 100 / len(ordered)


def describe(sample: Sequence[float]) -> MetricStats:
    """
    Mean, median, mode and population standard deviation of a sample.

    Mode ties resolve to the first value (in sample order) reaching
    the highest frequency.
    """
    if not sample:
        raise ValueError("describe requires a non-empty sample")
    return MetricStats(
        mean=statistics.fmean(sample),
        median=statistics.median(sample),
        mode=statistics.mode(sample),
        standard_deviation=statistics.pstdev(sample),
    )

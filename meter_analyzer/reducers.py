"""Label-grouping reduction operators (sum, avg, max, min)."""
from typing import Dict, Sequence

from meter_analyzer.grouping import aggregate, group_codes
from meter_analyzer.sample import Sample, SampleFamily, value_tuple

# Operator name in expressions -> aggregation kind
REDUCERS: Dict[str, str] = {
    "sum": "sum",
    "avg": "avg",
    "max": "max",
    "min": "min",
}


def reduce_by(family: SampleFamily, keep_keys: Sequence[str], how: str = "sum") -> SampleFamily:
    """
    Group samples by the values of `keep_keys` and aggregate each group.

    Args:
        family: Input sample family
        keep_keys: Ordered label keys to keep; an empty list aggregates everything
        how: Aggregation kind, one of "sum", "avg", "max", "min"

    Returns:
        New family with one sample per distinct value tuple, in first-occurrence
        order, labelled with exactly `keep_keys`
    """
    keep_keys = list(keep_keys)
    if not family.samples:
        return SampleFamily.empty(family.name)

    tuples = [value_tuple(s.labels, keep_keys) for s in family.samples]
    groups, codes = group_codes(tuples)
    values = aggregate(codes, [s.value for s in family.samples], len(groups), how)

    return SampleFamily.of(
        family.name,
        (
            Sample(family.name, dict(zip(keep_keys, group)), float(value))
            for group, value in zip(groups, values)
        )
    )


def sum_by(family: SampleFamily, keep_keys: Sequence[str]) -> SampleFamily:
    """Sum sample values grouped by `keep_keys`."""
    return reduce_by(family, keep_keys, "sum")


def avg_by(family: SampleFamily, keep_keys: Sequence[str]) -> SampleFamily:
    return reduce_by(family, keep_keys, "avg")


def max_by(family: SampleFamily, keep_keys: Sequence[str]) -> SampleFamily:
    return reduce_by(family, keep_keys, "max")


def min_by(family: SampleFamily, keep_keys: Sequence[str]) -> SampleFamily:
    return reduce_by(family, keep_keys, "min")

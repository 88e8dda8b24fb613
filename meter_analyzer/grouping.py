"""Partitioning of samples into label groups and grouped aggregation."""
import re
from typing import Dict, Hashable, List, Sequence, Tuple

import numpy as np

_LABEL_NAME = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')


def group_codes(keys: Sequence[Hashable]) -> Tuple[List[Hashable], np.ndarray]:
    """
    Assign every item a group index in first-occurrence order.

    Args:
        keys: Group key of each item, in input order

    Returns:
        Distinct keys in first-occurrence order, and the group index of each item
    """
    index: Dict[Hashable, int] = {}
    codes = np.empty(len(keys), dtype=np.intp)
    for i, key in enumerate(keys):
        codes[i] = index.setdefault(key, len(index))
    return list(index), codes


def aggregate(codes: np.ndarray, values: Sequence[float], n_groups: int, how: str = "sum") -> np.ndarray:
    """
    Aggregate values per group index.

    Accumulation is float64 and runs in input order, so results are
    deterministic for a given sample order.
    """
    weights = np.asarray(values, dtype=np.float64)

    if how == "sum":
        return np.bincount(codes, weights=weights, minlength=n_groups)

    if how == "avg":
        sums = np.bincount(codes, weights=weights, minlength=n_groups)
        counts = np.bincount(codes, minlength=n_groups)
        return sums / np.maximum(counts, 1)

    if how == "max":
        out = np.full(n_groups, -np.inf)
        np.maximum.at(out, codes, weights)
        return out

    if how == "min":
        out = np.full(n_groups, np.inf)
        np.minimum.at(out, codes, weights)
        return out

    raise ValueError(f"Unknown aggregation: {how}")


def validate_label_names(keys: Sequence[str]) -> bool:
    """
    Validate label names are Prometheus-safe.

    Label names must match [a-zA-Z_][a-zA-Z0-9_]*
    """
    for name in keys:
        if not isinstance(name, str) or not _LABEL_NAME.match(name):
            return False

    return True

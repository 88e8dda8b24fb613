"""Data structures for labeled metric samples."""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Sequence, Tuple


@dataclass(frozen=True)
class Sample:
    """A single metric observation with labels."""
    name: str
    labels: Mapping[str, str] = field(default_factory=dict)
    value: float = 0.0

    def __post_init__(self):
        # Frozen dataclass: copy labels into a read-only view
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))
        object.__setattr__(self, "value", float(self.value))

    def __hash__(self):
        return hash((self.name, frozenset(self.labels.items()), self.value))

    def label_key(self) -> str:
        """Generate a stable key from sorted labels."""
        items = sorted(self.labels.items())
        return ",".join(f"{k}={v}" for k, v in items)


@dataclass(frozen=True)
class SampleFamily:
    """Ordered samples sharing one metric name."""
    name: str
    samples: Tuple[Sample, ...] = ()

    def __post_init__(self):
        samples = tuple(self.samples)
        for sample in samples:
            if sample.name != self.name:
                raise ValueError(
                    f"Sample '{sample.name}' does not belong to family '{self.name}'"
                )
        object.__setattr__(self, "samples", samples)

    @classmethod
    def of(cls, name: str, samples: Iterable[Sample]) -> "SampleFamily":
        return cls(name, tuple(samples))

    @classmethod
    def empty(cls, name: str) -> "SampleFamily":
        return cls(name, ())

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def __len__(self) -> int:
        return len(self.samples)

    def total(self) -> float:
        """Sum of every sample value in the family."""
        return float(sum(s.value for s in self.samples))


def label_value(labels: Mapping[str, str], key: str) -> str:
    """Look up a label, treating an absent key as an empty value."""
    return labels.get(key, "")


def value_tuple(labels: Mapping[str, str], keys: Sequence[str]) -> Tuple[str, ...]:
    """Ordered label values for `keys`, with "" for missing labels."""
    return tuple(label_value(labels, key) for key in keys)


def entity_identity(values: Sequence[str]) -> str:
    """
    Derive an entity name from a value tuple.

    Empty components are dropped and the rest joined with '.', keeping their
    order: ("t1", "") -> "t1", ("t1", "us") -> "t1.us", ("", "") -> "".
    """
    return ".".join(v for v in values if v)

"""Scope resolution: attribute samples of a family to topology entities."""
from dataclasses import dataclass
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from meter_analyzer.entity import (
    DetectPoint, Layer, MeterEntity,
    new_endpoint, new_service, new_service_instance, new_service_relation,
)
from meter_analyzer.grouping import aggregate, group_codes
from meter_analyzer.sample import Sample, SampleFamily, entity_identity, value_tuple

logger = logging.getLogger(__name__)

# Builds an entity from the identity string of each key list
EntityBuilder = Callable[[List[str], Layer, Optional[DetectPoint]], MeterEntity]


@dataclass(frozen=True)
class ScopeVariant:
    """Describes one scope operator: how many key lists it takes and what it builds."""
    name: str
    key_list_count: int
    build: EntityBuilder
    needs_detect_point: bool = False


SERVICE = ScopeVariant(
    "service", 1,
    lambda ids, layer, _: new_service(ids[0], layer)
)
INSTANCE = ScopeVariant(
    "instance", 2,
    lambda ids, layer, _: new_service_instance(ids[0], ids[1], layer)
)
ENDPOINT = ScopeVariant(
    "endpoint", 2,
    lambda ids, layer, _: new_endpoint(ids[0], ids[1], layer)
)
SERVICE_RELATION = ScopeVariant(
    "serviceRelation", 2,
    lambda ids, layer, detect_point: new_service_relation(ids[0], ids[1], detect_point, layer),
    needs_detect_point=True
)

SCOPES: Dict[str, ScopeVariant] = {
    v.name: v for v in (SERVICE, INSTANCE, ENDPOINT, SERVICE_RELATION)
}


def _remaining_key(labels: Dict[str, str]) -> Tuple[Tuple[str, str], ...]:
    # Absent and empty labels group together
    return tuple(sorted((k, v) for k, v in labels.items() if v))


def resolve(
    family: SampleFamily,
    variant: ScopeVariant,
    key_lists: Sequence[Sequence[str]],
    layer: Layer,
    detect_point: Optional[DetectPoint] = None
) -> Dict[MeterEntity, List[Sample]]:
    """
    Partition a family by entity and sum samples left with equal labels.

    Args:
        family: Input family, usually already reduced
        variant: Scope operator descriptor
        key_lists: One list of label keys per entity name the variant needs
        layer: Layer of every resolved entity
        detect_point: Relation detect point, for variants that need one

    Returns:
        Mapping from entity to its samples, one sample per distinct set of
        labels not consumed by `key_lists`
    """
    if len(key_lists) != variant.key_list_count:
        raise ValueError(
            f"{variant.name} takes {variant.key_list_count} key lists, got {len(key_lists)}"
        )

    consumed = {key for keys in key_lists for key in keys}

    group_keys = []
    remaining_labels: List[Dict[str, str]] = []
    for sample in family.samples:
        identities = [entity_identity(value_tuple(sample.labels, keys)) for keys in key_lists]
        entity = variant.build(identities, layer, detect_point)
        remaining = {k: v for k, v in sample.labels.items() if k not in consumed}

        group_keys.append((entity, _remaining_key(remaining)))
        remaining_labels.append(remaining)

    groups, codes = group_codes(group_keys)
    values = aggregate(codes, [s.value for s in family.samples], len(groups))

    # Each group is labelled like its first sample
    first_index: Dict[int, int] = {}
    for i, code in enumerate(codes):
        first_index.setdefault(int(code), i)

    result: Dict[MeterEntity, List[Sample]] = {}
    for code, ((entity, _), value) in enumerate(zip(groups, values)):
        labels = remaining_labels[first_index[code]]
        result.setdefault(entity, []).append(Sample(family.name, labels, float(value)))

    logger.debug(
        f"Resolved {len(family)} samples of '{family.name}' into "
        f"{len(result)} {variant.name} entities"
    )
    return result

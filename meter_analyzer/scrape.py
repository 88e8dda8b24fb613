"""Build evaluation contexts from scraped samples."""
from typing import Any, Dict, List
import logging
import os

from prometheus_client.parser import text_string_to_metric_families

from meter_analyzer.grouping import validate_label_names
from meter_analyzer.sample import Sample, SampleFamily

logger = logging.getLogger(__name__)


def context_from_exposition(text: str) -> Dict[str, SampleFamily]:
    """
    Build a context from Prometheus text exposition.

    Families are keyed by sample name, so histogram and summary series such as
    `*_bucket`, `*_sum` and `*_count` each become their own family.
    """
    samples: Dict[str, List[Sample]] = {}
    for metric_family in text_string_to_metric_families(text):
        for s in metric_family.samples:
            samples.setdefault(s.name, []).append(Sample(s.name, s.labels, s.value))

    return {name: SampleFamily.of(name, items) for name, items in samples.items()}


def context_from_dict(raw: Dict[str, Any]) -> Dict[str, SampleFamily]:
    """
    Build a context from a plain mapping.

    Format:
        {metric_name: [{"labels": {...}, "value": 1.0}, ...]}
    """
    context: Dict[str, SampleFamily] = {}
    for name, entries in (raw or {}).items():
        samples = []
        for entry in entries or []:
            labels = {
                str(k): "" if v is None else str(v)
                for k, v in (entry.get("labels") or {}).items()
            }
            if not validate_label_names(labels.keys()):
                raise ValueError(f"Metric '{name}' has invalid label names: {sorted(labels)}")
            samples.append(Sample(name, labels, entry["value"]))
        context[name] = SampleFamily.of(name, samples)

    return context


def load_context(path: str) -> Dict[str, SampleFamily]:
    """Load a context from a YAML/JSON sample file or a Prometheus exposition file."""
    import yaml

    if not os.path.exists(path):
        raise FileNotFoundError(f"Sample file not found: {path}")

    with open(path, 'r') as f:
        content = f.read()

    if path.endswith((".yaml", ".yml", ".json")):
        context = context_from_dict(yaml.safe_load(content))
    else:
        context = context_from_exposition(content)

    logger.debug(f"Loaded {len(context)} sample families from {path}")
    return context

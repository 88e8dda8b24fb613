"""Prometheus exposition of evaluated meters and of the analyzer's own metrics."""
from typing import Dict, List, Optional
import logging
import threading

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from meter_analyzer.config import PrometheusExporterConfig
from meter_analyzer.entity import MeterEntity
from meter_analyzer.sample import Sample, label_value

logger = logging.getLogger(__name__)


class MeterResultCollector(Collector):
    """Exposes the latest successful result of every rule as a gauge family."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self._results: Dict[str, Dict[MeterEntity, List[Sample]]] = {}
        self._lock = threading.Lock()

    def update(self, metric_name: str, data: Dict[MeterEntity, List[Sample]]):
        with self._lock:
            self._results[metric_name] = data

    def remove(self, metric_name: str):
        with self._lock:
            self._results.pop(metric_name, None)

    def collect(self):
        with self._lock:
            snapshot = dict(self._results)

        for metric_name, data in snapshot.items():
            yield self._build_family(metric_name, data)

    def _build_family(self, metric_name: str, data: Dict[MeterEntity, List[Sample]]) -> GaugeMetricFamily:
        entity_keys: List[str] = []
        sample_keys = set()
        for entity, samples in data.items():
            for key in entity.labels():
                if key not in entity_keys:
                    entity_keys.append(key)
            for s in samples:
                sample_keys.update(s.labels)

        sample_keys = sorted(sample_keys)
        exported_keys = _exported_names(["scope"] + entity_keys, sample_keys)

        family = GaugeMetricFamily(
            f"{self.prefix}{metric_name}",
            f"Meter values for {metric_name}",
            labels=["scope"] + entity_keys + exported_keys
        )

        for entity, samples in data.items():
            entity_labels = entity.labels()
            entity_values = [entity.scope.value] + [entity_labels.get(k, "") for k in entity_keys]
            for s in samples:
                family.add_metric(
                    entity_values + [label_value(s.labels, k) for k in sample_keys],
                    s.value
                )

        return family


def _exported_names(reserved: List[str], sample_keys: List[str]) -> List[str]:
    """
    Name every sample label uniquely next to the reserved labels.

    A clashing key gets an `exported_` prefix, as Prometheus does, repeated
    until the name is free.
    """
    used = set(reserved)
    names = []
    for key in sample_keys:
        name = key
        while name in used:
            name = f"exported_{name}"
        used.add(name)
        names.append(name)
    return names


class EvaluationMetrics:
    """Self-monitoring metrics for rule evaluation."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            registry = CollectorRegistry()

        self.evaluations_total = Counter(
            f"{prefix}meter_evaluations_total",
            "Total number of rule evaluations",
            ["rule", "outcome"],
            registry=registry
        )

        self.evaluation_errors_total = Counter(
            f"{prefix}meter_evaluation_errors_total",
            "Total number of failed rule evaluations by error type",
            ["rule", "error"],
            registry=registry
        )

        self.evaluation_duration_seconds = Histogram(
            f"{prefix}meter_evaluation_duration_seconds",
            "Duration of one evaluation cycle in seconds",
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=registry
        )

        self.entities = Gauge(
            f"{prefix}meter_entities",
            "Number of entities resolved by the latest evaluation",
            ["rule"],
            registry=registry
        )

    def record_success(self, rule: str, entity_count: int):
        """Record a successful evaluation."""
        self.evaluations_total.labels(rule=rule, outcome="success").inc()
        self.entities.labels(rule=rule).set(entity_count)

    def record_failure(self, rule: str, error: Exception):
        """Record a failed evaluation."""
        self.evaluations_total.labels(rule=rule, outcome="failure").inc()
        self.evaluation_errors_total.labels(rule=rule, error=type(error).__name__).inc()

    def record_cycle_duration(self, duration: float):
        """Record evaluation cycle duration."""
        self.evaluation_duration_seconds.observe(duration)


class PrometheusExporter:
    """Owns the registry that meter results and self-metrics are exposed from."""

    def __init__(self, config: PrometheusExporterConfig, start_server: bool = True):
        self.config = config
        # Use a custom registry to avoid exporting default Python/process metrics
        self.registry = CollectorRegistry()

        self.collector = MeterResultCollector(prefix=config.prefix)
        self.registry.register(self.collector)

        self.self_metrics = EvaluationMetrics(registry=self.registry, prefix=config.prefix)

        if config.enabled and start_server:
            self._start_server()

    def _start_server(self):
        """Start Prometheus HTTP server."""
        try:
            start_http_server(
                self.config.port,
                addr=self.config.bind_address,
                registry=self.registry
            )
            logger.info(
                f"Prometheus exporter listening on "
                f"{self.config.bind_address}:{self.config.port}/metrics"
            )
        except Exception as e:
            logger.error(f"Failed to start Prometheus HTTP server: {e}")
            raise

    def publish(self, metric_name: str, data: Optional[Dict[MeterEntity, List[Sample]]]):
        """Expose the latest result of a rule; None withdraws it."""
        if data is None:
            self.collector.remove(metric_name)
        else:
            self.collector.update(metric_name, data)

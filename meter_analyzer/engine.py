"""Rule evaluation engine and scheduler."""
import time
import logging
from typing import Callable, Dict, Mapping, Optional

from meter_analyzer.config import Config
from meter_analyzer.entity import NamingControl, acquire_naming_control, release_naming_control
from meter_analyzer.expression import Expression, evaluate, parse
from meter_analyzer.prom_exporter import PrometheusExporter
from meter_analyzer.result import Result
from meter_analyzer.sample import SampleFamily

logger = logging.getLogger(__name__)

Context = Mapping[str, SampleFamily]


class MeterEngine:
    """Evaluates every configured rule against one context snapshot per cycle."""

    def __init__(self, config: Config, exporter: Optional[PrometheusExporter] = None):
        self.config = config
        self.exporter = exporter
        self.running = False
        self.cycle_count = 0

        # Entity construction needs the naming control before the first evaluation
        self.naming_control = acquire_naming_control(NamingControl(config.naming))
        self._holds_naming = True
        if self.naming_control.config != config.naming:
            logger.warning("Naming control already installed by another engine; its naming config is used")

        self.expressions: Dict[str, Expression] = {}
        for rule in config.rules.rules:
            metric_name = config.rules.metric_name_for(rule)
            self.expressions[metric_name] = parse(config.rules.expression_for(rule))

        logger.info(f"Meter engine initialized with {len(self.expressions)} rules")

    def evaluate(self, context: Context) -> Dict[str, Result]:
        """
        Evaluate all rules against one context.

        Args:
            context: Sample families keyed by metric name

        Returns:
            Result of every rule, keyed by output metric name
        """
        cycle_start = time.time()
        results: Dict[str, Result] = {}

        for metric_name, expression in self.expressions.items():
            result = evaluate(expression, context)
            results[metric_name] = result

            if result.success:
                logger.debug(f"Rule '{metric_name}' resolved {len(result.data)} entities")
            else:
                logger.warning(f"Rule '{metric_name}' skipped this cycle: {result.error}")

            if self.exporter:
                self.exporter.publish(metric_name, result.data if result.success else None)
                if result.success:
                    self.exporter.self_metrics.record_success(metric_name, len(result.data))
                else:
                    self.exporter.self_metrics.record_failure(metric_name, result.error)

        cycle_duration = time.time() - cycle_start
        if self.exporter:
            self.exporter.self_metrics.record_cycle_duration(cycle_duration)

        self.cycle_count += 1
        failed = sum(1 for r in results.values() if not r.success)
        logger.info(
            f"Cycle {self.cycle_count}: {len(results) - failed} rules succeeded, "
            f"{failed} failed in {cycle_duration:.3f}s"
        )
        return results

    def run(self, load_context: Callable[[], Context]):
        """Load a fresh context and evaluate it every interval until stopped."""
        self.running = True

        logger.info("Starting meter engine")

        interval = self.config.global_.evaluation_interval_s

        while self.running:
            cycle_start = time.time()

            try:
                self.evaluate(load_context())
            except Exception as e:
                logger.error(f"Error in evaluation cycle: {e}", exc_info=True)

            # Sleep for remaining time in interval
            cycle_duration = time.time() - cycle_start
            sleep_time = max(0, interval - cycle_duration)

            if sleep_time > 0:
                time.sleep(sleep_time)
            else:
                logger.warning(
                    f"Cycle took {cycle_duration:.3f}s, longer than interval {interval}s"
                )

    def stop(self):
        """Stop the evaluation loop."""
        logger.info("Stopping meter engine")
        self.running = False

    def close(self):
        """Stop and release the naming control; the last engine to close removes it."""
        self.stop()
        if self._holds_naming:
            self._holds_naming = False
            release_naming_control()

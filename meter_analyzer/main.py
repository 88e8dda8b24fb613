"""Main entry point for the meter analyzer."""
import argparse
import logging
import signal
import sys

from meter_analyzer.config import load_config
from meter_analyzer.engine import MeterEngine
from meter_analyzer.prom_exporter import PrometheusExporter
from meter_analyzer.scrape import load_context


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        fmt = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def print_results(results):
    """Print one line per (entity, sample) pair."""
    for metric_name, result in results.items():
        if not result.success:
            print(f"{metric_name}: FAILED ({type(result.error).__name__}: {result.error})")
            continue

        for entity, samples in result.data.items():
            for sample in samples:
                print(f"{metric_name} {entity} {{{sample.label_key()}}} {sample.value}")


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Meter Analyzer - Attribute labeled samples to services, instances and endpoints"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to rules configuration YAML file"
    )
    parser.add_argument(
        "--samples",
        "-s",
        required=True,
        help="Path to a sample file (YAML/JSON, or Prometheus text exposition)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Evaluate once, print results and exit"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Rules configured: {len(config.rules.rules)}")

    exporter = None
    if not args.once and config.exporters.prometheus.enabled:
        exporter = PrometheusExporter(config.exporters.prometheus)

    engine = MeterEngine(config, exporter=exporter)

    try:
        if args.once:
            print_results(engine.evaluate(load_context(args.samples)))
            return

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            engine.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info(f"Evaluating every {config.global_.evaluation_interval_s}s")
        engine.run(lambda: load_context(args.samples))
    except Exception as e:
        logger.error(f"Meter engine error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        engine.close()


if __name__ == "__main__":
    main()

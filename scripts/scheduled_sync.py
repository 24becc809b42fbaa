#!/usr/bin/env python3
"""
Scheduled export pass for the time-series exporter.

Runs one incremental pass:
- Detects time-series changed since the persisted change token
- Exports the minimal set of new points to the destination
- Persists the new token only when every change was exported

Designed to be run on a schedule (e.g., via cron or Airflow). The destination
store is deployment-specific and is named as an importable factory.

Usage:
    python scripts/scheduled_sync.py --destination mypackage.sos:connect \
        [--config CONFIG_PATH] [--force-resync] [--dry-run]
"""

import argparse
import importlib
import sys
from typing import Callable

import structlog

from src.providers import get_sync_engine
from src.storage.observation_store import ObservationStoreInterface
from src.utils.config_loader import ConfigLoader, ConfigurationError
from src.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def load_destination_factory(spec: str) -> Callable[[], ObservationStoreInterface]:
    """Resolve a 'module:callable' reference to a destination factory."""
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Destination must look like 'module:callable', got '{spec}'")

    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ConfigurationError(f"'{spec}' is not a callable destination factory")

    return factory


def main() -> None:
    """Main entry point for the scheduled export script."""
    parser = argparse.ArgumentParser(description="Incremental time-series export pass")
    parser.add_argument("--config", type=str, help="Path to configuration file", default=None)
    parser.add_argument(
        "--destination",
        type=str,
        required=True,
        help="Destination factory as 'module:callable'",
    )
    parser.add_argument(
        "--force-resync", action="store_true", help="Ignore the persisted change token"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Log destination changes without applying them"
    )

    args = parser.parse_args()

    try:
        config_loader = ConfigLoader()
        config = config_loader.load_config(args.config)
        config_loader.validate_config(config)
        destination_factory = load_destination_factory(args.destination)
    except (ConfigurationError, ImportError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(
        log_level=config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
    )

    if args.force_resync:
        config.export.force_resync = True
    if args.dry_run:
        config.export.dry_run = True

    engine = get_sync_engine(config, destination_factory)
    report = engine.run()

    print("\n" + "=" * 60)
    print("EXPORT SUMMARY")
    print("=" * 60)
    print(f"Status: {report.status.value.upper()}")
    print(report.summary())
    if report.skipped_time_series:
        print(f"Skipped time-series: {len(report.skipped_time_series)}")
    if report.persisted_token is not None:
        print(f"Next changes-since token: {report.persisted_token.isoformat()}")
    print("=" * 60)

    sys.exit(0 if report.success else 1)


if __name__ == "__main__":
    main()

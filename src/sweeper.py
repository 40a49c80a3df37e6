"""Drift sweep runner.

Runs the drift reconciliation sweep against the configured payment gateway,
either once or on a fixed interval.

Usage:
    python src/sweeper.py                 # Run a single sweep and exit
    python src/sweeper.py --interval 900  # Sweep every 15 minutes
"""

import argparse
import time

import structlog

logger = structlog.get_logger(__name__)


def run(interval: float = 0, max_runs: int | None = None, services=None, sleep=time.sleep) -> list[dict]:
    """Sweep once, or every ``interval`` seconds until ``max_runs`` is reached."""
    from ordering.api.dependencies import build_services
    from ordering.domain import ordering

    services = services or build_services()

    reports = []
    while True:
        with ordering.domain_context():
            report = services.sweep.sweep()
        reports.append(report.to_dict())

        if interval <= 0 or (max_runs is not None and len(reports) >= max_runs):
            return reports
        sleep(interval)


def main():
    from ordering.domain import ordering
    from ordering.utils.db import setup_db
    from ordering.utils.logging import configure_logging

    parser = argparse.ArgumentParser(description="Order/payment drift sweep")
    parser.add_argument(
        "--interval",
        type=float,
        default=0,
        help="Seconds between sweeps (default: run once and exit)",
    )
    parser.add_argument(
        "--max-runs",
        type=int,
        default=None,
        help="Stop after this many sweeps",
    )
    args = parser.parse_args()

    configure_logging(log_file_prefix="sweeper")
    ordering.init()
    setup_db(ordering)
    try:
        reports = run(interval=args.interval, max_runs=args.max_runs)
    except KeyboardInterrupt:
        logger.info("Drift sweep runner stopped")
        return
    logger.info("Drift sweep runner finished", runs=len(reports), last=reports[-1])


if __name__ == "__main__":
    main()

"""
holdrace - Seat Hold Contention Load Generator

Drives a queue-gated seat-reservation API with an open arrival-rate model:
- Simulated clients join the waiting room, wait for admission, open a
  booking session, create a reservation, and race to hold seats
- Every hold is classified as won (200), lost (409), or an error
- Structured logging per actor and Prometheus-compatible counters

Usage:
  python -m holdrace                 # integrated flow (default)
  python -m holdrace hold-focus      # setup once, then hammer one seat
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from holdrace.core.config import RunConfig, Scenario, get_settings
from holdrace.core.exceptions import SetupFatal
from holdrace.core.logging import get_logger, setup_logging
from holdrace.services.scenarios import RunReport, run_scenario


def print_header(text: str):
    print(f"\n{'='*70}")
    print(f"{text:^70}")
    print(f"{'='*70}\n")


def print_summary(report: RunReport):
    snapshot = report.snapshot
    schedule = report.schedule

    print_header(f"RESULTS: {report.scenario.value}")
    print(f"Duration:              {schedule.elapsed:.2f}s")
    print(f"Actors launched:       {schedule.launched}")
    print(f"Peak concurrency:      {schedule.peak_concurrency}")
    print(f"Dropped (cap):         {schedule.dropped}")
    print(f"Interrupted:           {schedule.interrupted}")
    print()
    print(f"✓ Won (200):           {snapshot.won}")
    print(f"✓ Lost (409):          {snapshot.lost}")
    print(f"✗ Client errors (4xx): {snapshot.client_error}")
    print(f"✗ Server errors (5xx): {snapshot.server_error}")
    print(f"✗ Unclassified:        {snapshot.unclassified}")
    print()
    if snapshot.aborts:
        print("Aborted iterations:")
        for step, count in snapshot.aborts.items():
            print(f"  {step:<24}{count}")
        print()
    print(f"HTTP requests:         {snapshot.http_reqs}")
    print(f"HTTP failed rate:      {snapshot.failed_rate*100:.1f}%")
    print(f"Setup failed:          {snapshot.setup_failed}")

    print("\n" + "="*70)
    if report.passed:
        print("✓ PASS: all thresholds met")
    else:
        print("✗ FAIL: thresholds crossed")
        for failure in report.threshold_failures:
            print(f"  {failure}")
    print("="*70 + "\n")


async def main(config: RunConfig) -> int:
    logger = get_logger(__name__)
    logger.info(
        "run_starting",
        scenario=config.scenario.value,
        base_url=config.base_url,
        schedule_id=config.schedule_id,
        duration=config.total_duration,
    )

    try:
        report = await run_scenario(config)
    except SetupFatal as e:
        logger.error("run_aborted", error=str(e))
        return 1

    logger.info(
        "run_summary",
        won=report.snapshot.won,
        lost=report.snapshot.lost,
        client_error=report.snapshot.client_error,
        server_error=report.snapshot.server_error,
        aborts=report.snapshot.aborts,
        setup_failed=report.snapshot.setup_failed,
    )
    print_summary(report)
    return 0 if report.passed else 1


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="holdrace", description="Seat hold contention load generator")
    parser.add_argument(
        "scenario",
        nargs="?",
        choices=[scenario.value for scenario in Scenario],
        help="scenario to run (default: SCENARIO env or integrated)",
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        setup_logging(settings)
        config = settings.to_run_config(Scenario(args.scenario) if args.scenario else None)
    except (ValidationError, SetupFatal) as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(main(config))
    except KeyboardInterrupt:
        print("\n✗ Interrupted", file=sys.stderr)
        return 130

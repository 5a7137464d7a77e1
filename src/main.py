"""
Payroll Reconciliation & Period-Comparison - Main Entry Point

Compares workforce payments between two periods per worker category.
Handles CLI arguments, logging setup, and coordinates service components.
"""

from __future__ import annotations
import argparse
import sys
from datetime import date
from typing import Optional, Tuple
import logging
import structlog
from dotenv import load_dotenv
from pydantic import ValidationError


from data_fetcher import DeelClient
from exceptions import InputInvalid
from metrics import metrics
from models import PeriodWindow, RunOutcome, Settings
from period_windows import month_window, parse_period, previous_month
from reconciliation_engine import ReconciliationEngine
from report_generator import ReportGenerator


load_dotenv()


logger = structlog.get_logger()


try:
    SETTINGS = Settings()
except ValidationError as e:
    logger.error(
        "Failed to load environment settings. Check your .env file.", error=str(e)
    )
    sys.exit(1)


class ReconciliationSystem:
    """
    Coordinates a payroll comparison run.

    Builds the provider client and engine from settings, resolves the two
    period windows, runs the engine and renders the outcome.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or SETTINGS
        self.report_generator = ReportGenerator()

    def _windows(
        self,
        period: Optional[str],
        compare_to: Optional[str],
        cycle_start: Optional[date],
        compare_cycle_start: Optional[date],
        engine: ReconciliationEngine,
    ) -> Tuple[PeriodWindow, PeriodWindow]:
        if cycle_start is not None:
            if compare_cycle_start is None:
                raise InputInvalid("--compare-cycle-start is required with --cycle-start")
            return (
                engine.resolve_cycle_window(cycle_start),
                engine.resolve_cycle_window(compare_cycle_start),
            )
        if compare_cycle_start is not None:
            raise InputInvalid("--cycle-start is required with --compare-cycle-start")

        if period:
            current = parse_period(period)
        else:
            today = date.today()
            current = (today.year, today.month)
        previous = parse_period(compare_to) if compare_to else previous_month(*current)
        return month_window(*current), month_window(*previous)

    def run(
        self,
        period: Optional[str] = None,
        compare_to: Optional[str] = None,
        cycle_start: Optional[date] = None,
        compare_cycle_start: Optional[date] = None,
        output_format: str = "text",
    ) -> bool:
        """
        Run one comparison and print the report.

        Returns True when a report was produced (possibly with partial-data
        warnings) and False when the run failed.
        """
        try:
            if not self.settings.DEEL_API_KEY:
                raise InputInvalid("Please set DEEL_API_KEY to your Deel API key.")

            with DeelClient.from_settings(self.settings) as client:
                engine = ReconciliationEngine.from_settings(self.settings, client)
                current, previous = self._windows(
                    period, compare_to, cycle_start, compare_cycle_start, engine
                )
                logger.info(
                    "Starting reconciliation", current=current.label, previous=previous.label
                )
                outcome = engine.run(current, previous)
        except InputInvalid as e:
            logger.error("Invalid input", error=str(e))
            return False

        return self._render(outcome, output_format)

    def _render(self, outcome: RunOutcome, output_format: str) -> bool:
        if outcome.report is None:
            logger.error(
                "Reconciliation failed",
                run_id=outcome.run_id,
                error=outcome.error,
                code=outcome.error_code,
            )
            return False

        if output_format == "json":
            print(self.report_generator.generate_json(outcome.report))
        else:
            print(self.report_generator.generate_summary(outcome.report))

        if outcome.status == "partial":
            logger.warning("Reconciliation completed with partial data", run_id=outcome.run_id)
        else:
            logger.info("Reconciliation complete", run_id=outcome.run_id)
        return True


def setup_logging(level: str = "INFO") -> None:
    """
    Configure structured JSON logging for production observability.

    Sets up structlog with:
    - Timestamp formatting
    - Log level inclusion
    - Stack trace rendering
    - Exception info formatting
    - JSON output for log aggregation
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Payroll Reconciliation & Period-Comparison.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --period 2024-03 --compare-to 2024-02
  python main.py --cycle-start 2024-03-16 --compare-cycle-start 2024-03-01 --format json
        """,
    )
    parser.add_argument(
        "--period",
        type=str,
        help="Period to report (YYYY-MM). Defaults to the current month.",
    )
    parser.add_argument(
        "--compare-to",
        type=str,
        help="Comparison period (YYYY-MM). Defaults to the month before --period.",
    )
    parser.add_argument(
        "--cycle-start",
        type=date.fromisoformat,
        help="Report-cycle start date (YYYY-MM-DD); enables report-cycle mode.",
    )
    parser.add_argument(
        "--compare-cycle-start",
        type=date.fromisoformat,
        help="Start date (YYYY-MM-DD) of the report cycle to compare against.",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format. Defaults to text.",
    )
    return parser


def main(argv=None) -> int:
    setup_logging(SETTINGS.LOG_LEVEL)
    args = build_parser().parse_args(argv)

    if SETTINGS.METRICS_PORT:
        metrics.port = SETTINGS.METRICS_PORT
        metrics.start_metrics_server()

    system = ReconciliationSystem()
    succeeded = system.run(
        period=args.period,
        compare_to=args.compare_to,
        cycle_start=args.cycle_start,
        compare_cycle_start=args.compare_cycle_start,
        output_format=args.format,
    )
    return 0 if succeeded else 1


if __name__ == "__main__":
    sys.exit(main())

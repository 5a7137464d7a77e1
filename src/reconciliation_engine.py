"""
Payroll reconciliation orchestrator.

Fetches the contract roster and two payment windows, classifies contracts,
aggregates each category for both periods and compares them. Every run gets a
monotonically increasing id; only the latest run may publish its outcome.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import List, Optional, Sequence, Tuple

from aggregator import aggregate
from classifier import partition
from comparator import DEFAULT_TOP_CHANGES, compare
from data_fetcher import DEFAULT_PAGE_SIZE, DeelClient, PageCollection, PaginatedFetcher
from exceptions import InputInvalid, PartialData, ReconciliationError, UpstreamError
from metrics import metrics
from models import (
    CategoryReport,
    ComparisonReport,
    Contract,
    PaymentRecord,
    PeriodWindow,
    RunOutcome,
    RunState,
    Settings,
    WorkerCategory,
)
from period_windows import cycle_window, month_window, previous_month

# Standard logger for audit trail and operational monitoring
logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Runs period-over-period payroll comparisons per worker category."""

    def __init__(
        self,
        provider: DeelClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        reporting_currency: str = "USD",
        top_n: int = DEFAULT_TOP_CHANGES,
    ) -> None:
        self.provider = provider
        self.page_size = page_size
        self.reporting_currency = reporting_currency.strip().upper()
        self.top_n = top_n

        self._lock = threading.Lock()
        self._run_ids = itertools.count(1)
        self._latest_run_id = 0
        self.state = RunState.IDLE
        self.latest_outcome: Optional[RunOutcome] = None

    @classmethod
    def from_settings(cls, settings: Settings, provider: DeelClient) -> "ReconciliationEngine":
        return cls(
            provider=provider,
            page_size=settings.PAGE_SIZE,
            reporting_currency=settings.reporting_currency,
            top_n=settings.TOP_CHANGES_LIMIT,
        )

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------
    def _begin_run(self) -> int:
        with self._lock:
            run_id = next(self._run_ids)
            self._latest_run_id = run_id
            self.state = RunState.FETCHING
        return run_id

    def _settle(self, outcome: RunOutcome) -> RunOutcome:
        """Publish `outcome` unless a newer run has started since it began."""
        with self._lock:
            if outcome.run_id != self._latest_run_id:
                logger.info(
                    "Discarding result of run %d; run %d superseded it",
                    outcome.run_id,
                    self._latest_run_id,
                )
                return outcome.model_copy(update={"superseded": True})
            self.latest_outcome = outcome
            self.state = RunState.SETTLED
        logger.info("Run %d settled: %s", outcome.run_id, outcome.status)
        return outcome

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    def fetch_payments(self, window: PeriodWindow, role: str = "payments") -> PageCollection:
        """Retrieve every payment page for `window`, degrading to partial data on failure."""
        fetcher = PaginatedFetcher(
            lambda offset, limit: self.provider.list_payments(window, offset, limit),
            page_size=self.page_size,
            label=f"{role} payments ({window.label})",
        )
        collection = fetcher.fetch_all()
        metrics.record_payments_fetched(role, len(collection))
        if not collection.complete:
            metrics.record_partial_data()
        return collection

    def resolve_cycle_window(self, cycle_start: date) -> PeriodWindow:
        """
        Report-cycle window for `cycle_start`.

        The cycle month's payslips decide whether the half-month split applies.
        An incomplete payslip fetch falls back to what was retrieved.
        """
        month = month_window(cycle_start.year, cycle_start.month)
        fetcher = PaginatedFetcher(
            lambda offset, limit: self.provider.list_payslips(month, offset, limit),
            page_size=self.page_size,
            label=f"payslips ({month.label})",
        )
        payslips = fetcher.fetch_all()
        if not payslips.complete:
            logger.warning(
                "Cycle %s resolved from %d payslips; payslip retrieval was incomplete",
                cycle_start.isoformat(),
                len(payslips),
            )
        return cycle_window(cycle_start, payslips.records)

    # ------------------------------------------------------------------
    # Pure reconciliation
    # ------------------------------------------------------------------
    def reconcile(
        self,
        contracts: Sequence[Contract],
        current_payments: Sequence[PaymentRecord],
        previous_payments: Sequence[PaymentRecord],
        current_window: PeriodWindow,
        previous_window: PeriodWindow,
        run_id: int = 0,
        warnings: Sequence[str] = (),
        previous_available: bool = True,
    ) -> ComparisonReport:
        """
        Build the comparison report from already-fetched data.

        `warnings` are attached to every category. With `previous_available`
        False there is no comparison basis and no category diff is computed.
        """
        classified = partition(contracts)
        metrics.record_unclassified(len(classified.unclassified))

        categories: List[CategoryReport] = []
        for category in WorkerCategory:
            subset = classified[category]
            current = aggregate(subset, current_payments, self.reporting_currency, current_window)
            previous = aggregate(
                subset, previous_payments, self.reporting_currency, previous_window
            )
            excluded = current.excluded_currency_records + previous.excluded_currency_records
            if excluded:
                metrics.record_excluded_currency(category.value, excluded)

            comparison = compare(current, previous if previous_available else None, self.top_n)
            categories.append(
                CategoryReport(
                    category=category,
                    current_label=current_window.label,
                    comparison_label=previous_window.label,
                    current_period=current,
                    previous_period=previous,
                    comparison=comparison,
                    warnings=list(warnings),
                )
            )
            logger.info(
                "%s: %d workers, total %s (previous %d workers, total %s)",
                category.value,
                current.worker_count,
                current.total_cost,
                previous.worker_count,
                previous.total_cost,
            )

        return ComparisonReport(
            run_id=run_id,
            reporting_currency=self.reporting_currency,
            current_window=current_window,
            previous_window=previous_window,
            categories=categories,
            unclassified_contracts=len(classified.unclassified),
            unclassified_contract_types=classified.unclassified_types,
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------
    def run(self, current_window: PeriodWindow, previous_window: PeriodWindow) -> RunOutcome:
        """
        Execute one reconciliation run.

        Contract retrieval failures are fatal for the run; payment page
        failures become partial-data warnings on every category.
        """
        if current_window is None or previous_window is None:
            raise InputInvalid("Both a current and a comparison period must be selected")

        run_id = self._begin_run()
        start_time = time.time()
        logger.info(
            "Run %d started: %s vs %s", run_id, current_window.label, previous_window.label
        )

        try:
            pool = ThreadPoolExecutor(max_workers=3, thread_name_prefix=f"run-{run_id}")
            try:
                contracts_future = pool.submit(self.provider.list_contracts)
                current_future = pool.submit(self.fetch_payments, current_window, "current")
                previous_future = pool.submit(self.fetch_payments, previous_window, "previous")
                try:
                    contracts = contracts_future.result()
                except UpstreamError as e:
                    raise type(e)(
                        f"Contract retrieval failed: {e}",
                        endpoint=e.endpoint,
                        status_code=e.status_code,
                    ) from e
                current = current_future.result()
                previous = previous_future.result()
            finally:
                # A failed run settles without waiting for in-flight payment pages.
                pool.shutdown(wait=False, cancel_futures=True)

            warnings = [
                str(PartialData(window.label, len(collection), collection.error))
                for window, collection in (
                    (current_window, current),
                    (previous_window, previous),
                )
                if not collection.complete
            ]
            report = self.reconcile(
                contracts,
                current.records,
                previous.records,
                current_window,
                previous_window,
                run_id=run_id,
                warnings=warnings,
                previous_available=previous.complete or len(previous) > 0,
            )
            outcome = RunOutcome(run_id=run_id, report=report)

        except ReconciliationError as e:
            logger.error("Run %d failed: %s", run_id, e)
            outcome = RunOutcome(run_id=run_id, error=str(e), error_code=e.code)

        except Exception as e:
            logger.error("Run %d failed unexpectedly: %s", run_id, e, exc_info=True)
            metrics.record_reconciliation_run("error", time.time() - start_time)
            self._settle(RunOutcome(run_id=run_id, error=str(e), error_code="UNEXPECTED"))
            raise

        metrics.record_reconciliation_run(outcome.status, time.time() - start_time)
        return self._settle(outcome)

    def run_months(
        self, current: Tuple[int, int], previous: Optional[Tuple[int, int]] = None
    ) -> RunOutcome:
        """Compare calendar month `current` = (year, month) with `previous` (default: month before)."""
        if previous is None:
            previous = previous_month(*current)
        return self.run(month_window(*current), month_window(*previous))

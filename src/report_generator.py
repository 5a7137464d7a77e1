"""
Plain-text and JSON rendering of payroll comparison reports.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

from models import CategoryReport, ComparisonReport, DifferenceCalculation, WorkerChange

logger = structlog.get_logger()


class ReportGenerator:
    """Builds executive text summaries and JSON documents from comparison reports."""

    def __init__(self, currency_symbol: str = "$", detail_rows: Optional[int] = None) -> None:
        self.currency_symbol = currency_symbol
        self.detail_rows = detail_rows

    def _money(self, value: Decimal) -> str:
        sign = "-" if value < 0 else ""
        return f"{sign}{self.currency_symbol}{abs(value):,.2f}"

    def _signed_money(self, value: Decimal) -> str:
        return ("+" if value >= 0 else "") + self._money(value)

    def _diff_line(
        self, diff: Optional[DifferenceCalculation], label: str, money: bool
    ) -> str:
        if diff is None:
            return "no change reported"
        if money:
            amount = self._signed_money(diff.diff)
        else:
            amount = f"{'+' if diff.diff >= 0 else ''}{diff.diff:.0f} workers"
        return f"{amount} ({diff.percent_change}%) vs {label}"

    def _worker_line(self, change: WorkerChange) -> str:
        marker = "*" if change.is_top_change else " "
        if change.is_new:
            delta = "NEW"
        elif change.diff is not None:
            delta = f"{self._signed_money(change.diff)} ({change.percent_change}%)"
        else:
            delta = "-"
        return (
            f"{marker} {change.name:<28} {change.role:<24} "
            f"{self._money(change.current_amount):>14}  {delta:<24} {change.status}"
        )

    def _category_section(self, category: CategoryReport) -> str:
        current = category.current_period
        comparison = category.comparison
        lines: List[str] = [
            f"{category.category.value.upper()}",
            "-" * len(category.category.value),
            f"Total Cost: {self._money(current.total_cost)} "
            f"[{self._diff_line(comparison.cost_diff, category.comparison_label, True)}]",
            f"Workers Paid: {current.worker_count} "
            f"[{self._diff_line(comparison.count_diff, category.comparison_label, False)}]",
        ]
        for warning in category.warnings:
            lines.append(f"⚠ {warning}")

        if not comparison.per_worker_changes:
            lines.append(f"No current payment data found for {category.category.value}.")
            return "\n".join(lines)

        rows = comparison.per_worker_changes
        if self.detail_rows is not None:
            rows = rows[: self.detail_rows]
        lines.append("")
        lines.extend(self._worker_line(change) for change in rows)
        if comparison.removed_worker_ids:
            lines.append(
                f"  {len(comparison.removed_worker_ids)} worker(s) paid in "
                f"{category.comparison_label} have no payment this period"
            )
        return "\n".join(lines)

    def generate_summary(self, report: ComparisonReport) -> str:
        """Executive summary of every category, top changes marked with '*'."""
        header = [
            "Payroll Period Comparison",
            "=========================",
            "",
            f"Period: {report.current_window.label} vs {report.previous_window.label}",
            f"Reporting Currency: {report.reporting_currency}",
            f"Report Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]
        if report.unclassified_contracts:
            types = ", ".join(
                f"{name} ({count})" for name, count in report.unclassified_contract_types.items()
            )
            header.append(f"Unclassified Contracts: {report.unclassified_contracts} [{types}]")

        sections = [self._category_section(c) for c in report.categories]
        summary = "\n".join(header) + "\n\n" + "\n\n".join(sections)
        logger.info("Generated comparison summary", run_id=report.run_id)
        return summary

    def to_dict(self, report: ComparisonReport) -> Dict[str, Any]:
        return {
            "report_metadata": {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "run_id": report.run_id,
            },
            "comparison": report.model_dump(mode="json"),
        }

    def generate_json(self, report: ComparisonReport) -> str:
        return json.dumps(self.to_dict(report), indent=2)

"""
models.py

Defines all core data models for the Payroll Reconciliation & Period-Comparison Engine.
Models are built using Pydantic for validation, type safety, and serialization.
They are plain values created fresh for every reconciliation run.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# -----------------------------------------------------------------------------
# 1. System Configuration Model
# -----------------------------------------------------------------------------
class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables or .env files.

    Centralizes the provider endpoint, pagination, retry and reporting settings.
    """

    # Provider Configuration
    DEEL_API_BASE_URL: str = Field(
        default="https://api.letsdeel.com/rest/v2",
        description="Base URL for the payroll provider API",
    )
    DEEL_API_KEY: Optional[str] = Field(None, description="Provider API bearer token")
    CONTRACTS_PATH: str = Field(default="/contracts", description="Contract roster resource")
    PAYMENTS_PATH: str = Field(
        default="/reports/detailed-payments", description="Payment report resource"
    )
    PAYSLIPS_PATH: str = Field(
        default="/reports/detailed-payslips", description="Payslip report resource"
    )

    # Transport Configuration
    PAGE_SIZE: int = Field(default=50, gt=0, description="Records requested per page")
    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30, gt=0, description="Bounded wait for each page request"
    )
    MAX_RETRIES: int = Field(default=3, ge=1, description="Attempts per request")

    # Reporting Configuration
    REPORTING_CURRENCY: str = Field(
        default="USD", description="Only payments in this currency are summed"
    )
    TOP_CHANGES_LIMIT: int = Field(
        default=5, gt=0, description="Number of workers ranked as top changes"
    )

    # Application Configuration
    METRICS_PORT: Optional[int] = Field(
        None, description="Port for the Prometheus exporter (disabled when unset)"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def reporting_currency(self) -> str:
        """Reporting currency normalized to an upper-case ISO code."""
        return self.REPORTING_CURRENCY.strip().upper()


# -----------------------------------------------------------------------------
# 2. Provider Records
# -----------------------------------------------------------------------------
class WorkerCategory(str, Enum):
    """Mutually exclusive worker classifications."""

    EOR = "EOR"
    PEO = "PEO"
    CONTRACTOR = "Contractor"


class Contract(BaseModel):
    """
    A worker engagement record from the provider's contract roster.

    Fetched once per run and never mutated; `classification` is filled in by
    the classifier on a copy.
    """

    id: str = Field(..., description="Opaque unique contract identifier")
    display_name: Optional[str] = Field(None, description="Contract name field")
    worker_name: Optional[str] = Field(None, description="Worker profile full name")
    role_title: Optional[str] = Field(None, description="Job title")
    status: Optional[str] = Field(None, description="Free-form provider status")
    contract_type: Optional[str] = Field(None, description="Provider contract_type enum")
    worker_country: Optional[str] = Field(None, description="Worker country code")
    classification: Optional[WorkerCategory] = Field(
        None, description="Derived category (None when unclassified)"
    )


class PaymentRecord(BaseModel):
    """
    A single monetary line item tied to a contract.

    `amount` keeps the provider's raw string; the aggregator parses it.
    """

    contract_id: str = Field(..., description="Weak reference to Contract.id")
    amount: str = Field(default="0", description="Provider-formatted amount")
    currency: str = Field(default="USD", description="ISO currency code")
    occurred_at: Optional[datetime] = Field(None, description="Timestamp used for windowing")
    status: Optional[str] = Field(None, description="Payment or invoice state")
    contract_name: Optional[str] = Field(None, description="Contract name embedded in the record")

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_text(cls, value: object) -> str:
        if value is None:
            return "0"
        return str(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _currency_default(cls, value: object) -> str:
        if value is None or not str(value).strip():
            return "USD"
        return str(value).strip().upper()


class Payslip(BaseModel):
    """A payslip line of a reporting cycle, used to detect semi-monthly US payroll."""

    contract_id: Optional[str] = Field(None, description="Contract the payslip belongs to")
    worker_country: Optional[str] = Field(None, description="Worker country code")
    cycle_start: Optional[date] = Field(None, description="First day of the payroll cycle")


# -----------------------------------------------------------------------------
# 3. Period Windows
# -----------------------------------------------------------------------------
class PeriodWindow(BaseModel):
    """Reporting window `[start, end]` with a human-readable label."""

    start: datetime = Field(..., description="First instant of the window")
    end: datetime = Field(..., description="Last instant of the window")
    label: str = Field(..., description="Display label, e.g. 'March 2024'")
    cycle_id: Optional[str] = Field(
        None, description="Report-cycle identifier (YYYY-MM or YYYY-MM-1/2)"
    )

    @model_validator(mode="after")
    def _start_not_after_end(self) -> "PeriodWindow":
        if self.start > self.end:
            raise ValueError(f"window start {self.start} is after end {self.end}")
        return self

    def contains(self, moment: datetime) -> bool:
        """True when `moment` lies within the window (both ends inclusive)."""
        return self.start <= moment <= self.end


# -----------------------------------------------------------------------------
# 4. Aggregation & Comparison Models
# -----------------------------------------------------------------------------
class WorkerProfile(BaseModel):
    """Display attributes resolved for a worker in one period."""

    worker_id: str = Field(..., description="Contract identifier")
    name: str = Field(default="N/A", description="Resolved display name")
    role: str = Field(default="N/A", description="Job title")
    status: str = Field(default="active", description="Contract status")


class AggregatedPeriod(BaseModel):
    """
    Per-worker and category totals for one category in one period.

    Invariants: total_cost equals the sum of per_worker, worker_count equals the
    number of per_worker entries; zero-amount workers never appear.
    """

    total_cost: Decimal = Field(default=Decimal("0"), description="Category total")
    worker_count: int = Field(default=0, description="Workers with a non-zero total")
    per_worker: Dict[str, Decimal] = Field(
        default_factory=dict, description="Worker id to summed amount"
    )
    workers: Dict[str, WorkerProfile] = Field(
        default_factory=dict, description="Worker id to display attributes"
    )
    excluded_currency_records: int = Field(
        default=0, description="Records skipped for a non-reporting currency"
    )

    @model_validator(mode="after")
    def _totals_conserved(self) -> "AggregatedPeriod":
        if self.total_cost != sum(self.per_worker.values(), Decimal("0")):
            raise ValueError("total_cost must equal the sum of per_worker amounts")
        if self.worker_count != len(self.per_worker):
            raise ValueError("worker_count must equal the number of per_worker entries")
        return self


class DifferenceCalculation(BaseModel):
    """Absolute and relative change between two comparable values."""

    diff: Decimal = Field(..., description="current - previous")
    percent_change: str = Field(..., description="Percentage with two fraction digits")


class WorkerChange(BaseModel):
    """Change in one worker's payments between the compared periods."""

    worker_id: str
    name: str = "N/A"
    role: str = "N/A"
    status: str = "active"
    current_amount: Decimal
    previous_amount: Optional[Decimal] = None
    diff: Optional[Decimal] = None
    percent_change: Optional[Decimal] = None
    is_new: bool = False
    is_top_change: bool = False


class ComparisonResult(BaseModel):
    """Category-level and per-worker differences between two periods."""

    cost_diff: Optional[DifferenceCalculation] = None
    count_diff: Optional[DifferenceCalculation] = None
    per_worker_changes: List[WorkerChange] = Field(default_factory=list)
    top_changes: List[WorkerChange] = Field(default_factory=list)
    removed_worker_ids: List[str] = Field(
        default_factory=list,
        description="Workers paid in the previous period only (not listed above)",
    )


# -----------------------------------------------------------------------------
# 5. Report Contracts
# -----------------------------------------------------------------------------
class CategoryReport(BaseModel):
    """Everything a renderer needs for one category tab."""

    category: WorkerCategory
    current_label: str
    comparison_label: str
    current_period: AggregatedPeriod
    previous_period: AggregatedPeriod
    comparison: ComparisonResult
    warnings: List[str] = Field(default_factory=list)


class ComparisonReport(BaseModel):
    """Output of one settled reconciliation run."""

    run_id: int = Field(..., description="Monotonic run identifier")
    reporting_currency: str = Field(default="USD")
    current_window: PeriodWindow
    previous_window: PeriodWindow
    categories: List[CategoryReport] = Field(default_factory=list)
    unclassified_contracts: int = Field(
        default=0, description="Contracts outside EOR/PEO/Contractor"
    )
    unclassified_contract_types: Dict[str, int] = Field(
        default_factory=dict, description="Unclassified contract_type counts"
    )
    warnings: List[str] = Field(default_factory=list)

    def category(self, category: WorkerCategory) -> CategoryReport:
        for report in self.categories:
            if report.category == category:
                return report
        raise KeyError(category)


class RunState(str, Enum):
    """Engine lifecycle: idle -> fetching -> settled."""

    IDLE = "idle"
    FETCHING = "fetching"
    SETTLED = "settled"


class RunOutcome(BaseModel):
    """Settled result of a run: a report, or one fatal error message."""

    run_id: int
    report: Optional[ComparisonReport] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    superseded: bool = Field(
        default=False, description="A newer run started before this one settled"
    )

    @property
    def status(self) -> str:
        if self.report is None:
            return "failed"
        if self.report.warnings or any(c.warnings for c in self.report.categories):
            return "partial"
        return "succeeded"

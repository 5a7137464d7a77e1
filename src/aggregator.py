"""
Per-period aggregation of payment records for one worker category.

Joins payments to the category's contracts by contract id, keeps only the
reporting currency, sums amounts per worker and drops workers whose total is
exactly zero.
"""

from __future__ import annotations

import logging
from datetime import timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from amount_parser import parse_amount
from models import AggregatedPeriod, Contract, PaymentRecord, PeriodWindow, WorkerProfile

logger = logging.getLogger(__name__)

DEFAULT_NAME = "N/A"
DEFAULT_ROLE = "N/A"
DEFAULT_STATUS = "active"


def _first_present(*candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate
    return None


def _build_index(contracts: Iterable[Contract]) -> Dict[str, Contract]:
    """Build contract index for O(1) lookups."""
    index: Dict[str, Contract] = {}
    for contract in contracts:
        if contract.id in index:
            logger.warning(
                "Duplicate contract id %s encountered; keeping first occurrence.",
                contract.id,
            )
            continue
        index[contract.id] = contract
    return index


def _in_window(payment: PaymentRecord, window: Optional[PeriodWindow]) -> bool:
    if window is None or payment.occurred_at is None:
        return True
    occurred_at = payment.occurred_at
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    return window.contains(occurred_at)


def resolve_profile(
    contract: Contract, embedded_name: Optional[str] = None
) -> WorkerProfile:
    """Display attributes: worker profile name, then contract name, then the payment's."""
    return WorkerProfile(
        worker_id=contract.id,
        name=_first_present(contract.worker_name, contract.display_name, embedded_name)
        or DEFAULT_NAME,
        role=_first_present(contract.role_title) or DEFAULT_ROLE,
        status=_first_present(contract.status) or DEFAULT_STATUS,
    )


def aggregate(
    contracts: Iterable[Contract],
    payments: Iterable[PaymentRecord],
    reporting_currency: str = "USD",
    window: Optional[PeriodWindow] = None,
) -> AggregatedPeriod:
    """
    Aggregate one period's payments for an already-classified contract subset.

    Payments for contracts outside the subset, in another currency, or dated
    outside `window` are ignored. Unparseable amounts count as zero.
    """
    currency = reporting_currency.strip().upper()
    index = _build_index(contracts)

    sums: Dict[str, Decimal] = {}
    embedded_names: Dict[str, str] = {}
    order: List[str] = []
    excluded_currency = 0

    for payment in payments:
        contract_id = payment.contract_id
        if contract_id not in index:
            continue
        if payment.currency != currency:
            excluded_currency += 1
            logger.debug(
                "Excluding %s payment for contract %s (reporting currency %s)",
                payment.currency,
                contract_id,
                currency,
            )
            continue
        if not _in_window(payment, window):
            continue

        if contract_id not in sums:
            sums[contract_id] = Decimal("0")
            order.append(contract_id)
        sums[contract_id] += parse_amount(payment.amount)
        if payment.contract_name and contract_id not in embedded_names:
            embedded_names[contract_id] = payment.contract_name

    if excluded_currency:
        logger.info(
            "Excluded %d payment records not in %s from totals",
            excluded_currency,
            currency,
        )

    per_worker: Dict[str, Decimal] = {}
    workers: Dict[str, WorkerProfile] = {}
    for contract_id in order:
        amount = sums[contract_id]
        if amount == 0:
            continue
        per_worker[contract_id] = amount
        workers[contract_id] = resolve_profile(
            index[contract_id], embedded_names.get(contract_id)
        )

    return AggregatedPeriod(
        total_cost=sum(per_worker.values(), Decimal("0")),
        worker_count=len(per_worker),
        per_worker=per_worker,
        workers=workers,
        excluded_currency_records=excluded_currency,
    )

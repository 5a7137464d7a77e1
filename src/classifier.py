"""
Worker classification over the provider's contract_type enum.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from models import Contract, WorkerCategory

logger = logging.getLogger(__name__)

CONTRACTOR_TYPES = frozenset(
    {"ongoing_time_based", "pay_as_you_go_time_based", "milestones", "fixed_rate"}
)


def classify(contract_type: Optional[str]) -> Optional[WorkerCategory]:
    """Map a contract_type to its category, or None when it is unclassified."""
    if contract_type == "eor":
        return WorkerCategory.EOR
    if contract_type == "peo":
        return WorkerCategory.PEO
    if contract_type in CONTRACTOR_TYPES:
        return WorkerCategory.CONTRACTOR
    return None


class ClassifiedContracts:
    """Contracts partitioned into the three categories plus the unclassified rest."""

    def __init__(self) -> None:
        self.by_category: Dict[WorkerCategory, List[Contract]] = {
            category: [] for category in WorkerCategory
        }
        self.unclassified: List[Contract] = []

    def __getitem__(self, category: WorkerCategory) -> List[Contract]:
        return self.by_category[category]

    def __len__(self) -> int:
        return sum(len(c) for c in self.by_category.values()) + len(self.unclassified)

    @property
    def unclassified_types(self) -> Dict[str, int]:
        counts = Counter(c.contract_type or "<missing>" for c in self.unclassified)
        return dict(sorted(counts.items()))


def partition(contracts: Iterable[Contract]) -> ClassifiedContracts:
    """
    Assign every contract to exactly one bucket.

    Returned contracts are copies with `classification` set; the input
    collection is left untouched.
    """
    result = ClassifiedContracts()
    for contract in contracts:
        category = classify(contract.contract_type)
        if category is None:
            result.unclassified.append(contract)
            continue
        result[category].append(contract.model_copy(update={"classification": category}))

    if result.unclassified:
        logger.warning(
            "%d contracts have an unclassified contract_type: %s",
            len(result.unclassified),
            result.unclassified_types,
        )
    return result

"""
Unit tests for worker classification.
"""

import logging

import pytest

from classifier import CONTRACTOR_TYPES, classify, partition
from models import Contract, WorkerCategory


@pytest.mark.parametrize(
    "contract_type, expected",
    [
        ("eor", WorkerCategory.EOR),
        ("peo", WorkerCategory.PEO),
        ("ongoing_time_based", WorkerCategory.CONTRACTOR),
        ("pay_as_you_go_time_based", WorkerCategory.CONTRACTOR),
        ("milestones", WorkerCategory.CONTRACTOR),
        ("fixed_rate", WorkerCategory.CONTRACTOR),
        ("global_payroll", None),
        ("EOR", None),
        ("", None),
        (None, None),
    ],
)
def test_classify(contract_type, expected):
    assert classify(contract_type) == expected


def test_contractor_types_are_fixed():
    assert CONTRACTOR_TYPES == {
        "ongoing_time_based",
        "pay_as_you_go_time_based",
        "milestones",
        "fixed_rate",
    }


class TestPartition:
    @pytest.fixture
    def contracts(self):
        types = ["eor", "peo", "milestones", "fixed_rate", "hris_direct_employee", None, "eor"]
        return [Contract(id=f"c{i}", contract_type=t) for i, t in enumerate(types)]

    def test_every_contract_lands_in_exactly_one_bucket(self, contracts):
        classified = partition(contracts)

        buckets = [classified[c] for c in WorkerCategory] + [classified.unclassified]
        seen = [contract.id for bucket in buckets for contract in bucket]
        assert sorted(seen) == sorted(c.id for c in contracts)
        assert len(seen) == len(set(seen))
        assert len(classified) == len(contracts)

    def test_bucket_contents(self, contracts):
        classified = partition(contracts)
        assert [c.id for c in classified[WorkerCategory.EOR]] == ["c0", "c6"]
        assert [c.id for c in classified[WorkerCategory.PEO]] == ["c1"]
        assert [c.id for c in classified[WorkerCategory.CONTRACTOR]] == ["c2", "c3"]
        assert [c.id for c in classified.unclassified] == ["c4", "c5"]

    def test_unclassified_are_counted_by_type(self, contracts):
        classified = partition(contracts)
        assert classified.unclassified_types == {"<missing>": 1, "hris_direct_employee": 1}

    def test_classification_set_on_copies(self, contracts):
        classified = partition(contracts)
        assert all(
            c.classification == WorkerCategory.EOR for c in classified[WorkerCategory.EOR]
        )
        assert contracts[0].classification is None

    def test_unclassified_logged(self, contracts, caplog):
        with caplog.at_level(logging.WARNING):
            partition(contracts)
        assert any("unclassified contract_type" in r.message for r in caplog.records)

    def test_empty_roster(self):
        classified = partition([])
        assert len(classified) == 0
        assert classified.unclassified_types == {}

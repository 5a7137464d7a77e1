"""
Unit tests for period comparison: diff semantics, new workers and top-N ranking.
"""

from decimal import Decimal

import pytest

from comparator import calculate_difference, compare, rank_top_changes
from models import AggregatedPeriod, WorkerChange, WorkerProfile


def _period(amounts):
    per_worker = {k: Decimal(str(v)) for k, v in amounts.items()}
    return AggregatedPeriod(
        total_cost=sum(per_worker.values(), Decimal("0")),
        worker_count=len(per_worker),
        per_worker=per_worker,
        workers={k: WorkerProfile(worker_id=k, name=k.upper()) for k in per_worker},
    )


class TestCalculateDifference:
    def test_increase(self):
        result = calculate_difference(150, 100)
        assert result.diff == Decimal("50")
        assert result.percent_change == "50.00"

    def test_previous_zero(self):
        result = calculate_difference(80, 0)
        assert result.diff == Decimal("80")
        assert result.percent_change == "100.00"

    def test_previous_undefined(self):
        assert calculate_difference(100, None) is None

    def test_no_change(self):
        assert calculate_difference(100, 100) is None
        assert calculate_difference(Decimal("100.00"), Decimal("100")) is None

    def test_decrease(self):
        result = calculate_difference(Decimal("90"), Decimal("120"))
        assert result.diff == Decimal("-30")
        assert result.percent_change == "-25.00"

    def test_two_fraction_digits(self):
        assert calculate_difference(2, 3).percent_change == "-33.33"
        assert calculate_difference(Decimal("230"), Decimal("140")).percent_change == "64.29"
        assert calculate_difference(Decimal("101"), Decimal("100")).percent_change == "1.00"


class TestCompare:
    @pytest.fixture
    def current(self):
        return _period({"a": 150, "b": 80})

    @pytest.fixture
    def previous(self):
        return _period({"a": 100, "c": 40})

    def test_category_diffs(self, current, previous):
        result = compare(current, previous)
        assert result.cost_diff.diff == Decimal("90")
        assert result.cost_diff.percent_change == "64.29"
        assert result.count_diff is None

    def test_worker_with_previous_amount(self, current, previous):
        change = compare(current, previous).per_worker_changes[0]
        assert change.worker_id == "a"
        assert change.name == "A"
        assert change.previous_amount == Decimal("100")
        assert change.diff == Decimal("50")
        assert change.percent_change == Decimal("50.00")
        assert change.is_new is False

    def test_new_worker_has_no_diff(self, current, previous):
        change = compare(current, previous).per_worker_changes[1]
        assert change.worker_id == "b"
        assert change.is_new is True
        assert change.diff is None
        assert change.percent_change is None
        assert change.previous_amount is None

    def test_previous_only_worker_not_listed(self, current, previous):
        result = compare(current, previous)
        assert "c" not in [c.worker_id for c in result.per_worker_changes]
        assert result.removed_worker_ids == ["c"]

    def test_no_previous_period(self, current):
        result = compare(current, None)
        assert result.cost_diff is None
        assert result.count_diff is None
        assert all(c.is_new for c in result.per_worker_changes)
        assert result.top_changes == []
        assert result.removed_worker_ids == []

    def test_idempotent(self, current, previous):
        first = compare(current, previous).model_dump_json()
        second = compare(current, previous).model_dump_json()
        assert first == second


class TestTopChanges:
    @pytest.fixture
    def periods(self):
        magnitudes = [5, 50, 1, 1000, 3, 700, 2, 9]
        previous = {f"w{i}": 2000 for i in range(len(magnitudes))}
        current = {
            f"w{i}": 2000 + (m if i % 2 == 0 else -m) for i, m in enumerate(magnitudes)
        }
        return _period(current), _period(previous)

    def test_top_five_by_absolute_change(self, periods):
        result = compare(*periods)
        assert [abs(c.diff) for c in result.top_changes] == [
            Decimal("1000"),
            Decimal("700"),
            Decimal("50"),
            Decimal("9"),
            Decimal("5"),
        ]
        assert all(c.is_top_change for c in result.top_changes)

    def test_tags_propagate_to_full_list(self, periods):
        result = compare(*periods)
        tagged = {c.worker_id for c in result.per_worker_changes if c.is_top_change}
        assert tagged == {c.worker_id for c in result.top_changes}
        assert len(result.per_worker_changes) == 8

    def test_limit_is_configurable(self, periods):
        result = compare(*periods, top_n=2)
        assert [c.worker_id for c in result.top_changes] == ["w3", "w5"]

    def test_zero_and_new_changes_are_never_top(self):
        current = _period({"same": 100, "new": 5000, "up": 110})
        previous = _period({"same": 100, "up": 100})
        result = compare(current, previous)
        assert [c.worker_id for c in result.top_changes] == ["up"]
        flags = {c.worker_id: c.is_top_change for c in result.per_worker_changes}
        assert flags == {"same": False, "new": False, "up": True}

    def test_rank_top_changes_on_plain_list(self):
        changes = [
            WorkerChange(worker_id="x", current_amount=Decimal("1"), diff=Decimal("-40")),
            WorkerChange(worker_id="y", current_amount=Decimal("1"), diff=Decimal("30")),
            WorkerChange(worker_id="z", current_amount=Decimal("1")),
        ]
        ranked = rank_top_changes(changes, limit=5)
        assert [c.worker_id for c in ranked] == ["x", "y"]
        assert [c.is_top_change for c in changes] == [True, True, False]

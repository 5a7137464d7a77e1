# tests/test_main.py

import json
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

import main
from data_fetcher import Page
from exceptions import UpstreamRejected
from main import ReconciliationSystem, build_parser
from models import Contract, PaymentRecord, Settings


class StubProvider:
    def __init__(self, contracts_error=None):
        self.contracts_error = contracts_error
        self.payment_windows = []

    def list_contracts(self):
        if self.contracts_error:
            raise self.contracts_error
        return [
            Contract(id="e1", worker_name="Alice Smith", contract_type="eor"),
            Contract(id="c1", display_name="Dana LLC", contract_type="pay_as_you_go_time_based"),
        ]

    def list_payments(self, window, offset, limit):
        self.payment_windows.append(window.label)
        if offset:
            return Page([])
        if window.label == "March 2024":
            return Page([
                PaymentRecord(contract_id="e1", amount="2,000.00"),
                PaymentRecord(contract_id="c1", amount="500.00"),
            ])
        return Page([PaymentRecord(contract_id="e1", amount="1,000.00")])

    def list_payslips(self, window, offset, limit):
        return Page([])


@pytest.fixture
def settings():
    return Settings(_env_file=None, DEEL_API_KEY="test-key")


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def mock_client(provider):
    with patch("main.DeelClient") as client_cls:
        client_cls.from_settings.return_value.__enter__.return_value = provider
        yield client_cls


# -------------------------------
# ReconciliationSystem Tests
# -------------------------------
def test_missing_api_key_fails(mock_client):
    system = ReconciliationSystem(Settings(_env_file=None, DEEL_API_KEY=None))
    with capture_logs() as logs:
        assert system.run(period="2024-03") is False
    assert logs[0]["event"] == "Invalid input"
    mock_client.from_settings.assert_not_called()


def test_text_report(mock_client, settings, capsys):
    system = ReconciliationSystem(settings)
    with capture_logs():
        assert system.run(period="2024-03", compare_to="2024-02") is True

    out = capsys.readouterr().out
    assert "Period: March 2024 vs February 2024" in out
    assert "Total Cost: $2,000.00 [+$1,000.00 (100.00%) vs February 2024]" in out
    assert "Dana LLC" in out
    mock_client.from_settings.assert_called_once_with(settings)


def test_json_report(mock_client, settings, capsys):
    system = ReconciliationSystem(settings)
    with capture_logs():
        assert system.run(period="2024-03", output_format="json") is True

    payload = json.loads(capsys.readouterr().out)
    categories = payload["comparison"]["categories"]
    assert [c["category"] for c in categories] == ["EOR", "PEO", "Contractor"]
    assert payload["comparison"]["previous_window"]["label"] == "February 2024"


def test_contract_failure_returns_false(settings):
    failing = StubProvider(
        contracts_error=UpstreamRejected("Invalid token", endpoint="/contracts", status_code=401)
    )
    with patch("main.DeelClient") as client_cls:
        client_cls.from_settings.return_value.__enter__.return_value = failing
        with capture_logs() as logs:
            assert ReconciliationSystem(settings).run(period="2024-03") is False

    failure = next(log for log in logs if log["event"] == "Reconciliation failed")
    assert failure["code"] == "UPSTREAM_REJECTED"


def test_invalid_period_returns_false(mock_client, settings):
    with capture_logs() as logs:
        assert ReconciliationSystem(settings).run(period="2024-13") is False
    assert logs[-1]["event"] == "Invalid input"


def test_cycle_mode_requires_comparison_cycle(mock_client, settings):
    from datetime import date

    with capture_logs() as logs:
        result = ReconciliationSystem(settings).run(cycle_start=date(2024, 3, 16))
    assert result is False
    assert "--compare-cycle-start" in logs[-1]["error"]


def test_comparison_cycle_requires_cycle_start(mock_client, settings, provider):
    from datetime import date

    with capture_logs() as logs:
        result = ReconciliationSystem(settings).run(
            period="2024-03", compare_cycle_start=date(2024, 2, 1)
        )
    assert result is False
    assert "--cycle-start" in logs[-1]["error"]
    assert provider.payment_windows == []


def test_cycle_mode_windows(mock_client, settings, provider):
    from datetime import date

    with capture_logs():
        result = ReconciliationSystem(settings).run(
            cycle_start=date(2024, 3, 16), compare_cycle_start=date(2024, 2, 1)
        )
    assert result is True
    # No US payslips, so both cycles cover their whole month.
    assert set(provider.payment_windows) == {"March 2024", "February 2024"}


# -------------------------------
# CLI Tests
# -------------------------------
def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.period is None
    assert args.compare_to is None
    assert args.cycle_start is None
    assert args.format == "text"


def test_parser_cycle_dates():
    args = build_parser().parse_args(
        ["--cycle-start", "2024-03-16", "--compare-cycle-start", "2024-03-01"]
    )
    assert args.cycle_start.day == 16
    assert args.compare_cycle_start.day == 1


def test_main_exit_codes():
    with patch("main.setup_logging"), patch("main.ReconciliationSystem") as system_cls:
        system_cls.return_value.run.return_value = True
        assert main.main(["--period", "2024-03"]) == 0
        system_cls.return_value.run.assert_called_once_with(
            period="2024-03",
            compare_to=None,
            cycle_start=None,
            compare_cycle_start=None,
            output_format="text",
        )

        system_cls.return_value.run.return_value = False
        assert main.main(["--format", "json"]) == 1

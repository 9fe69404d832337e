import numpy as np
import pandas as pd
import pytest

from revseg.anomalies import UNRECOGNIZED_STATUS, RunSummary
from revseg.normalizer import (
    applicable_year,
    is_won,
    note_unrecognized_status,
    parse_date,
    status_is_recognized,
    won_mask,
)


@pytest.mark.parametrize(
    "status",
    [
        "Contract Signed",
        "  work complete ",
        "BILLING COMPLETE",
        "Email Contract Award",
        "verbal contract award",
        "Contract In Progress",
        "Contract + Billing Complete",
        "Sold",
        "won",
    ],
)
def test_won_statuses_are_case_and_whitespace_insensitive(status):
    assert is_won({"status": status})


@pytest.mark.parametrize("status", ["Lost", "Work In Progress", "pending", "", None, np.nan, 42])
def test_non_won_statuses(status):
    assert not is_won({"status": status})


def test_pipeline_status_takes_precedence():
    assert is_won({"status": "Lost", "pipeline_status": "Sold"})
    assert is_won({"status": None, "pipeline_status": "  SOLD - invoiced "})
    assert not is_won({"status": "Lost", "pipeline_status": "Pending"})


def test_is_won_never_raises_on_garbage():
    assert is_won(None) is False
    assert is_won({}) is False


def test_won_mask_matches_row_rule():
    deals = pd.DataFrame(
        {
            "status": ["Contract Signed", "Lost", None, "Lost"],
            "pipeline_status": [None, None, "Sold", np.nan],
        }
    )
    assert won_mask(deals).tolist() == [is_won(r) for r in deals.to_dict("records")]
    assert won_mask(deals).tolist() == [True, False, True, False]


def test_status_is_recognized():
    assert status_is_recognized("Client Proposal Phase")
    assert status_is_recognized("sold")
    assert not status_is_recognized("Mystery Stage")


def test_unrecognized_status_warns_once_per_value(capsys):
    summary = RunSummary()
    note_unrecognized_status({"id": "d1", "status": "Mystery Stage"}, summary)
    note_unrecognized_status({"id": "d2", "status": " mystery stage"}, summary)
    note_unrecognized_status({"id": "d3", "status": "Lost"}, summary)
    note_unrecognized_status({"id": "d4", "status": "Contract Signed"}, summary)

    assert summary.count(UNRECOGNIZED_STATUS) == 2
    assert summary.samples[UNRECOGNIZED_STATUS] == ["d1", "d2"]
    out = capsys.readouterr().out
    assert out.count("[WARN]") == 1


def test_parse_date_handles_malformed_values():
    assert parse_date(None) is None
    assert parse_date("") is None
    assert parse_date("not a date") is None
    assert parse_date(np.nan) is None
    assert parse_date(True) is None
    assert parse_date("2024-03-05") == pd.Timestamp("2024-03-05")


def test_parse_date_drops_timezone_and_time():
    ts = parse_date("2024-03-05T23:00:00-05:00")
    assert ts == pd.Timestamp("2024-03-05")
    assert ts.tzinfo is None


def test_applicable_year_priority_chain():
    deal = {
        "contract_end": "2026-01-31",
        "contract_start": "2025-02-01",
        "estimate_date": "2024-12-01",
        "created_date": "2024-11-15",
    }
    assert applicable_year(deal) == 2026

    deal["contract_end"] = "garbage"
    assert applicable_year(deal) == 2025

    deal["contract_start"] = None
    assert applicable_year(deal) == 2024

    deal["estimate_date"] = ""
    deal["created_date"] = "2023-07-04"
    assert applicable_year(deal) == 2023


def test_applicable_year_undeterminable():
    assert applicable_year({"contract_end": "n/a", "created_date": None}) is None

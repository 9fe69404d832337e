import pandas as pd
import pytest

from revseg.anomalies import MISSING_VALUE, ORPHAN_DEAL, PRICE_FALLBACK, RunSummary
from revseg.revenue import (
    account_revenue,
    compute_revenue,
    deal_value,
    total_revenue,
    total_revenue_by_year,
)


def test_deal_value_prefers_tax_exclusive_price():
    assert deal_value({"total_price": 1000, "total_price_with_tax": 1130}) == (1000.0, False)


def test_zero_primary_price_is_not_replaced():
    assert deal_value({"total_price": 0, "total_price_with_tax": 113}) == (0.0, False)


def test_fallback_only_when_primary_is_null():
    assert deal_value({"total_price": None, "total_price_with_tax": 1130}) == (1130.0, True)
    assert deal_value({"total_price": float("nan"), "total_price_with_tax": "1,130"}) == (1130.0, True)


def test_missing_values_contribute_zero():
    assert deal_value({}) == (0.0, False)
    assert deal_value({"total_price": "$1,200.50"}) == (1200.5, False)


def test_account_revenue_counts_only_won_deals(make_deal):
    deals = pd.DataFrame(
        [
            make_deal(id="d1", total_price=100, contract_start="2024-01-01", contract_end="2026-01-01"),
            make_deal(id="d2", total_price=500, status="Lost", created_date="2024-05-01"),
            make_deal(id="d3", total_price=30, created_date="2024-05-01"),
        ]
    )
    assert account_revenue(deals, 2024) == pytest.approx(80)
    assert account_revenue(deals, 2025) == pytest.approx(50)
    assert account_revenue(deals, 2026) == 0


def test_compute_revenue_per_account_and_year(frames, make_account, make_deal):
    accounts, deals = frames(
        [make_account(id="a1"), make_account(id="a2", name="Beta HOA")],
        [
            make_deal(id="d1", account_id="a1", total_price=120_000,
                      contract_start="2024-01-01", contract_end="2026-01-01"),
            make_deal(id="d2", account_id="a2", total_price=30_000, created_date="2025-03-01"),
            make_deal(id="d3", account_id="a2", total_price=99_000, status="Lost", created_date="2025-03-01"),
            make_deal(id="d4", account_id="a2", total_price=77_000, archived=True, created_date="2025-03-01"),
        ],
    )
    summary = RunSummary()
    result = compute_revenue(accounts, deals, summary)

    assert result.revenue_by_year == {
        "a1": {2024: pytest.approx(60_000), 2025: pytest.approx(60_000)},
        "a2": {2025: pytest.approx(30_000)},
    }
    assert result.totals == {2024: pytest.approx(60_000), 2025: pytest.approx(90_000)}
    assert result.deal_count_by_year == {"a1": {2024: 1, 2025: 1}, "a2": {2025: 1}}
    assert sum(summary.counts.values()) == 0


def test_years_are_summed_independently(frames, make_account, make_deal):
    accounts, deals = frames(
        [make_account(id="a1"), make_account(id="a2")],
        [
            make_deal(id="d1", account_id="a1", total_price=10, created_date="2023-01-01"),
            make_deal(id="d2", account_id="a2", total_price=20, created_date="2024-01-01"),
        ],
    )
    result = compute_revenue(accounts, deals)

    assert total_revenue(result.revenue_by_year, 2023) == 10
    assert total_revenue(result.revenue_by_year, 2024) == 20
    assert total_revenue(result.revenue_by_year, 2025) == 0


def test_zero_revenue_years_are_not_stored(frames, make_account, make_deal):
    accounts, deals = frames(
        [make_account(id="a1")],
        [make_deal(id="d1", total_price=0, created_date="2024-04-01")],
    )
    result = compute_revenue(accounts, deals)

    assert result.revenue_by_year == {}
    assert result.deal_count_by_year == {"a1": {2024: 1}}


def test_anomalies_are_counted_not_fatal(capsys, frames, make_account, make_deal):
    accounts, deals = frames(
        [make_account(id="a1")],
        [
            make_deal(id="d1", total_price=None, total_price_with_tax=110, created_date="2024-01-01"),
            make_deal(id="d2", total_price=None, total_price_with_tax=220, created_date="2024-01-01"),
            make_deal(id="d3", total_price=None, created_date="2024-01-01"),
            make_deal(id="d4", account_id="ghost", created_date="2024-01-01"),
        ],
    )
    summary = RunSummary()
    result = compute_revenue(accounts, deals, summary)

    assert result.revenue_by_year == {"a1": {2024: pytest.approx(330)}}
    assert summary.count(PRICE_FALLBACK) == 2
    assert summary.count(MISSING_VALUE) == 1
    assert summary.count(ORPHAN_DEAL) == 1
    assert summary.price_fallback_occurred
    assert capsys.readouterr().out.count("tax-inclusive") == 1


def test_total_revenue_by_year_is_sorted():
    maps = {"a1": {2025: 5.0, 2023: 1.0}, "a2": {2024: 2.0, 2025: 5.0}}
    assert list(total_revenue_by_year(maps).items()) == [(2023, 1.0), (2024, 2.0), (2025, 10.0)]


def test_account_revenue_skips_archived_deals(frames, make_account, make_deal):
    accounts, deals = frames(
        [make_account(id="a1")],
        [
            make_deal(id="d1", total_price=100, created_date="2024-03-01"),
            make_deal(id="d2", total_price=900, archived=True, created_date="2024-03-01"),
        ],
    )
    result = compute_revenue(accounts, deals)

    assert account_revenue(deals, 2024) == pytest.approx(100)
    assert account_revenue(deals, 2024) == pytest.approx(result.totals[2024])


def _move_contract_end(make_account, make_deal, frames, end):
    return frames(
        [make_account(id="a1"), make_account(id="a2")],
        [
            make_deal(id="d1", account_id="a1", total_price=50_000, contract_end=end),
            make_deal(id="d2", account_id="a1", total_price=24_000,
                      contract_start="2024-01-01", contract_end=end),
            make_deal(id="d3", account_id="a2", total_price=7_000, created_date="2024-06-01"),
        ],
    )


def test_moving_contract_end_moves_revenue(frames, make_account, make_deal):
    accounts, deals = _move_contract_end(make_account, make_deal, frames, "2024-12-31")
    before = compute_revenue(accounts, deals)

    assert before.revenue_by_year["a1"] == {2024: pytest.approx(74_000)}
    assert before.totals == {2024: pytest.approx(81_000)}

    accounts, deals = _move_contract_end(make_account, make_deal, frames, "2025-12-31")
    after = compute_revenue(accounts, deals)

    # d1 lands wholly in the new end year; d2 now spans two contract years
    assert after.revenue_by_year["a1"] == {
        2024: pytest.approx(12_000),
        2025: pytest.approx(62_000),
    }
    assert after.revenue_by_year["a2"] == {2024: pytest.approx(7_000)}
    assert after.totals == {2024: pytest.approx(19_000), 2025: pytest.approx(62_000)}

    for year in (2024, 2025):
        by_account = sum(
            account_revenue(deals.loc[deals["account_id"] == a], year) for a in ("a1", "a2")
        )
        assert by_account == pytest.approx(after.totals[year])

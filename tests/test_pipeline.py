import time

import pandas as pd
import pytest

from revseg.anomalies import CONTRACT_TYPO, ORPHAN_DEAL
from revseg.config import AppConfig
from revseg.pipeline import run_batch


@pytest.fixture
def snapshot(make_account, make_deal, days_out):
    accounts = pd.DataFrame(
        [
            make_account(id="a1", name="Acme", last_interaction_date=days_out(-5)),
            make_account(id="a2", name="Beta", last_interaction_date=days_out(-40)),
            make_account(id="a3", name="Gamma", organization_score=92),
            make_account(id="a4", name="Old Co", archived=True),
        ]
    )
    deals = pd.DataFrame(
        [
            make_deal(id="d1", account_id="a1", total_price=200_000,
                      contract_start="2024-06-01", contract_end=days_out(60)),
            make_deal(id="d2", account_id="a2", total_price=20_000, created_date="2025-02-01"),
            make_deal(id="d3", account_id="a2", total_price=80_000, created_date="2024-02-01"),
            make_deal(id="d4", account_id="a4", total_price=999_999, created_date="2025-02-01"),
            make_deal(id="d5", account_id="a1", total_price=5_000,
                      contract_start="2024-01-15", contract_end="2025-02-15", status="Lost"),
        ]
    )
    return accounts, deals


def test_run_batch_end_to_end(snapshot, today):
    accounts, deals = snapshot
    result = run_batch(accounts, deals, None, today=today, config=AppConfig())

    assert result.active_year == 2025
    assert result.account_ids == ["a1", "a2", "a3"]
    assert result.revenue_by_year["a1"] == {2024: pytest.approx(100_000), 2025: pytest.approx(100_000)}
    assert result.revenue_by_year["a2"] == {2024: pytest.approx(80_000), 2025: pytest.approx(20_000)}
    assert result.revenue_by_year["a3"] == {}
    assert result.totals == {2024: pytest.approx(180_000), 2025: pytest.approx(120_000)}

    assert result.segment_by_year["a1"] == {2024: "A", 2025: "A"}
    assert result.segment_by_year["a2"] == {2024: "A", 2025: "A"}
    assert result.segment_by_year["a3"] == {2024: "E", 2025: "E"}
    assert result.revenue_segment == {a: s[2025] for a, s in result.segment_by_year.items()}

    assert [f.account_id for f in result.at_risk] == ["a1"]
    assert result.at_risk[0].days_until_renewal == 60
    assert [f.account_id for f in result.neglected] == ["a2", "a3"]
    assert result.downgrades == []

    assert [t.deal_id for t in result.typos] == ["d5"]
    assert result.summary.count(CONTRACT_TYPO) == 1
    # a4 is archived, so its deal has no account to land on
    assert result.summary.count(ORPHAN_DEAL) == 1


def test_run_batch_is_idempotent(snapshot, today):
    accounts, deals = snapshot
    first = run_batch(accounts, deals, None, today=today, config=AppConfig())
    second = run_batch(accounts, deals, None, today=today, config=AppConfig())

    assert first.revenue_by_year == second.revenue_by_year
    assert first.segment_by_year == second.segment_by_year
    assert first.at_risk == second.at_risk
    assert first.neglected == second.neglected
    assert first.summary.as_dict() == second.summary.as_dict()


def test_run_batch_does_not_mutate_inputs(snapshot, today):
    accounts, deals = snapshot
    before_accounts, before_deals = accounts.copy(), deals.copy()

    run_batch(accounts, deals, None, today=today, config=AppConfig())

    pd.testing.assert_frame_equal(accounts, before_accounts)
    pd.testing.assert_frame_equal(deals, before_deals)


def test_expired_deadline_aborts_before_results(snapshot, today):
    accounts, deals = snapshot
    with pytest.raises(TimeoutError):
        run_batch(accounts, deals, None, today=today, config=AppConfig(), deadline=time.monotonic() - 1)


def test_missing_required_columns_raise(snapshot, today):
    accounts, deals = snapshot
    with pytest.raises(KeyError):
        run_batch(accounts, deals.drop(columns=["status"]), None, today=today, config=AppConfig())


def test_column_aliases_are_unified(snapshot, today):
    accounts, deals = snapshot
    aliased = deals.rename(columns={"id": "deal_id", "estimate_type": "type", "division": "department"})

    result = run_batch(accounts, aliased, None, today=today, config=AppConfig())
    baseline = run_batch(accounts, deals, None, today=today, config=AppConfig())

    assert result.revenue_by_year == baseline.revenue_by_year
    assert result.at_risk == baseline.at_risk

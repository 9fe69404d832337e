import datetime as dt
import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (ROOT, SRC):
    path_str = str(path)
    if path.exists() and path_str not in sys.path:
        sys.path.insert(0, path_str)

TODAY = dt.date(2025, 6, 1)


def _deal(**overrides) -> dict:
    deal = {
        "id": "d1",
        "account_id": "a1",
        "estimate_number": None,
        "status": "Contract Signed",
        "pipeline_status": None,
        "estimate_type": "service",
        "total_price": 1000.0,
        "total_price_with_tax": None,
        "contract_start": None,
        "contract_end": None,
        "estimate_date": None,
        "created_date": None,
        "division": "Maintenance",
        "address": "1 Main St",
        "archived": False,
    }
    deal.update(overrides)
    return deal


def _account(**overrides) -> dict:
    account = {
        "id": "a1",
        "name": "Acme Property Group",
        "organization_score": None,
        "last_interaction_date": None,
        "archived": False,
        "icp_status": None,
    }
    account.update(overrides)
    return account


@pytest.fixture
def today() -> dt.date:
    return TODAY


@pytest.fixture
def make_deal():
    return _deal


@pytest.fixture
def make_account():
    return _account


@pytest.fixture
def days_out():
    """ISO date ``n`` days after the reference date."""

    def _days_out(n: int) -> str:
        return (TODAY + dt.timedelta(days=n)).isoformat()

    return _days_out


@pytest.fixture
def frames():
    """Build prepared (accounts, deals) frames from record dicts."""
    from revseg.schema import prepare_accounts, prepare_deals

    def _frames(accounts, deals):
        return (
            prepare_accounts(pd.DataFrame(list(accounts))),
            prepare_deals(pd.DataFrame(list(deals))),
        )

    return _frames

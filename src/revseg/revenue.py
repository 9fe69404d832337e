"""Revenue aggregation: prorated won-deal value per account per year."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Tuple

import numpy as np
import pandas as pd

from revseg.allocation import NON_ALLOCATABLE, UNDETERMINABLE, allocate
from revseg.anomalies import (
    MISSING_VALUE,
    NON_ALLOCATABLE as ANOMALY_NON_ALLOCATABLE,
    ORPHAN_DEAL,
    PRICE_FALLBACK,
    UNDETERMINABLE_YEAR,
    RunSummary,
)
from revseg.normalizer import is_won, note_unrecognized_status, won_mask
from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ARCHIVED,
    COL_DEAL_ACCOUNT,
    COL_DEAL_ID,
    COL_DEAL_TYPE,
    COL_PRICE,
    COL_PRICE_WITH_TAX,
    is_archived,
    normalize_text,
)

LEDGER_COLUMNS = [
    "deal_id",
    "account_id",
    "deal_type",
    "value",
    "annual_value",
    "years",
    "allocation",
]
YEARLY_COLUMNS = ["deal_id", "account_id", "year", "allocated", "deal_type"]

_MONEY_JUNK = re.compile(r"[$,\s]")


def _to_number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = _MONEY_JUNK.sub("", value)
        if not value:
            return None
    num = pd.to_numeric(value, errors="coerce")
    if pd.isna(num) or not np.isfinite(num):
        return None
    return float(num)


def deal_value(deal: Mapping) -> Tuple[float, bool]:
    """Monetary value of a deal and whether the tax-inclusive fallback was used.

    The tax-exclusive ``total_price`` wins whenever it is present, including a
    legitimate zero. ``total_price_with_tax`` is only read when the primary is
    null. A deal with neither contributes 0.
    """
    primary = _to_number(deal.get(COL_PRICE))
    if primary is not None:
        return primary, False
    fallback = _to_number(deal.get(COL_PRICE_WITH_TAX))
    if fallback is not None:
        return fallback, True
    return 0.0, False


def account_revenue(deals: pd.DataFrame | Iterable[Mapping], year: int) -> float:
    """Sum of the ``year`` slice of every won, non-archived deal passed in."""
    records = deals.to_dict("records") if isinstance(deals, pd.DataFrame) else deals
    total = 0.0
    for deal in records:
        if is_archived(deal.get(COL_ARCHIVED)) or not is_won(deal):
            continue
        value, _ = deal_value(deal)
        total += allocate(deal, value).value_for(year)
    return total


def build_ledger(
    deals: pd.DataFrame,
    account_ids: Iterable[str],
    summary: RunSummary | None = None,
) -> pd.DataFrame:
    """One row per won, non-archived deal of a known account with its allocation.

    Anomalies (orphan deals, unrecognized statuses, price fallback, missing
    values, non-allocatable or undated contracts) are counted in ``summary``.
    """
    summary = summary if summary is not None else RunSummary()
    if deals.empty:
        return pd.DataFrame(columns=LEDGER_COLUMNS)

    active = deals.loc[~deals[COL_ARCHIVED].astype(bool)]
    known = active[COL_DEAL_ACCOUNT].isin(set(account_ids))
    for deal_id in active.loc[~known, COL_DEAL_ID]:
        summary.record(ORPHAN_DEAL, deal_id)
    active = active.loc[known]

    won = won_mask(active)
    for deal in active.loc[~won].to_dict("records"):
        note_unrecognized_status(deal, summary)

    rows = []
    for deal in active.loc[won].to_dict("records"):
        deal_id = deal[COL_DEAL_ID]
        value, used_fallback = deal_value(deal)
        if used_fallback:
            summary.record(PRICE_FALLBACK, deal_id)
        elif _to_number(deal.get(COL_PRICE)) is None:
            summary.record(MISSING_VALUE, deal_id)

        alloc = allocate(deal, value)
        if alloc.status == NON_ALLOCATABLE:
            summary.record(ANOMALY_NON_ALLOCATABLE, deal_id)
        elif alloc.status == UNDETERMINABLE:
            summary.record(UNDETERMINABLE_YEAR, deal_id)

        rows.append(
            {
                "deal_id": deal_id,
                "account_id": deal[COL_DEAL_ACCOUNT],
                "deal_type": normalize_text(deal.get(COL_DEAL_TYPE)),
                "value": value,
                "annual_value": alloc.annual_value,
                "years": alloc.years,
                "allocation": alloc.status,
            }
        )
    return pd.DataFrame(rows, columns=LEDGER_COLUMNS)


def explode_ledger(ledger: pd.DataFrame) -> pd.DataFrame:
    """One row per (deal, calendar year) the deal's value is allocated to."""
    if ledger.empty:
        return pd.DataFrame(columns=YEARLY_COLUMNS)
    yearly = ledger.explode("years").dropna(subset=["years"])
    if yearly.empty:
        return pd.DataFrame(columns=YEARLY_COLUMNS)
    yearly = yearly.rename(columns={"years": "year", "annual_value": "allocated"})
    yearly["year"] = yearly["year"].astype(int)
    yearly["allocated"] = yearly["allocated"].astype(float)
    return yearly[YEARLY_COLUMNS].reset_index(drop=True)


def revenue_maps(yearly: pd.DataFrame) -> Dict[str, Dict[int, float]]:
    """Per-account ``{year: revenue}``; years without positive revenue are not stored."""
    if yearly.empty:
        return {}
    sums = yearly.groupby(["account_id", "year"])["allocated"].sum()
    out: Dict[str, Dict[int, float]] = {}
    for (account_id, year), revenue in sums.items():
        if revenue > 0:
            out.setdefault(str(account_id), {})[int(year)] = float(revenue)
    return out


def deal_count_maps(yearly: pd.DataFrame) -> Dict[str, Dict[int, int]]:
    """Per-account ``{year: won deals applicable to that year}``."""
    if yearly.empty:
        return {}
    counts = yearly.groupby(["account_id", "year"])["deal_id"].nunique()
    out: Dict[str, Dict[int, int]] = {}
    for (account_id, year), n in counts.items():
        out.setdefault(str(account_id), {})[int(year)] = int(n)
    return out


def total_revenue_by_year(maps: Mapping[str, Mapping[int, float]]) -> Dict[int, float]:
    """Portfolio revenue per year, each year summed on its own."""
    totals: Dict[int, float] = {}
    for per_year in maps.values():
        for year, revenue in per_year.items():
            totals[int(year)] = totals.get(int(year), 0.0) + float(revenue)
    return dict(sorted(totals.items()))


def total_revenue(maps: Mapping[str, Mapping[int, float]], year: int) -> float:
    return total_revenue_by_year(maps).get(int(year), 0.0)


@dataclass
class RevenueResult:
    ledger: pd.DataFrame
    yearly: pd.DataFrame
    revenue_by_year: Dict[str, Dict[int, float]] = field(default_factory=dict)
    deal_count_by_year: Dict[str, Dict[int, int]] = field(default_factory=dict)
    totals: Dict[int, float] = field(default_factory=dict)


def compute_revenue(
    accounts: pd.DataFrame,
    deals: pd.DataFrame,
    summary: RunSummary | None = None,
) -> RevenueResult:
    """Revenue-by-year for every non-archived account, plus per-year totals."""
    active_accounts = accounts.loc[~accounts[COL_ARCHIVED].astype(bool), COL_ACCOUNT_ID]
    ledger = build_ledger(deals, active_accounts.tolist(), summary)
    yearly = explode_ledger(ledger)
    maps = revenue_maps(yearly)
    return RevenueResult(
        ledger=ledger,
        yearly=yearly,
        revenue_by_year=maps,
        deal_count_by_year=deal_count_maps(yearly),
        totals=total_revenue_by_year(maps),
    )

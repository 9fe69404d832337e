"""
Segment classification (A-F) per account per year.

Rules, first match wins:
  1. no won deal applies to the year -> lead: E when ICP score >= threshold, else F
  2. won applicable deals are all project work ("standard", no "service") -> D
  3. revenue share of the year's portfolio total: > 15% A, 5-15% B, else C
"""
from __future__ import annotations

import datetime as dt
from typing import Dict, Iterable, Mapping

import numpy as np
import pandas as pd

from revseg.config import SegmentConfig
from revseg.revenue import RevenueResult
from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ARCHIVED,
    COL_ICP_SCORE,
    COL_SEGMENT_BY_YEAR,
    DEAL_TYPE_SERVICE,
    DEAL_TYPE_STANDARD,
    load_year_map,
)

SEGMENT_ORDER = ["A", "B", "C", "D", "E", "F"]
LEAD_SEGMENTS = ("E", "F")


def parse_icp_score(value) -> float | None:
    """ICP score as a float, or None when missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    num = pd.to_numeric(value, errors="coerce")
    if pd.isna(num) or not np.isfinite(num):
        return None
    return float(num)


def lead_segment(icp_score, threshold: float = 80.0) -> str:
    score = parse_icp_score(icp_score)
    return "E" if score is not None and score >= threshold else "F"


def revenue_share(revenue: float, total: float) -> float:
    """Percent of ``total``; 0 when the total is not positive."""
    if total is None or total <= 0:
        return 0.0
    return float(revenue) / float(total) * 100.0


def classify_segment(
    *,
    has_won: bool,
    has_standard: bool,
    has_service: bool,
    revenue: float,
    total: float,
    icp_score=None,
    cfg: SegmentConfig | None = None,
) -> str:
    """Segment letter for a single account-year."""
    cfg = cfg or SegmentConfig()
    if not has_won:
        return lead_segment(icp_score, cfg.icp_high_threshold)
    if has_standard and not has_service:
        return "D"
    share = revenue_share(revenue, total)
    if share > cfg.share_a_above:
        return "A"
    if share >= cfg.share_b_min:
        return "B"
    return "C"


def classify_year(frame: pd.DataFrame, total: float, cfg: SegmentConfig | None = None) -> np.ndarray:
    """Vectorized :func:`classify_segment` over one year.

    ``frame`` carries one row per account with ``has_won``, ``has_standard``,
    ``has_service``, ``revenue`` and ``icp_score`` columns.
    """
    cfg = cfg or SegmentConfig()
    score = pd.to_numeric(frame["icp_score"], errors="coerce")
    share = frame["revenue"] / total * 100.0 if total > 0 else pd.Series(0.0, index=frame.index)
    no_won = ~frame["has_won"]
    return np.select(
        [
            no_won & (score >= cfg.icp_high_threshold),  # E
            no_won,  # F
            frame["has_standard"] & ~frame["has_service"],  # D
            share > cfg.share_a_above,  # A
            share >= cfg.share_b_min,  # B
        ],
        ["E", "F", "D", "A", "B"],
        default="C",
    )


def active_segment_year(today: dt.date) -> int:
    """Year whose segment is shown as current; Jan/Feb still use the prior year."""
    return today.year - 1 if today.month <= 2 else today.year


def segment_years(revenue: RevenueResult, today: dt.date) -> list[int]:
    """Years classified in a batch: every allocated year, the active year and the one before."""
    years = set(revenue.totals)
    if not revenue.yearly.empty:
        years.update(int(y) for y in revenue.yearly["year"].unique())
    active = active_segment_year(today)
    years.update((active - 1, active))
    return sorted(years)


def _year_features(accounts: pd.DataFrame, revenue: RevenueResult, year: int) -> pd.DataFrame:
    ids = accounts[COL_ACCOUNT_ID]
    frame = pd.DataFrame(
        {
            "icp_score": accounts[COL_ICP_SCORE].to_numpy(),
            "revenue": [revenue.revenue_by_year.get(a, {}).get(year, 0.0) for a in ids],
        },
        index=ids.to_numpy(),
    )
    in_year = revenue.yearly.loc[revenue.yearly["year"] == year] if not revenue.yearly.empty else revenue.yearly
    types = in_year.groupby("account_id")["deal_type"].agg(set) if not in_year.empty else pd.Series(dtype=object)
    deal_types = types.reindex(frame.index)
    frame["has_won"] = deal_types.notna().to_numpy()
    frame["has_standard"] = [isinstance(t, set) and DEAL_TYPE_STANDARD in t for t in deal_types]
    frame["has_service"] = [isinstance(t, set) and DEAL_TYPE_SERVICE in t for t in deal_types]
    return frame


def segments_by_year(
    accounts: pd.DataFrame,
    revenue: RevenueResult,
    years: Iterable[int],
    cfg: SegmentConfig | None = None,
) -> Dict[str, Dict[int, str]]:
    """Classify every non-archived account for every year in ``years``."""
    active = accounts.loc[~accounts[COL_ARCHIVED].astype(bool)]
    out: Dict[str, Dict[int, str]] = {a: {} for a in active[COL_ACCOUNT_ID]}
    if active.empty:
        return out
    for year in years:
        frame = _year_features(active, revenue, int(year))
        letters = classify_year(frame, revenue.totals.get(int(year), 0.0), cfg)
        for account_id, letter in zip(frame.index, letters):
            out[account_id][int(year)] = str(letter)
    return out


def segment_for_year(account: Mapping, year: int, cfg: SegmentConfig | None = None) -> str | None:
    """Stored segment for ``year``; lead segments follow the live ICP score.

    A-D are returned as computed by the last batch. E and F only depend on the
    ICP score, which can change between batches, so they are re-derived here.
    Returns None when the account was never classified for ``year``.
    """
    cfg = cfg or SegmentConfig()
    letter = load_year_map(account.get(COL_SEGMENT_BY_YEAR)).get(int(year))
    if letter is not None:
        letter = str(letter)
    if letter in LEAD_SEGMENTS:
        return lead_segment(account.get(COL_ICP_SCORE), cfg.icp_high_threshold)
    return letter

"""Deal normalization: canonical won flag, date parsing and applicable year."""
from __future__ import annotations

from typing import Mapping

import pandas as pd

from revseg.anomalies import RunSummary, UNRECOGNIZED_STATUS
from revseg.schema import (
    COL_DEAL_ID,
    COL_PIPELINE_STATUS,
    COL_STATUS,
    YEAR_PRIORITY_COLUMNS,
)

# Statuses that mean the deal turned into a signed/completed contract.
WON_STATUSES = frozenset(
    {
        "contract signed",
        "work complete",
        "billing complete",
        "email contract award",
        "verbal contract award",
        "contract in progress",
        "contract + billing complete",
        "sold",
        "won",
    }
)

# Known statuses that are legitimately not won. Anything outside both sets is
# reported as unrecognized.
OPEN_OR_LOST_STATUSES = frozenset(
    {
        "lost",
        "pending",
        "estimate in progress",
        "client proposal phase",
        "proposal",
        "proposal accepted",
        "work in progress",
        "cancelled",
        "canceled",
        "on hold",
        "open",
        "draft",
        "declined",
    }
)


def _clean(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip().lower()


def is_won(deal: Mapping) -> bool:
    """Return the canonical won flag for a deal record.

    ``pipeline_status`` is the preferred signal: any value containing "sold"
    wins. Otherwise ``status`` must match the won allow-list exactly (after
    trimming and lowercasing). Never raises.
    """
    try:
        pipeline = _clean(deal.get(COL_PIPELINE_STATUS))
        if pipeline and "sold" in pipeline:
            return True
        return _clean(deal.get(COL_STATUS)) in WON_STATUSES
    except (AttributeError, TypeError):
        # Not a mapping at all
        return False


def won_mask(deals: pd.DataFrame) -> pd.Series:
    """Vectorized :func:`is_won` over a deals frame."""
    if deals.empty:
        return pd.Series(False, index=deals.index, dtype=bool)
    pipeline = deals.get(COL_PIPELINE_STATUS, pd.Series("", index=deals.index)).map(_clean)
    status = deals.get(COL_STATUS, pd.Series("", index=deals.index)).map(_clean)
    mask = pipeline.str.contains("sold", regex=False) | status.isin(WON_STATUSES)
    return mask.astype(bool)


def status_is_recognized(status) -> bool:
    cleaned = _clean(status)
    return cleaned in WON_STATUSES or cleaned in OPEN_OR_LOST_STATUSES


def note_unrecognized_status(deal: Mapping, summary: RunSummary) -> None:
    """Record a deal whose free-text status is outside every known list."""
    if is_won(deal):
        return
    raw = deal.get(COL_STATUS)
    cleaned = _clean(raw)
    if not cleaned or status_is_recognized(cleaned):
        return
    summary.record(UNRECOGNIZED_STATUS, deal.get(COL_DEAL_ID), warn_key=cleaned)


def parse_date(value) -> pd.Timestamp | None:
    """Parse a date-like value to a naive midnight timestamp, or None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if not isinstance(ts, pd.Timestamp) or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts.normalize()


def applicable_year(deal: Mapping) -> int | None:
    """Accounting year of a deal: contract_end, contract_start, estimate_date, created_date.

    The first field that parses to a valid date wins. Returns None when no
    field parses (the deal is then excluded from every year).
    """
    for col in YEAR_PRIORITY_COLUMNS:
        ts = parse_date(deal.get(col))
        if ts is not None:
            return int(ts.year)
    return None

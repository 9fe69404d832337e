"""
Notification cache payloads and flat tables for the batch outputs.
"""
from __future__ import annotations

import dataclasses
import datetime as dt
from typing import Dict, Iterable, List

import pandas as pd

AT_RISK_KEY = "at-risk-accounts"
NEGLECTED_KEY = "neglected-accounts"
DOWNGRADES_KEY = "segment-downgrades"
DUPLICATES_KEY = "duplicate-at-risk-estimates"
TYPOS_KEY = "contract-date-typos"


def _jsonable(value):
    if isinstance(value, (dt.date, dt.datetime, pd.Timestamp)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def to_records(items: Iterable) -> List[dict]:
    """Dataclass instances as JSON-ready dicts (dates as ISO strings)."""
    return [_jsonable(dataclasses.asdict(item)) for item in items]


def _payload(records: List[dict], updated_at: str) -> dict:
    return {"accounts": records, "count": len(records), "updated_at": updated_at}


def build_cache_entries(result, now: dt.datetime | None = None) -> Dict[str, dict]:
    """One cache payload per notification key for a finished batch."""
    now = now or dt.datetime.now(dt.timezone.utc)
    updated_at = now.isoformat()
    return {
        AT_RISK_KEY: _payload(to_records(result.at_risk), updated_at),
        NEGLECTED_KEY: _payload(to_records(result.neglected), updated_at),
        DOWNGRADES_KEY: _payload(to_records(result.downgrades), updated_at),
        DUPLICATES_KEY: _payload(to_records(result.duplicates), updated_at),
        TYPOS_KEY: _payload(to_records(result.typos), updated_at),
    }


def flag_table(items: Iterable) -> pd.DataFrame:
    """Flat frame for CSV export; nested deal lists collapse to id strings."""
    rows = []
    for record in to_records(items):
        for key, value in list(record.items()):
            if isinstance(value, list):
                record[key] = ";".join(str(v.get("deal_id", v)) if isinstance(v, dict) else str(v) for v in value)
        rows.append(record)
    return pd.DataFrame(rows)


def account_year_table(result) -> pd.DataFrame:
    """Long frame of (account, year) with revenue, segment and won-deal count."""
    rows = []
    for account_id in result.account_ids:
        segments = result.segment_by_year.get(account_id, {})
        revenue = result.revenue_by_year.get(account_id, {})
        counts = result.deal_count_by_year.get(account_id, {})
        for year in sorted(set(segments) | set(revenue)):
            rows.append(
                {
                    "account_id": account_id,
                    "year": year,
                    "revenue": revenue.get(year, 0.0),
                    "segment": segments.get(year),
                    "deal_count": counts.get(year, 0),
                }
            )
    return pd.DataFrame(rows, columns=["account_id", "year", "revenue", "segment", "deal_count"])

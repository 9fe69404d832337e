"""Snooze directive lookups shared by the risk, neglect and downgrade detectors."""
from __future__ import annotations

import datetime as dt

import pandas as pd

from revseg.schema import COL_SNOOZE_ACCOUNT, COL_SNOOZE_TYPE, COL_SNOOZE_UNTIL


def _as_naive(series: pd.Series) -> pd.Series:
    # rows mix date-only and full ISO timestamps
    parsed = pd.to_datetime(series, errors="coerce", utc=True, format="mixed")
    return parsed.dt.tz_localize(None)


def snoozed_accounts(snoozes: pd.DataFrame | None, kind: str, today: dt.date) -> set[str]:
    """Account ids with an active snooze of ``kind``.

    A snooze is active while ``snoozed_until`` is strictly after the start of
    ``today``; expired or unparseable directives are ignored.
    """
    if snoozes is None or snoozes.empty:
        return set()
    rows = snoozes.loc[snoozes[COL_SNOOZE_TYPE] == kind]
    if rows.empty:
        return set()
    until = _as_naive(rows[COL_SNOOZE_UNTIL])
    active = rows.loc[until > pd.Timestamp(today)]
    ids = active[COL_SNOOZE_ACCOUNT].astype(str).str.strip()
    return {a for a in ids if a and a.lower() not in ("nan", "none")}
